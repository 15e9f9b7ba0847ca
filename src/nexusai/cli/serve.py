"""CLI command for running the local API server.

Usage:
    python -m nexusai.cli.serve [OPTIONS]

Examples:
    # Serve on HOST/PORT from the environment (default 127.0.0.1:8000)
    python -m nexusai.cli.serve

    # Different port, auto-reload while developing
    python -m nexusai.cli.serve --port 8080 --reload
"""

from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import uvicorn

from nexusai.core.config import Settings


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Run the NexusAI local API")

    parser.add_argument("--host", type=str, help="Bind address (default: HOST setting)")
    parser.add_argument("--port", type=int, help="Bind port (default: PORT setting)")
    parser.add_argument("--reload", action="store_true", help="Restart on source changes")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None, settings: Optional[Settings] = None) -> int:
    """Start uvicorn with the application factory. Blocks until shutdown."""
    args = parse_args(argv)
    settings = settings or Settings()  # type: ignore[call-arg]

    uvicorn.run(
        "nexusai.app:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
