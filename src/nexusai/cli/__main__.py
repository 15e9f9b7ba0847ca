"""CLI entry point for nexusai.cli module.

Enables execution via: python -m nexusai.cli
"""

from nexusai.cli.sync_generations import main

if __name__ == "__main__":
    raise SystemExit(main())
