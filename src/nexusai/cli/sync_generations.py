"""CLI command for pushing unsynced local generations to the web API.

Runs a single sync pass with the same ordering and abort-on-first-failure
behavior as the background coordinator.

Usage:
    python -m nexusai.cli.sync_generations [OPTIONS]

Examples:
    # Push everything unsynced in the default local database
    python -m nexusai.cli.sync_generations

    # Different database file and remote
    python -m nexusai.cli.sync_generations --db-path ./other.db --api-base-url http://localhost:3000

    # Dry run (list unsynced records, no network calls)
    python -m nexusai.cli.sync_generations --dry-run -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import structlog

from nexusai.core import timezone  # noqa: F401
from nexusai.core.config import Settings, configure_logging
from nexusai.services.exceptions import StorageUnavailable
from nexusai.services.sync.remote_client import GenerationSyncClient
from nexusai.storage.local_store import LocalRecordStore
from nexusai.workers.sync_worker import GenerationPusher, SyncCoordinator

logger = structlog.get_logger()

DRY_RUN_PREVIEW = 10


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Push unsynced local generations to the NexusAI web API")

    parser.add_argument(
        "--db-path",
        type=str,
        help="Local database file (default: LOCAL_DB_PATH setting)",
    )

    parser.add_argument(
        "--api-base-url",
        type=str,
        help="Override the API_BASE_URL setting",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List unsynced generations without pushing them",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(
    argv: Optional[Sequence[str]] = None,
    settings: Optional[Settings] = None,
    pusher: Optional[GenerationPusher] = None,
) -> int:
    """Main CLI entry point (async).

    Args:
        argv: Command-line arguments (defaults to sys.argv)
        settings: Settings override (loaded from the environment if omitted)
        pusher: Remote pusher override (GenerationSyncClient if omitted)

    Returns:
        Exit code: 0 (all synced or nothing to do), 1 (error), 2 (partial success)
    """
    args = parse_args(argv)

    # Initialize settings and logging
    settings = settings or Settings()  # type: ignore[call-arg]

    if args.db_path:
        settings.local_db_path = args.db_path
    if args.api_base_url:
        settings.api_base_url = args.api_base_url

    # Configure logging level
    if args.verbose:
        settings.log_level = "DEBUG"

    configure_logging(settings)

    store = LocalRecordStore(settings.local_db_path, scan_limit=settings.stats_scan_limit)

    try:
        await store.initialize()

        if args.dry_run:
            unsynced = await store.get_unsynced()
            logger.info("sync_generations.dry_run", unsynced=len(unsynced))
            for record in unsynced[:DRY_RUN_PREVIEW]:
                logger.info(
                    "sync_generations.dry_run_record",
                    record_id=record.id,
                    user_id=record.user_id,
                    type=record.type.value,
                    sync_attempts=record.sync_attempts,
                )
            if len(unsynced) > DRY_RUN_PREVIEW:
                logger.info(
                    "sync_generations.dry_run_truncated",
                    message=f"... and {len(unsynced) - DRY_RUN_PREVIEW} more generations",
                )
            return 0

        if pusher is None:
            if not settings.api_base_url:
                logger.error(
                    "sync_generations.error",
                    message=(
                        "API_BASE_URL is not configured. "
                        "Set it in .env or pass --api-base-url."
                    ),
                )
                return 1
            pusher = GenerationSyncClient(
                settings.api_base_url,
                token=settings.api_token,
                timeout=settings.sync_request_timeout_seconds,
            )

        coordinator = SyncCoordinator(store, pusher)
        result = await coordinator.run_pass()

        logger.info(
            "sync_generations.complete",
            attempted=result.attempted,
            synced=result.synced,
            failed_id=result.failed_id,
        )

        if not result.aborted:
            return 0
        return 2 if result.synced > 0 else 1

    except StorageUnavailable as e:
        logger.error("sync_generations.storage_unavailable", error=str(e))
        return 1

    except KeyboardInterrupt:
        logger.warning("sync_generations.interrupted", message="Sync interrupted by user")
        return 2

    finally:
        await store.close()


def main() -> int:
    """Synchronous wrapper for async main."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
