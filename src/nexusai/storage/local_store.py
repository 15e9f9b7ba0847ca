"""Local Record Store for generation records.

Durable, queryable persistence of GenerationRecord entities in an embedded
SQLite database, independent of network availability.

The store is an explicitly constructed object owned by the application
context; there is no module-level instance. Every operation awaits
initialize() first, so callers never need to order their calls around it.

Schema versioning uses SQLite's integer ``PRAGMA user_version``:
- 0 -> 1: generations table with all secondary and composite indexes
- 1 -> 2: storage_settings table (generations are left untouched)
"""

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from nexusai.core.database import create_local_engine, setup_db_session
from nexusai.core.timezone import utc_now
from nexusai.models.generation import (
    FAILED_SYNC_THRESHOLD,
    GenerationDraft,
    GenerationQuery,
    GenerationRecord,
    GenerationType,
)
from nexusai.models.storage_settings import StorageSettings, StorageSettingsUpdate
from nexusai.services.exceptions import (
    NotAuthenticated,
    NotFound,
    StorageUnavailable,
    ValidationFailure,
)
from nexusai.storage.serialization import dump_records, load_records
from nexusai.uow import UnitOfWork, create_uow_factory

logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 2
DEFAULT_SCAN_LIMIT = 10_000
SEARCH_SCAN_LIMIT = 1_000


@dataclass
class StorageStats:
    """Aggregate view of one user's records, computed per query."""

    total_size: int = 0
    counts: dict[str, int] = field(
        default_factory=lambda: {generation_type.value: 0 for generation_type in GenerationType}
    )
    synced_count: int = 0
    unsynced_count: int = 0
    failed_sync_count: int = 0
    oldest_item: Optional[datetime] = None
    newest_item: Optional[datetime] = None


@dataclass
class BulkDeleteResult:
    """Outcome of delete_many(). Each id succeeds or fails independently."""

    deleted: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def new_generation_id() -> str:
    return f"gen_{uuid4().hex}"


def _upgrade_schema(connection, from_version: int) -> None:
    """Bring the local schema from ``from_version`` up to SCHEMA_VERSION.

    Runs inside the open transaction via AsyncConnection.run_sync().
    """
    if from_version < 1:
        GenerationRecord.__table__.create(connection, checkfirst=True)  # type: ignore[attr-defined]
    if from_version < 2:
        StorageSettings.__table__.create(connection, checkfirst=True)  # type: ignore[attr-defined]
    connection.exec_driver_sql(f"PRAGMA user_version = {SCHEMA_VERSION}")


@contextmanager
def _logged(operation: str, **context: Any):
    """Log a failed storage operation with its context, then re-raise."""
    try:
        yield
    except (NotAuthenticated, NotFound, ValidationFailure) as e:
        logger.warning(
            "storage.operation_rejected",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
            **context,
        )
        raise
    except Exception as e:
        logger.error(
            "storage.operation_failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
            **context,
        )
        raise


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise NotAuthenticated("User not authenticated")
    return user_id


class LocalRecordStore:
    """Persistent store of generation records with secondary lookups.

    Args:
        db_path: SQLite database file (":memory:" for an ephemeral store)
        now: Clock returning naive UTC datetimes (injectable for tests)
        scan_limit: Maximum records read by stats and export scans
    """

    def __init__(
        self,
        db_path: str,
        now: Callable[[], datetime] = utc_now,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ):
        self.db_path = db_path
        self.scan_limit = scan_limit
        self._now = now
        self._engine: AsyncEngine | None = None
        self._uow_factory: Callable | None = None
        self._init_task: asyncio.Task | None = None

    @property
    def is_ready(self) -> bool:
        """True once initialize() has completed successfully."""
        return self._uow_factory is not None

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Open the database and upgrade its schema (idempotent).

        Concurrent callers share a single in-flight initialization. A failed
        initialization is remembered: every later call raises the same
        StorageUnavailable immediately instead of reopening.

        Raises:
            StorageUnavailable: If the engine cannot be opened or upgraded
        """
        if self._uow_factory is not None:
            return

        if self._init_task is None:
            self._init_task = asyncio.create_task(self._initialize())

        # Shield so a cancelled waiter does not abort the shared initialization
        await asyncio.shield(self._init_task)

    async def _initialize(self) -> None:
        engine = create_local_engine(self.db_path)
        try:
            async with engine.begin() as conn:
                result = await conn.exec_driver_sql("PRAGMA user_version")
                current_version = result.scalar() or 0

                if current_version > SCHEMA_VERSION:
                    raise StorageUnavailable(
                        f"Local database schema version {current_version} is newer than "
                        f"supported version {SCHEMA_VERSION}"
                    )

                if current_version < SCHEMA_VERSION:
                    await conn.run_sync(_upgrade_schema, current_version)
                    logger.info(
                        "storage.schema_upgraded",
                        from_version=current_version,
                        to_version=SCHEMA_VERSION,
                    )

        except StorageUnavailable as e:
            await engine.dispose()
            logger.error("storage.initialization_failed", db_path=self.db_path, error=str(e))
            raise

        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            logger.error(
                "storage.initialization_failed",
                db_path=self.db_path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StorageUnavailable(f"Local storage could not be opened: {e}") from e

        self._engine = engine
        self._uow_factory = create_uow_factory(setup_db_session(engine))
        logger.info("storage.initialized", db_path=self.db_path, schema_version=SCHEMA_VERSION)

    async def close(self) -> None:
        """Dispose of the engine. The store can be initialized again afterwards."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._uow_factory = None
        self._init_task = None

    async def _unit_of_work(self) -> UnitOfWork:
        await self.initialize()
        uow_factory = self._uow_factory
        if uow_factory is None:
            raise StorageUnavailable("Local storage was closed")
        return await uow_factory()

    # === Writes ===

    async def save(self, draft: GenerationDraft | dict[str, Any], user_id: Optional[str]) -> str:
        """Persist a new generation.

        Args:
            draft: Record fields minus id, created_at and sync state
            user_id: Bound user context; required

        Returns:
            The generated record id

        Raises:
            NotAuthenticated: If no user context is bound
            ValidationFailure: If the draft is malformed
        """
        user_id = _require_user(user_id)

        if not isinstance(draft, GenerationDraft):
            try:
                draft = GenerationDraft.model_validate(draft)
            except ValidationError as e:
                raise ValidationFailure(f"Invalid generation: {e}") from e

        now = self._now()
        record = GenerationRecord(
            id=new_generation_id(),
            user_id=user_id,
            type=draft.type,
            prompt=draft.prompt,
            model=draft.model,
            generation_metadata=draft.metadata,
            tags=list(dict.fromkeys(draft.tags)),
            favorite=False,
            synced=False,
            sync_attempts=0,
            created_at=now,
            updated_at=now,
            **GenerationRecord.split_result(draft.result),
        )

        with _logged("save", record_id=record.id, user_id=user_id):
            async with await self._unit_of_work() as uow:
                await uow.generations.add(record)

        logger.info(
            "generation.saved",
            record_id=record.id,
            user_id=user_id,
            type=record.type.value,
            size_bytes=record.payload_size,
        )
        return record.id

    async def update(self, record_id: str, **fields: Any) -> GenerationRecord:
        """Merge fields into an existing generation and bump updated_at.

        Raises:
            NotFound: If the id does not exist
            ValidationFailure: If a field is unknown, immutable or breaks a sync invariant
        """
        with _logged("update", record_id=record_id, fields=sorted(fields)):
            async with await self._unit_of_work() as uow:
                record = await uow.generations.get_by_id(record_id)
                if record is None:
                    raise NotFound(record_id)
                record.apply_updates(fields, self._now())
                await uow.generations.save(record)
        return record

    async def mark_synced(self, record_id: str) -> None:
        """Flag a generation as accepted by the remote store (idempotent).

        Raises:
            NotFound: If the id does not exist
        """
        with _logged("mark_synced", record_id=record_id):
            async with await self._unit_of_work() as uow:
                record = await uow.generations.get_by_id(record_id)
                if record is None:
                    raise NotFound(record_id)
                record.mark_synced(self._now())
                await uow.generations.save(record)

    async def mark_sync_failed(self, record_id: str) -> None:
        """Count a failed push. Does nothing if the record was deleted meanwhile."""
        with _logged("mark_sync_failed", record_id=record_id):
            async with await self._unit_of_work() as uow:
                record = await uow.generations.get_by_id(record_id)
                if record is None:
                    logger.info("generation.sync_failure_skipped", record_id=record_id)
                    return
                record.record_sync_failure(self._now())
                await uow.generations.save(record)

    async def toggle_favorite(self, record_id: str) -> bool:
        """Flip the favorite flag and return the new value.

        Read and write happen in separate transactions: concurrent toggles
        resolve as last writer wins.

        Raises:
            NotFound: If the id does not exist
        """
        record = await self.get_by_id(record_id)
        if record is None:
            raise NotFound(record_id)

        new_value = not record.favorite
        await self.update(record_id, favorite=new_value)
        return new_value

    async def add_tags(self, record_id: str, tags: list[str]) -> list[str]:
        """Add labels to a generation, keeping existing ones and their order.

        Returns:
            The record's tags after the merge

        Raises:
            NotFound: If the id does not exist
        """
        with _logged("add_tags", record_id=record_id):
            async with await self._unit_of_work() as uow:
                record = await uow.generations.get_by_id(record_id)
                if record is None:
                    raise NotFound(record_id)
                merged = list(dict.fromkeys([*(record.tags or []), *tags]))
                record.apply_updates({"tags": merged}, self._now())
                await uow.generations.save(record)
        return merged

    # === Deletes ===

    async def delete(self, record_id: str) -> bool:
        """Delete one generation.

        Returns:
            True if it existed, False otherwise
        """
        with _logged("delete", record_id=record_id):
            async with await self._unit_of_work() as uow:
                deleted = await uow.generations.delete(record_id)

        if deleted:
            logger.info("generation.deleted", record_id=record_id)
        return deleted

    async def delete_many(self, record_ids: list[str]) -> BulkDeleteResult:
        """Delete several generations concurrently.

        Each id is deleted in its own transaction; one failure does not stop
        the others. Failures are reported in the result and logged.
        """
        await self.initialize()

        unique_ids = list(dict.fromkeys(record_ids))
        outcomes = await asyncio.gather(
            *(self.delete(record_id) for record_id in unique_ids), return_exceptions=True
        )

        result = BulkDeleteResult()
        for record_id, outcome in zip(unique_ids, outcomes):
            if isinstance(outcome, BaseException):
                result.failed[record_id] = str(outcome)
            elif outcome:
                result.deleted.append(record_id)
            else:
                result.missing.append(record_id)

        if result.failed:
            logger.warning(
                "generations.bulk_delete_partial",
                deleted=len(result.deleted),
                failed_ids=sorted(result.failed),
            )
        else:
            logger.info("generations.bulk_deleted", deleted=len(result.deleted))
        return result

    async def clear_all(self, user_id: Optional[str] = None) -> int:
        """Delete every generation in the store, or only one user's.

        Returns:
            Number of generations deleted
        """
        with _logged("clear_all", user_id=user_id):
            async with await self._unit_of_work() as uow:
                count = await uow.generations.delete_all(user_id)

        logger.info("generations.cleared", deleted=count, user_id=user_id)
        return count

    async def delete_older_than(self, days: float, user_id: Optional[str] = None) -> int:
        """Delete every generation created before ``now - days``.

        Args:
            days: Age threshold in days
            user_id: If given, only this user's generations are considered

        Returns:
            Number of generations deleted

        Raises:
            ValidationFailure: If days is negative
        """
        if days < 0:
            raise ValidationFailure(f"days must not be negative (got {days})")

        cutoff = self._now() - timedelta(days=days)
        with _logged("delete_older_than", days=days, user_id=user_id):
            async with await self._unit_of_work() as uow:
                count = await uow.generations.delete_created_before(cutoff, user_id)

        logger.info(
            "generations.cleaned_up", deleted=count, cutoff=cutoff.isoformat(), user_id=user_id
        )
        return count

    # === Reads ===

    async def get_by_id(self, record_id: str) -> GenerationRecord | None:
        """Retrieve a generation, or None if it does not exist."""
        with _logged("get_by_id", record_id=record_id):
            async with await self._unit_of_work() as uow:
                return await uow.generations.get_by_id(record_id)

    async def query(
        self, user_id: Optional[str], options: Optional[GenerationQuery] = None, **filters: Any
    ) -> list[GenerationRecord]:
        """List a user's generations.

        Filters are applied first, then sorting, then paging.

        Args:
            user_id: Owner identifier
            options: Query options; alternatively pass the same fields as keywords

        Raises:
            NotAuthenticated: If user_id is empty
            ValidationFailure: If the options are malformed
        """
        user_id = _require_user(user_id)

        if options is None:
            try:
                options = GenerationQuery(**filters)
            except ValidationError as e:
                raise ValidationFailure(f"Invalid query: {e}") from e

        with _logged("query", user_id=user_id):
            async with await self._unit_of_work() as uow:
                return await uow.generations.query_for_user(user_id, options)

    async def get_unsynced(self) -> list[GenerationRecord]:
        """Every unsynced generation across all users, oldest first."""
        with _logged("get_unsynced"):
            async with await self._unit_of_work() as uow:
                return await uow.generations.get_unsynced()

    async def search(
        self, user_id: Optional[str], text: str, type: Optional[GenerationType] = None
    ) -> list[GenerationRecord]:
        """Case-insensitive search over prompt, model and tags.

        Only the user's newest SEARCH_SCAN_LIMIT records are scanned.
        """
        candidates = await self.query(
            user_id, GenerationQuery(type=type, limit=SEARCH_SCAN_LIMIT)
        )
        needle = text.lower()

        return [
            record
            for record in candidates
            if needle in record.prompt.lower()
            or (record.model is not None and needle in record.model.lower())
            or any(needle in tag.lower() for tag in record.tags or [])
        ]

    async def compute_stats(
        self, user_id: Optional[str], scan_limit: Optional[int] = None
    ) -> StorageStats:
        """Derive storage statistics from the user's current records.

        Args:
            user_id: Owner identifier
            scan_limit: Cap on records scanned (defaults to the store's scan_limit)
        """
        records = await self.query(
            user_id, GenerationQuery(limit=scan_limit or self.scan_limit)
        )

        stats = StorageStats()
        for record in records:
            stats.counts[record.type.value] += 1

            if record.synced:
                stats.synced_count += 1
            else:
                stats.unsynced_count += 1

            if record.sync_attempts > FAILED_SYNC_THRESHOLD:
                stats.failed_sync_count += 1

            stats.total_size += record.payload_size

            if stats.oldest_item is None or record.created_at < stats.oldest_item:
                stats.oldest_item = record.created_at
            if stats.newest_item is None or record.created_at > stats.newest_item:
                stats.newest_item = record.created_at

        return stats

    # === Export / import ===

    async def export_all(self, user_id: Optional[str]) -> str:
        """Dump the user's generations (up to scan_limit) as a JSON document."""
        records = await self.query(user_id, GenerationQuery(limit=self.scan_limit))
        logger.info("generations.exported", user_id=user_id, count=len(records))
        return dump_records(records)

    async def import_all(
        self, data: str | list[dict[str, Any]], user_id: Optional[str] = None
    ) -> int:
        """Restore generations from an export document, upserting by id.

        The whole document is validated before anything is written. Each
        record is then written in its own transaction; a record that fails to
        write is logged and skipped. Overwriting a stored record never undoes
        its sync progress (see GenerationRecord.carry_sync_state).

        Args:
            data: Export document (JSON text or decoded list)
            user_id: If given, every entry must belong to this user, and ids
                already stored for another user are skipped

        Returns:
            Number of generations written

        Raises:
            ValidationFailure: If the document is malformed or, with user_id,
                contains another user's entries
        """
        records = load_records(data)
        if user_id is not None:
            foreign = sorted({record.id for record in records if record.user_id != user_id})
            if foreign:
                raise ValidationFailure(f"Import contains generations of another user: {foreign}")
        await self.initialize()

        imported = 0
        for record in records:
            try:
                with _logged("import", record_id=record.id):
                    async with await self._unit_of_work() as uow:
                        existing = await uow.generations.get_by_id(record.id)
                        if existing is not None:
                            if user_id is not None and existing.user_id != user_id:
                                logger.warning(
                                    "generation.import_skipped",
                                    record_id=record.id,
                                    reason="owned_by_another_user",
                                )
                                continue
                            record.carry_sync_state(existing)
                        await uow.generations.upsert(record)
            except SQLAlchemyError:
                continue
            imported += 1

        logger.info("generations.imported", imported=imported, total=len(records))
        return imported

    # === Settings ===

    async def get_settings(self, user_id: Optional[str]) -> StorageSettings | None:
        """Retrieve the user's storage settings, or None if never saved."""
        user_id = _require_user(user_id)
        with _logged("get_settings", user_id=user_id):
            async with await self._unit_of_work() as uow:
                return await uow.settings.get_by_user(user_id)

    async def save_settings(
        self, user_id: Optional[str], update: StorageSettingsUpdate | dict[str, Any]
    ) -> StorageSettings:
        """Create or update the user's storage settings.

        Raises:
            NotAuthenticated: If user_id is empty
            ValidationFailure: If a value is out of range or unknown
        """
        user_id = _require_user(user_id)

        if not isinstance(update, StorageSettingsUpdate):
            try:
                update = StorageSettingsUpdate.model_validate(update)
            except ValidationError as e:
                raise ValidationFailure(f"Invalid storage settings: {e}") from e

        with _logged("save_settings", user_id=user_id):
            async with await self._unit_of_work() as uow:
                return await uow.settings.upsert(user_id, update.model_dump(exclude_none=True))
