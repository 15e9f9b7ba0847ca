"""Generation repository for the local record store.

Provides data access methods for GenerationRecord entities.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nexusai.models.generation import GenerationQuery, GenerationRecord


class GenerationRepository:
    """Repository for GenerationRecord entities.

    Query methods filter, then sort, then page in SQL. Ties on the sort key are
    broken by id ascending so paging is deterministic.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, record_id: str) -> GenerationRecord | None:
        """Retrieve a generation by id.

        Args:
            record_id: Generation's unique identifier

        Returns:
            GenerationRecord if found, None otherwise
        """
        return await self.session.get(GenerationRecord, record_id)

    async def add(self, record: GenerationRecord) -> GenerationRecord:
        """Persist new generation to database.

        Args:
            record: GenerationRecord entity to persist

        Returns:
            Persisted record
        """
        self.session.add(record)
        await self.session.flush()
        return record

    async def save(self, record: GenerationRecord) -> GenerationRecord:
        """Flush changes made to an attached record."""
        self.session.add(record)
        await self.session.flush()
        return record

    async def upsert(self, record: GenerationRecord) -> GenerationRecord:
        """Insert or replace a generation by primary key.

        Args:
            record: Detached record carrying the full desired state

        Returns:
            The persistent instance after merge
        """
        merged = await self.session.merge(record)
        await self.session.flush()
        return merged

    async def query_for_user(
        self, user_id: str, options: Optional[GenerationQuery] = None
    ) -> list[GenerationRecord]:
        """Retrieve a user's generations with filtering, ordering and paging.

        Query explanation:
        - WHERE user_id (+ type, synced, favorite): filters first
        - ORDER BY sort key, then id ASC: stable order across ties
        - OFFSET / LIMIT: paging last

        Args:
            user_id: Owner identifier
            options: Filters and paging (defaults: newest first, limit 100)

        Returns:
            List of matching generations for the requested page
        """
        options = options or GenerationQuery()

        stmt = select(GenerationRecord).where(GenerationRecord.user_id == user_id)  # type: ignore[arg-type]
        if options.type is not None:
            stmt = stmt.where(GenerationRecord.type == options.type)  # type: ignore[arg-type]
        if options.synced is not None:
            stmt = stmt.where(GenerationRecord.synced == options.synced)  # type: ignore[arg-type]
        if options.favorites_only:
            stmt = stmt.where(GenerationRecord.favorite == True)  # type: ignore[arg-type]  # noqa: E712

        sort_column = getattr(GenerationRecord, options.sort_by)
        sort_key = sort_column.desc() if options.sort_order == "desc" else sort_column.asc()

        stmt = (
            stmt.order_by(sort_key, GenerationRecord.id.asc())  # type: ignore[attr-defined]
            .offset(options.offset)
            .limit(options.limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_unsynced(self) -> list[GenerationRecord]:
        """Retrieve every unsynced generation across all users, oldest first.

        Returns:
            List of generations with synced = false
        """
        result = await self.session.execute(
            select(GenerationRecord)
            .where(GenerationRecord.synced == False)  # type: ignore[arg-type]  # noqa: E712
            .order_by(GenerationRecord.created_at.asc(), GenerationRecord.id.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def delete(self, record_id: str) -> bool:
        """Delete a generation by id (idempotent).

        Args:
            record_id: Generation id to delete

        Returns:
            True if a row was deleted, False if it did not exist
        """
        result = await self.session.execute(
            delete(GenerationRecord).where(GenerationRecord.id == record_id)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def delete_all(self, user_id: Optional[str] = None) -> int:
        """Delete every generation, or every generation of one user.

        Args:
            user_id: Owner to restrict the delete to (None means all users)

        Returns:
            Number of rows deleted
        """
        stmt = delete(GenerationRecord)
        if user_id is not None:
            stmt = stmt.where(GenerationRecord.user_id == user_id)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]

    async def delete_created_before(self, cutoff: datetime, user_id: Optional[str] = None) -> int:
        """Delete every generation created strictly before the cutoff.

        Args:
            cutoff: Naive UTC timestamp
            user_id: Owner to restrict the delete to (None means all users)

        Returns:
            Number of rows deleted
        """
        stmt = delete(GenerationRecord).where(GenerationRecord.created_at < cutoff)  # type: ignore[arg-type]
        if user_id is not None:
            stmt = stmt.where(GenerationRecord.user_id == user_id)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
