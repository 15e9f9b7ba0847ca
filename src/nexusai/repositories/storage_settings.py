"""StorageSettings repository for the local record store.

Provides data access methods for per-user storage settings.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nexusai.core.timezone import utc_now
from nexusai.models.storage_settings import StorageSettings


class StorageSettingsRepository:
    """Repository for StorageSettings entities (one row per user)."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_user(self, user_id: str) -> StorageSettings | None:
        """Retrieve settings for a user.

        Args:
            user_id: Owner identifier (unique lookup)

        Returns:
            StorageSettings if the user saved any, None otherwise
        """
        result = await self.session.execute(
            select(StorageSettings).where(StorageSettings.user_id == user_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def upsert(self, user_id: str, values: dict[str, Any]) -> StorageSettings:
        """Create or update a user's settings.

        Args:
            user_id: Owner identifier
            values: Setting fields to write

        Returns:
            Persisted settings row
        """
        settings = await self.get_by_user(user_id)
        if settings is None:
            settings = StorageSettings(user_id=user_id, **values)
        else:
            for name, value in values.items():
                setattr(settings, name, value)
            settings.updated_at = utc_now()

        self.session.add(settings)
        await self.session.flush()
        return settings
