"""StorageSettings entity - Per-user local storage preferences."""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from nexusai.core.timezone import utc_now

DEFAULT_MAX_STORAGE_SIZE = 500 * 1024 * 1024  # 500 MiB


def _settings_id() -> str:
    return f"settings_{uuid4().hex}"


class StorageSettings(SQLModel, table=True):
    """StorageSettings holds one user's local storage preferences.

    Added in local schema version 2.
    """

    __tablename__ = "storage_settings"  # type: ignore[assignment]

    id: str = Field(default_factory=_settings_id, primary_key=True, max_length=64)
    user_id: str = Field(unique=True, index=True, max_length=255)
    max_storage_size: int = Field(default=DEFAULT_MAX_STORAGE_SIZE, ge=0)
    auto_sync: bool = Field(default=True)
    sync_interval_seconds: int = Field(default=300, gt=0)
    compression_enabled: bool = Field(default=False)
    auto_cleanup: bool = Field(default=False)
    cleanup_days: int = Field(default=30, ge=0)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class StorageSettingsUpdate(BaseModel):
    """Partial settings update; omitted fields keep their current value."""

    model_config = ConfigDict(extra="forbid")

    max_storage_size: Optional[int] = PydanticField(default=None, ge=0)
    auto_sync: Optional[bool] = None
    sync_interval_seconds: Optional[int] = PydanticField(default=None, gt=0)
    compression_enabled: Optional[bool] = None
    auto_cleanup: Optional[bool] = None
    cleanup_days: Optional[int] = PydanticField(default=None, ge=0)
