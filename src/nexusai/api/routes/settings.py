"""Per-user storage settings endpoints.

- GET /api/settings - Current settings (defaults if never saved)
- PUT /api/settings - Partial update; omitted fields keep their value
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from nexusai.api.dependencies import get_current_user, get_store
from nexusai.models.storage_settings import StorageSettings, StorageSettingsUpdate
from nexusai.storage.local_store import LocalRecordStore

router = APIRouter(prefix="/api/settings", tags=["settings"])


class StorageSettingsResponse(BaseModel):
    user_id: str
    max_storage_size: int
    auto_sync: bool
    sync_interval_seconds: int
    compression_enabled: bool
    auto_cleanup: bool
    cleanup_days: int
    updated_at: datetime | None = None
    saved: bool


def _to_response(settings: StorageSettings, saved: bool) -> StorageSettingsResponse:
    return StorageSettingsResponse(
        user_id=settings.user_id,
        max_storage_size=settings.max_storage_size,
        auto_sync=settings.auto_sync,
        sync_interval_seconds=settings.sync_interval_seconds,
        compression_enabled=settings.compression_enabled,
        auto_cleanup=settings.auto_cleanup,
        cleanup_days=settings.cleanup_days,
        updated_at=settings.updated_at if saved else None,
        saved=saved,
    )


@router.get("", response_model=StorageSettingsResponse)
async def get_settings(
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> StorageSettingsResponse:
    settings = await store.get_settings(user_id)
    if settings is None:
        return _to_response(StorageSettings(user_id=user_id), saved=False)
    return _to_response(settings, saved=True)


@router.put("", response_model=StorageSettingsResponse)
async def update_settings(
    update: StorageSettingsUpdate,
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> StorageSettingsResponse:
    settings = await store.save_settings(user_id, update)
    return _to_response(settings, saved=True)
