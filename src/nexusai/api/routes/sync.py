"""Sync Coordinator control endpoints.

- GET /api/sync/status - Coordinator state and the last pass result
- POST /api/sync/start - Bind the current user and start the sync timers at their
  saved interval (refused while their auto-sync setting is off)
- POST /api/sync/stop - Cancel the timers (an in-flight pass still finishes)
- POST /api/sync/run - Run a pass now, unless one is already in flight
"""

import asyncio
from dataclasses import asdict
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from nexusai.api.dependencies import get_coordinator, get_current_user, get_store
from nexusai.storage.local_store import LocalRecordStore
from nexusai.workers.sync_worker import SyncCoordinator

logger = structlog.get_logger()
router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncStatusResponse(BaseModel):
    """Response model for coordinator status."""

    active: bool
    running: bool
    user_id: str | None = None
    interval_seconds: float | None = None
    last_result: dict[str, Any] | None = None


def _status(coordinator: SyncCoordinator) -> SyncStatusResponse:
    return SyncStatusResponse(
        active=coordinator.is_active,
        running=coordinator.is_running,
        user_id=coordinator.user_id,
        interval_seconds=coordinator.active_interval_seconds if coordinator.is_active else None,
        last_result=asdict(coordinator.last_result) if coordinator.last_result else None,
    )


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> SyncStatusResponse:
    return _status(coordinator)


@router.post("/start", response_model=SyncStatusResponse)
async def start_sync(
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> SyncStatusResponse:
    """Activate background sync for the current user.

    Uses the user's saved sync interval when one exists. Returns 409 Conflict
    if the user has turned auto-sync off in their storage settings.
    """
    settings = await store.get_settings(user_id)
    if settings is not None and not settings.auto_sync:
        logger.info("sync.start_refused", user_id=user_id, reason="auto_sync_disabled")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Auto-sync is disabled in storage settings",
        )

    interval = settings.sync_interval_seconds if settings is not None else None
    if not coordinator.activate(user_id, interval_seconds=interval):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync cannot start until local storage is ready",
        )
    return _status(coordinator)


@router.post("/stop", response_model=SyncStatusResponse)
async def stop_sync(
    _user_id: str = Depends(get_current_user),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> SyncStatusResponse:
    coordinator.deactivate()
    return _status(coordinator)


@router.post("/run")
async def run_sync_pass(
    _user_id: str = Depends(get_current_user),
    _store: LocalRecordStore = Depends(get_store),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Run one sync pass and return its result.

    Returns 409 Conflict if a pass is already in flight (the request is
    dropped, not queued).
    """
    logger.info("sync.manual_pass_requested")
    task = coordinator.trigger(reason="manual")
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="A sync pass is already running"
        )

    # Shielded: a dropped request must not cancel the pass
    result = await asyncio.shield(task)
    return asdict(result)
