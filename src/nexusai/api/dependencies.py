"""FastAPI dependencies for request context and shared components.

This module provides reusable FastAPI dependencies for:
- Application settings
- The current user context (X-User-Id header)
- The local record store and sync coordinator owned by app.state
- The subscription client used for quota reads
"""

from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from nexusai.core.config import Settings
from nexusai.services.subscription_client import SubscriptionClient
from nexusai.storage.local_store import LocalRecordStore
from nexusai.workers.sync_worker import SyncCoordinator


def get_settings() -> Settings:
    """Get application settings instance.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()  # type: ignore[call-arg]  # Pydantic loads from env vars


def get_current_user(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Resolve the bound user from the X-User-Id header.

    The local API sits behind the UI shell, which has already authenticated
    the user; it only forwards the identifier.

    Raises:
        HTTPException: 401 Unauthorized if no user is bound
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header"
        )
    return x_user_id.strip()


def get_store(request: Request) -> LocalRecordStore:
    """Get the local record store from app state.

    Raises:
        HTTPException: 503 Service Unavailable while running without persistence
    """
    store: LocalRecordStore | None = getattr(request.app.state, "store", None)
    if store is None or not store.is_ready:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Local storage is unavailable; running without persistence",
        )
    return store


def get_coordinator(request: Request) -> SyncCoordinator:
    """Get the sync coordinator from app state.

    Example:
        >>> @router.post("/run")
        >>> async def run(coordinator: SyncCoordinator = Depends(get_coordinator)):
        ...     task = coordinator.trigger()
    """
    return request.app.state.coordinator


def get_subscription_client(request: Request) -> SubscriptionClient:
    """Get the subscription client from app state."""
    return request.app.state.subscription_client
