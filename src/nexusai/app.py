"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nexusai.api.routes import generations, quota, settings as settings_routes, sync
from nexusai.core import timezone  # noqa: F401
from nexusai.core.config import Settings, configure_logging
from nexusai.services.exceptions import (
    NotAuthenticated,
    NotFound,
    StorageUnavailable,
    ValidationFailure,
)
from nexusai.services.subscription_client import SubscriptionClient
from nexusai.services.sync.remote_client import GenerationSyncClient
from nexusai.storage.local_store import LocalRecordStore
from nexusai.workers.sync_worker import SyncCoordinator

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, open the local record store, build the sync
      client, the coordinator and the subscription client
    - Shutdown: Stop the coordinator (letting an in-flight pass finish), close the store

    If local storage cannot be opened the application keeps running without
    persistence: storage routes answer 503 and /health reports "degraded".
    """
    settings: Settings = app.state.settings

    # Configure logging
    configure_logging(settings)

    store = LocalRecordStore(settings.local_db_path, scan_limit=settings.stats_scan_limit)
    try:
        await store.initialize()
    except StorageUnavailable as e:
        logger.error(
            "startup.storage_unavailable",
            error=str(e),
            message="Local storage could not be opened - continuing without persistence",
        )

    sync_client = GenerationSyncClient(
        settings.api_base_url,
        token=settings.api_token,
        timeout=settings.sync_request_timeout_seconds,
    )
    coordinator = SyncCoordinator(
        store,
        sync_client,
        interval_seconds=settings.sync_interval_seconds,
        initial_delay_seconds=settings.sync_initial_delay_seconds,
    )

    subscription_client = SubscriptionClient(
        settings.api_base_url,
        token=settings.api_token,
        timeout=settings.read_timeout_seconds,
        max_attempts=settings.read_max_attempts,
    )

    # Store in app.state for access in routes
    app.state.store = store
    app.state.coordinator = coordinator
    app.state.subscription_client = subscription_client

    logger.info(
        "application.startup",
        db_path=settings.local_db_path,
        storage_ready=store.is_ready,
        api_base_url=settings.api_base_url,
    )

    yield

    logger.info("application.shutdown")
    await coordinator.shutdown()
    await store.close()


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP status codes."""

    @app.exception_handler(NotAuthenticated)
    async def not_authenticated_handler(request: Request, exc: NotAuthenticated):
        return _error(status.HTTP_401_UNAUTHORIZED, exc)

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return _error(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(ValidationFailure)
    async def validation_failure_handler(request: Request, exc: ValidationFailure):
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Application settings (loaded from the environment if omitted)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="NexusAI Local API",
        description="Offline-first generation store with background sync",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Register API routers (each router defines its own /api/... prefix)
    app.include_router(generations.router)
    app.include_router(sync.router)
    app.include_router(settings_routes.router)
    app.include_router(quota.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint.

        Returns:
            200: {"status": "healthy", ...} when local storage is ready
            200: {"status": "degraded", ...} when running without persistence
        """
        store: LocalRecordStore | None = getattr(app.state, "store", None)
        coordinator: SyncCoordinator | None = getattr(app.state, "coordinator", None)
        storage_ready = store is not None and store.is_ready

        if not storage_ready:
            logger.debug("health_check.degraded")

        return {
            "status": "healthy" if storage_ready else "degraded",
            "storage_ready": storage_ready,
            "sync_active": coordinator.is_active if coordinator else False,
        }

    return app


# Create app instance for uvicorn
app = create_app()
