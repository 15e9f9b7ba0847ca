"""Settings for the local API, the sync coordinator and the CLI.

Values come from environment variables (or a .env file) via pydantic-settings.
"""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Local Record Store
    local_db_path: str = Field(default="nexusai-storage.db", alias="LOCAL_DB_PATH")
    stats_scan_limit: int = Field(default=10_000, alias="STATS_SCAN_LIMIT")

    # Remote API (generation sync, subscription, usage, plans)
    api_base_url: str = Field(default="", alias="API_BASE_URL")
    api_token: str = Field(default="", alias="API_TOKEN")
    read_timeout_seconds: float = Field(default=10.0, alias="READ_TIMEOUT_SECONDS")
    read_max_attempts: int = Field(default=3, alias="READ_MAX_ATTEMPTS")

    # Sync Coordinator
    sync_interval_seconds: float = Field(default=300.0, alias="SYNC_INTERVAL_SECONDS")
    sync_initial_delay_seconds: float = Field(default=2.0, alias="SYNC_INITIAL_DELAY_SECONDS")
    sync_request_timeout_seconds: float = Field(
        default=30.0, alias="SYNC_REQUEST_TIMEOUT_SECONDS"
    )

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast with a clear error message if the remote API is not configured
        or the sync timers are nonsensical. Validation is skipped in test
        environments.
        """
        if self.app_env in ("test", "testing"):
            return self

        missing = []

        # API_BASE_URL is required for sync, subscription and usage reads
        if not self.api_base_url:
            missing.append(
                "API_BASE_URL: Base URL of the NexusAI web API (e.g. https://app.example.com)"
            )

        if self.sync_interval_seconds <= 0:
            missing.append("SYNC_INTERVAL_SECONDS: Must be a positive number of seconds")

        if self.sync_initial_delay_seconds < 0:
            missing.append("SYNC_INITIAL_DELAY_SECONDS: Must not be negative")

        if missing:
            error_msg = "CRITICAL: Invalid or missing environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog for the environment and LOG_LEVEL.

    Production renders one JSON object per line (with exception info); every
    other environment uses the console renderer. Events below LOG_LEVEL are
    dropped.
    """
    level = logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)

    processors = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.app_env == "production":
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        # The CLI and tests reconfigure at runtime; only production caches
        cache_logger_on_first_use=settings.app_env == "production",
    )
