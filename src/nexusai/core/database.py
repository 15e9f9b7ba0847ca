"""Local database engine and session factory setup."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

MEMORY_PATH = ":memory:"


def sqlite_url(db_path: str) -> str:
    """Build an aiosqlite connection URL for a local database file.

    Args:
        db_path: Filesystem path of the database file, or ":memory:"

    Returns:
        SQLAlchemy async URL (sqlite+aiosqlite:///...)
    """
    if db_path == MEMORY_PATH:
        return "sqlite+aiosqlite://"
    return f"sqlite+aiosqlite:///{db_path}"


def create_local_engine(db_path: str) -> AsyncEngine:
    """Create the async engine for the local record store.

    In-memory databases exist per connection, so they are pinned to a single
    shared connection with StaticPool.

    Args:
        db_path: Filesystem path of the database file, or ":memory:"

    Returns:
        Async engine bound to the local SQLite database
    """
    if db_path == MEMORY_PATH:
        return create_async_engine(
            sqlite_url(db_path),
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )

    return create_async_engine(
        sqlite_url(db_path),
        connect_args={"timeout": 30},  # Wait on SQLite write locks instead of failing
        pool_pre_ping=True,
        echo=False,  # Don't log SQL queries (use structlog instead)
    )


def setup_db_session(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        engine: Engine returned by create_local_engine()

    Returns:
        Async session factory for creating database sessions
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )
