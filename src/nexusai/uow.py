"""Unit of Work for the local record store.

One UnitOfWork wraps one SQLite transaction and exposes the generation and
settings repositories bound to it.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nexusai.repositories.generation import GenerationRepository
from nexusai.repositories.storage_settings import StorageSettingsRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Transaction scope over the local database.

    Commits when the block exits normally, rolls back when it raises, and
    closes the session either way. Exceptions are never swallowed.

    Example:
        async with await uow_factory() as uow:
            record = await uow.generations.get_by_id(record_id)
            record.mark_synced(utc_now())
    """

    def __init__(self, session: AsyncSession):
        self.session = session

        self.generations = GenerationRepository(session)
        self.settings = StorageSettingsRepository(session)

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.debug("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Build the callable the store uses to open a UnitOfWork per operation.

    Args:
        session_factory: Session factory from setup_db_session()

    Returns:
        Async callable returning a fresh UnitOfWork on a new session

    Example:
        uow_factory = create_uow_factory(setup_db_session(engine))

        async with await uow_factory() as uow:
            await uow.generations.add(record)
    """

    async def _create_uow() -> UnitOfWork:
        return UnitOfWork(session_factory())

    return _create_uow
