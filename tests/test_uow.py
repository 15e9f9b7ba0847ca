"""Unit of Work pattern tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback
- Multiple repository operations are atomic
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from nexusai.models.generation import GenerationRecord, GenerationType


def make_record(record_id: str, user_id: str = "user_alice") -> GenerationRecord:
    return GenerationRecord(
        id=record_id,
        user_id=user_id,
        type=GenerationType.IMAGE,
        prompt="a lighthouse at dusk",
        result_text="https://cdn.example.com/lighthouse.png",
        created_at=datetime(2025, 1, 15, 12, 0, 0),
        updated_at=datetime(2025, 1, 15, 12, 0, 0),
    )


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory):
    """Test that UoW commits changes when exiting successfully.

    Changes made within the context should persist after the context exits.
    """
    async with await uow_factory() as uow:
        await uow.generations.add(make_record("gen_commit"))
        # Context exits successfully - should commit

    # Verify changes persisted in a new UoW context
    async with await uow_factory() as uow:
        found = await uow.generations.get_by_id("gen_commit")
        assert found is not None
        assert found.prompt == "a lighthouse at dusk"


@pytest.mark.asyncio
async def test_uow_rollback_on_exception(uow_factory):
    """Test that UoW rolls back changes when an exception occurs.

    If an exception is raised within the context:
    1. Changes should be rolled back
    2. Exception should propagate (not be swallowed)
    """
    with pytest.raises(ValueError, match="Simulated error"):
        async with await uow_factory() as uow:
            await uow.generations.add(make_record("gen_rollback"))
            raise ValueError("Simulated error")

    async with await uow_factory() as uow:
        assert await uow.generations.get_by_id("gen_rollback") is None


@pytest.mark.asyncio
async def test_uow_multiple_repositories_atomic(uow_factory):
    """Test that operations across repositories commit or roll back together."""
    with pytest.raises(RuntimeError):
        async with await uow_factory() as uow:
            await uow.generations.add(make_record("gen_atomic"))
            await uow.settings.upsert("user_alice", {"cleanup_days": 14})
            raise RuntimeError("Simulated failure after both writes")

    async with await uow_factory() as uow:
        assert await uow.generations.get_by_id("gen_atomic") is None
        assert await uow.settings.get_by_user("user_alice") is None

    async with await uow_factory() as uow:
        await uow.generations.add(make_record("gen_atomic"))
        await uow.settings.upsert("user_alice", {"cleanup_days": 14})

    async with await uow_factory() as uow:
        assert await uow.generations.get_by_id("gen_atomic") is not None
        settings = await uow.settings.get_by_user("user_alice")
        assert settings.cleanup_days == 14


@pytest.mark.asyncio
async def test_uow_rolls_back_on_constraint_violation(uow_factory):
    """A duplicate primary key aborts the whole transaction."""
    async with await uow_factory() as uow:
        await uow.generations.add(make_record("gen_dup"))

    with pytest.raises(IntegrityError):
        async with await uow_factory() as uow:
            await uow.generations.add(make_record("gen_other"))
            await uow.generations.add(make_record("gen_dup"))

    async with await uow_factory() as uow:
        assert await uow.generations.get_by_id("gen_other") is None
