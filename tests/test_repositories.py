"""Repository layer tests for the local record store.

Tests focus on query logic:
- Filter, then sort, then page, with id as the tie-breaker
- Unsynced records across users, oldest first
- Cutoff and per-user deletes, settings UPSERT behavior
- Naive UTC timestamps survive a write and read

Simple CRUD operations are covered through the store tests.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import DateTime

from nexusai.models.generation import GenerationQuery, GenerationRecord, GenerationType

BASE_TIME = datetime(2025, 1, 15, 12, 0, 0)


def make_record(
    record_id: str,
    user_id: str = "user_alice",
    minutes: int = 0,
    type: GenerationType = GenerationType.IMAGE,
    **overrides,
) -> GenerationRecord:
    created_at = BASE_TIME + timedelta(minutes=minutes)
    values = {
        "id": record_id,
        "user_id": user_id,
        "type": type,
        "prompt": f"prompt for {record_id}",
        "result_text": "result",
        "created_at": created_at,
        "updated_at": created_at,
    }
    values.update(overrides)
    return GenerationRecord(**values)


async def _add_all(uow_factory, *records: GenerationRecord) -> None:
    async with await uow_factory() as uow:
        for record in records:
            await uow.generations.add(record)


@pytest.mark.asyncio
async def test_query_ties_break_by_id(uow_factory):
    """Test query_for_user orders equal timestamps by id so paging is stable.

    Scenario:
    1. Create three records with the same created_at, inserted out of id order
    2. Page through them one at a time
    3. Assert every page is deterministic and nothing repeats
    """
    await _add_all(
        uow_factory,
        make_record("gen_c"),
        make_record("gen_a"),
        make_record("gen_b"),
    )

    pages = []
    async with await uow_factory() as uow:
        for offset in range(3):
            page = await uow.generations.query_for_user(
                "user_alice", GenerationQuery(limit=1, offset=offset)
            )
            pages.extend(record.id for record in page)

    assert pages == ["gen_a", "gen_b", "gen_c"]


@pytest.mark.asyncio
async def test_query_filters_before_paging(uow_factory):
    """Test that type/synced/favorite filters apply before offset and limit."""
    await _add_all(
        uow_factory,
        make_record("gen_1", minutes=1, type=GenerationType.CODE),
        make_record("gen_2", minutes=2, favorite=True),
        make_record("gen_3", minutes=3, synced=True),
        make_record("gen_4", minutes=4, favorite=True),
        make_record("gen_5", minutes=5, user_id="user_bob", favorite=True),
    )

    async with await uow_factory() as uow:
        favorites = await uow.generations.query_for_user(
            "user_alice", GenerationQuery(favorites_only=True, limit=1, offset=1)
        )
        unsynced_images = await uow.generations.query_for_user(
            "user_alice",
            GenerationQuery(type=GenerationType.IMAGE, synced=False, sort_order="asc"),
        )
    assert [record.id for record in favorites] == ["gen_2"]
    assert [record.id for record in unsynced_images] == ["gen_2", "gen_4"]

@pytest.mark.asyncio
async def test_get_unsynced_spans_users_oldest_first(uow_factory):
    """Test get_unsynced returns every user's unsynced records in created_at order."""
    await _add_all(
        uow_factory,
        make_record("gen_late", minutes=10),
        make_record("gen_bob", minutes=5, user_id="user_bob"),
        make_record("gen_done", minutes=1, synced=True),
        make_record("gen_early", minutes=0),
    )

    async with await uow_factory() as uow:
        unsynced = await uow.generations.get_unsynced()

    assert [record.id for record in unsynced] == ["gen_early", "gen_bob", "gen_late"]


@pytest.mark.asyncio
async def test_delete_created_before_is_strict(uow_factory):
    """Test delete_created_before keeps records created exactly at the cutoff."""
    await _add_all(
        uow_factory,
        make_record("gen_old", minutes=0),
        make_record("gen_at_cutoff", minutes=30),
        make_record("gen_new", minutes=60),
    )

    async with await uow_factory() as uow:
        deleted = await uow.generations.delete_created_before(BASE_TIME + timedelta(minutes=30))

    async with await uow_factory() as uow:
        remaining = await uow.generations.query_for_user(
            "user_alice", GenerationQuery(sort_order="asc")
        )

    assert deleted == 1
    assert [record.id for record in remaining] == ["gen_at_cutoff", "gen_new"]


@pytest.mark.asyncio
async def test_deletes_can_be_scoped_to_one_user(uow_factory):
    """Test delete_all and delete_created_before leave other users' records alone."""
    await _add_all(
        uow_factory,
        make_record("gen_alice_old", minutes=0),
        make_record("gen_alice_new", minutes=60),
        make_record("gen_bob_old", minutes=0, user_id="user_bob"),
        make_record("gen_carol", minutes=0, user_id="user_carol"),
    )

    async with await uow_factory() as uow:
        old_deleted = await uow.generations.delete_created_before(
            BASE_TIME + timedelta(minutes=30), "user_alice"
        )
        bob_deleted = await uow.generations.delete_all("user_bob")

    async with await uow_factory() as uow:
        assert await uow.generations.get_by_id("gen_alice_old") is None
        assert await uow.generations.get_by_id("gen_alice_new") is not None
        assert await uow.generations.get_by_id("gen_bob_old") is None
        assert await uow.generations.get_by_id("gen_carol") is not None

    assert old_deleted == 1
    assert bob_deleted == 1


@pytest.mark.asyncio
async def test_timestamps_round_trip_as_naive_utc(uow_factory):
    """Test naive UTC timestamps are written and read back unchanged."""
    attempted_at = BASE_TIME + timedelta(minutes=5, microseconds=250)
    await _add_all(uow_factory, make_record("gen_1", last_sync_attempt=attempted_at))

    async with await uow_factory() as uow:
        await uow.settings.upsert("user_alice", {"cleanup_days": 7})

    async with await uow_factory() as uow:
        record = await uow.generations.get_by_id("gen_1")
        settings = await uow.settings.get_by_user("user_alice")

    assert record.created_at == BASE_TIME
    assert record.created_at.tzinfo is None
    assert record.last_sync_attempt == attempted_at
    assert record.last_sync_attempt.tzinfo is None
    assert settings.updated_at.tzinfo is None

    for column in ("created_at", "updated_at", "last_sync_attempt"):
        column_type = GenerationRecord.__table__.c[column].type  # type: ignore[attr-defined]
        assert isinstance(column_type, DateTime)
        assert column_type.timezone is False


@pytest.mark.asyncio
async def test_upsert_replaces_existing_record(uow_factory):
    """Test upsert inserts new ids and overwrites existing ones in place."""
    await _add_all(uow_factory, make_record("gen_1"))

    async with await uow_factory() as uow:
        await uow.generations.upsert(make_record("gen_1", prompt="replaced", sync_attempts=2))
        await uow.generations.upsert(make_record("gen_2"))

    async with await uow_factory() as uow:
        first = await uow.generations.get_by_id("gen_1")
        second = await uow.generations.get_by_id("gen_2")

    assert first.prompt == "replaced"
    assert first.sync_attempts == 2
    assert second is not None


@pytest.mark.asyncio
async def test_settings_upsert(uow_factory):
    """Test StorageSettingsRepository.upsert creates then updates a single row.

    Scenario:
    1. Upsert settings for a user (INSERT)
    2. Upsert again with a different field (UPDATE)
    3. Assert one row per user with both changes applied
    """
    async with await uow_factory() as uow:
        created = await uow.settings.upsert("user_alice", {"cleanup_days": 14})
        settings_id = created.id

    async with await uow_factory() as uow:
        updated = await uow.settings.upsert("user_alice", {"auto_cleanup": True})

    assert updated.id == settings_id
    assert updated.cleanup_days == 14
    assert updated.auto_cleanup is True
    assert updated.auto_sync is True

    async with await uow_factory() as uow:
        assert await uow.settings.get_by_user("user_bob") is None
