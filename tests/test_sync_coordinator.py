"""Sync Coordinator tests.

Tests focus on pass semantics and scheduling:
- Records are pushed one at a time in get_unsynced() order
- The first failure aborts the pass and leaves later records untouched
- At most one pass is in flight; extra triggers are dropped
- Timers run on a manual clock; deactivation cancels them deterministically
"""

import asyncio

import pytest

from nexusai.services.exceptions import RemoteRejectedError, StorageUnavailable
from nexusai.storage.local_store import LocalRecordStore
from nexusai.workers.sync_worker import SyncCoordinator

USER = "user_alice"


async def eventually(predicate, timeout: float = 5.0) -> None:
    """Poll until predicate() is true (store I/O runs off the event loop)."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def _seed(store, draft, now, count: int) -> list[str]:
    ids = []
    for index in range(count):
        ids.append(await store.save(draft(prompt=f"prompt {index}"), USER))
        now.advance(seconds=1)
    return ids


@pytest.fixture
def coordinator(store, pusher, clock):
    return SyncCoordinator(
        store, pusher, interval_seconds=300, initial_delay_seconds=2, clock=clock
    )


@pytest.mark.asyncio
class TestRunPass:
    """Test a single sync pass."""

    async def test_pushes_all_records_in_order(self, coordinator, store, pusher, draft, now):
        ids = await _seed(store, draft, now, 3)

        result = await coordinator.run_pass()

        assert pusher.pushed == ids
        assert result.attempted == 3
        assert result.synced == 3
        assert result.aborted is False
        assert result.succeeded
        assert await store.get_unsynced() == []

    async def test_first_failure_aborts_remaining_records(
        self, coordinator, store, pusher, draft, now
    ):
        first, second, third = await _seed(store, draft, now, 3)
        pusher.fail_on = {second}

        result = await coordinator.run_pass()

        assert pusher.attempted == [first, second]
        assert third not in pusher.attempted
        assert (await store.get_by_id(first)).synced is True
        assert (await store.get_by_id(second)).synced is False
        assert (await store.get_by_id(third)).synced is False
        assert (await store.get_by_id(second)).sync_attempts == 1
        assert (await store.get_by_id(third)).sync_attempts == 0
        assert result.failed_id == second
        assert result.aborted is True
        assert result.synced == 1
        assert "connection refused" in result.error

    async def test_permanent_failure_also_aborts_without_raising(
        self, coordinator, store, pusher, draft, now
    ):
        (record_id,) = await _seed(store, draft, now, 1)
        pusher.fail_on = {record_id}
        pusher.error = RemoteRejectedError("Request rejected (413): payload too large")

        result = await coordinator.run_pass()

        assert result.failed_id == record_id
        assert (await store.get_by_id(record_id)).sync_attempts == 1

    async def test_persistently_failing_record_blocks_later_records(
        self, coordinator, store, pusher, draft, now
    ):
        first, second = await _seed(store, draft, now, 2)
        pusher.fail_on = {first}

        await coordinator.run_pass()
        await coordinator.run_pass()

        assert pusher.attempted == [first, first]
        assert (await store.get_by_id(first)).sync_attempts == 2
        assert (await store.get_by_id(second)).synced is False

    async def test_empty_store_is_a_successful_noop(self, coordinator, pusher):
        result = await coordinator.run_pass()

        assert result.attempted == 0
        assert result.aborted is False
        assert pusher.attempted == []

    async def test_fetch_failure_is_reported_not_raised(self, coordinator, store, monkeypatch):
        async def broken_get_unsynced():
            raise StorageUnavailable("Local storage could not be opened: disk I/O error")

        monkeypatch.setattr(store, "get_unsynced", broken_get_unsynced)

        result = await coordinator.run_pass()

        assert result.aborted is True
        assert result.attempted == 0
        assert "disk I/O error" in result.error

    async def test_record_deleted_during_push_is_skipped(
        self, coordinator, store, pusher, draft, now
    ):
        first, second = await _seed(store, draft, now, 2)
        pusher.gate = asyncio.Event()

        task = coordinator.trigger()
        await eventually(lambda: pusher.attempted == [first])
        await store.delete(first)
        pusher.gate.set()

        result = await task

        assert pusher.pushed == [first, second]
        assert result.attempted == 2
        assert result.synced == 1
        assert result.aborted is False
        assert (await store.get_by_id(second)).synced is True


@pytest.mark.asyncio
class TestSingleFlight:
    """Test that passes never overlap."""

    async def test_trigger_during_pass_is_dropped(self, coordinator, store, pusher, draft, now):
        (record_id,) = await _seed(store, draft, now, 1)
        pusher.gate = asyncio.Event()

        first = coordinator.trigger()
        await eventually(lambda: pusher.attempted == [record_id])
        assert coordinator.is_running

        assert coordinator.trigger() is None

        pusher.gate.set()
        result = await coordinator.wait_idle()

        assert first is not None
        assert result.synced == 1
        assert pusher.attempted == [record_id]
        assert coordinator.last_result is result
        assert not coordinator.is_running

    async def test_wait_idle_without_pass_returns_none(self, coordinator):
        assert await coordinator.wait_idle() is None


@pytest.mark.asyncio
class TestScheduling:
    """Test activation, timers and deactivation on a manual clock."""

    async def test_activation_requires_ready_store_and_user(self, pusher, clock, db_path, store):
        uninitialized = LocalRecordStore(db_path)
        coordinator = SyncCoordinator(uninitialized, pusher, clock=clock)
        assert coordinator.activate(USER) is False
        assert not coordinator.is_active

        coordinator = SyncCoordinator(store, pusher, clock=clock)
        assert coordinator.activate(None) is False
        assert coordinator.activate("") is False
        assert not coordinator.is_active

    async def test_initial_delay_then_periodic_passes(
        self, coordinator, store, pusher, clock, draft, now
    ):
        (first,) = await _seed(store, draft, now, 1)
        assert coordinator.activate(USER) is True

        await clock.advance(1.5)
        assert pusher.attempted == []

        await clock.advance(0.5)
        await eventually(lambda: coordinator.last_result is not None)
        await coordinator.wait_idle()
        assert pusher.pushed == [first]

        second = await store.save(draft(prompt="made later"), USER)

        await clock.advance(297.0)
        assert pusher.attempted == [first]

        await clock.advance(1.0)
        await eventually(lambda: pusher.pushed == [first, second])
        await coordinator.wait_idle()
        assert (await store.get_by_id(second)).synced is True

        await coordinator.shutdown()

    async def test_deactivate_cancels_pending_timers(
        self, coordinator, store, pusher, clock, draft, now
    ):
        await _seed(store, draft, now, 1)
        coordinator.activate(USER)
        await clock.advance(0)
        assert clock.pending == 2

        coordinator.deactivate()
        await clock.advance(0)
        await clock.advance(10_000)

        assert not coordinator.is_active
        assert clock.pending == 0
        assert pusher.attempted == []

    async def test_in_flight_pass_finishes_after_deactivate(
        self, coordinator, store, pusher, clock, draft, now
    ):
        (record_id,) = await _seed(store, draft, now, 1)
        pusher.gate = asyncio.Event()
        coordinator.activate(USER)

        await clock.advance(2)
        await eventually(lambda: pusher.attempted == [record_id])

        coordinator.deactivate()
        pusher.gate.set()
        result = await coordinator.wait_idle()

        assert result.synced == 1
        assert (await store.get_by_id(record_id)).synced is True

        await clock.advance(1_000)
        assert pusher.attempted == [record_id]

    async def test_reactivation_restarts_timers(self, coordinator, clock):
        coordinator.activate(USER)
        coordinator.activate("user_bob")
        await clock.advance(0)

        assert coordinator.user_id == "user_bob"
        assert clock.pending == 2

        await coordinator.shutdown()
        assert clock.pending == 0

    async def test_activation_interval_overrides_default(
        self, coordinator, store, pusher, clock, draft, now
    ):
        assert coordinator.activate(USER, interval_seconds=30) is True
        await clock.advance(2)
        await coordinator.wait_idle()

        (record_id,) = await _seed(store, draft, now, 1)
        await clock.advance(27)
        assert pusher.attempted == []

        await clock.advance(1)
        await eventually(lambda: pusher.pushed == [record_id])
        await coordinator.wait_idle()

        coordinator.activate(USER)
        assert coordinator.active_interval_seconds == 300
        await coordinator.shutdown()
