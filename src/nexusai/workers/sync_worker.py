"""Sync Coordinator - background delivery of unsynced generations.

Eventually pushes every locally created, unsynced generation to the remote
store without blocking callers and while tolerating a flaky network.

Scheduling:
- One timer fires a pass after a short initial delay following activation
- A second timer fires a pass every interval_seconds after activation
- At most one pass is in flight; a timer firing during a pass is dropped

Each pass pushes records strictly one at a time in get_unsynced() order and
aborts at the first failure. Remaining records wait for the next scheduled
pass, so a down remote endpoint sees at most one request per pass.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol

import structlog

from nexusai.core.clock import Clock, SystemClock
from nexusai.models.generation import GenerationRecord
from nexusai.services.exceptions import NotFound, TransientError
from nexusai.storage.local_store import LocalRecordStore

logger = structlog.get_logger(__name__)


class GenerationPusher(Protocol):
    """Remote side of a sync pass (GenerationSyncClient in production)."""

    async def push(self, record: GenerationRecord) -> None: ...


@dataclass
class SyncPassResult:
    """Outcome of one sync pass."""

    attempted: int = 0
    synced: int = 0
    failed_id: Optional[str] = None
    aborted: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return not self.aborted


class SyncCoordinator:
    """Runs sync passes on a schedule while a user is bound and storage is ready.

    Args:
        store: Initialized local record store
        pusher: Delivers one record to the remote store
        interval_seconds: Default period between scheduled passes
        initial_delay_seconds: Delay before the first pass after activation
        clock: Sleep source for the timers (tests inject a manual clock)
    """

    def __init__(
        self,
        store: LocalRecordStore,
        pusher: GenerationPusher,
        interval_seconds: float = 300.0,
        initial_delay_seconds: float = 2.0,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.pusher = pusher
        self.interval_seconds = interval_seconds
        self.active_interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.clock = clock or SystemClock()

        self.user_id: Optional[str] = None
        self.last_result: Optional[SyncPassResult] = None
        self._timers: list[asyncio.Task] = []
        self._pass_task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return bool(self._timers)

    @property
    def is_running(self) -> bool:
        """True while a pass is in flight."""
        return self._pass_task is not None and not self._pass_task.done()

    # === Lifecycle ===

    def activate(self, user_id: Optional[str], interval_seconds: Optional[float] = None) -> bool:
        """Start the initial-delay and periodic timers for a bound user.

        Activating again rebinds the user and restarts both timers.

        Args:
            user_id: User whose session enables sync
            interval_seconds: Period for this activation (defaults to the
                coordinator's interval_seconds)

        Returns:
            True if the coordinator is now active, False if storage is not
            ready or no user is bound
        """
        if not self.store.is_ready:
            logger.info("sync.activation_refused", reason="storage_not_ready")
            return False

        if not user_id:
            logger.info("sync.activation_refused", reason="no_user")
            return False

        if self.is_active:
            self.deactivate()

        self.user_id = user_id
        self.active_interval_seconds = interval_seconds or self.interval_seconds
        self._timers = [
            asyncio.create_task(self._initial_timer(), name="sync-initial-delay"),
            asyncio.create_task(self._periodic_timer(), name="sync-periodic"),
        ]

        logger.info(
            "sync.activated",
            user_id=user_id,
            interval_seconds=self.active_interval_seconds,
            initial_delay_seconds=self.initial_delay_seconds,
        )
        return True

    def deactivate(self) -> None:
        """Cancel both timers. No new pass starts after this returns.

        A pass already in flight is not cancelled; it finishes and its
        results are applied to the store.
        """
        if not self._timers:
            return

        for timer in self._timers:
            timer.cancel()
        self._timers = []

        logger.info("sync.deactivated", user_id=self.user_id, pass_in_flight=self.is_running)
        self.user_id = None

    async def shutdown(self) -> None:
        """Deactivate and wait for the in-flight pass, if any, to finish."""
        timers = list(self._timers)
        self.deactivate()
        await asyncio.gather(*timers, return_exceptions=True)
        await self.wait_idle()

    async def _initial_timer(self) -> None:
        await self.clock.sleep(self.initial_delay_seconds)
        self.trigger(reason="initial")

    async def _periodic_timer(self) -> None:
        while True:
            await self.clock.sleep(self.active_interval_seconds)
            self.trigger(reason="periodic")

    # === Passes ===

    def trigger(self, reason: str = "manual") -> Optional[asyncio.Task]:
        """Start a pass unless one is already in flight.

        The pass runs as its own task so deactivation (which cancels only the
        timers) never interrupts it.

        Returns:
            The pass task, or None if the trigger was dropped
        """
        if self.is_running:
            logger.info("sync.pass.skipped", reason=reason)
            return None

        self._pass_task = asyncio.create_task(self._tracked_pass(reason), name="sync-pass")
        return self._pass_task

    async def wait_idle(self) -> Optional[SyncPassResult]:
        """Wait for the in-flight pass and return its result (None if none ran)."""
        if self._pass_task is None:
            return None
        return await self._pass_task

    async def _tracked_pass(self, reason: str) -> SyncPassResult:
        logger.info("sync.pass.started", reason=reason)
        result = await self.run_pass()
        self.last_result = result
        return result

    async def run_pass(self) -> SyncPassResult:
        """Push every unsynced record, stopping at the first failure.

        Never raises: failures are logged and reported in the result. The
        failing record gets its sync attempt recorded; records after it are
        left untouched for the next pass.
        """
        result = SyncPassResult()

        try:
            records = await self.store.get_unsynced()
        except Exception as e:
            result.aborted = True
            result.error = str(e)
            logger.error(
                "sync.pass.fetch_failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return result

        for position, record in enumerate(records):
            result.attempted += 1

            try:
                await self.pusher.push(record)
            except Exception as e:
                result.failed_id = record.id
                result.aborted = True
                result.error = str(e)
                logger.warning(
                    "sync.pass.aborted",
                    record_id=record.id,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    transient=isinstance(e, TransientError),
                    synced=result.synced,
                    remaining=len(records) - position - 1,
                )
                await self._record_failure(record.id)
                return result

            try:
                await self.store.mark_synced(record.id)
            except NotFound:
                # Deleted locally while its push was in flight
                logger.info("sync.record.vanished", record_id=record.id)
                continue
            except Exception as e:
                result.failed_id = record.id
                result.aborted = True
                result.error = str(e)
                logger.error(
                    "sync.pass.aborted",
                    record_id=record.id,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    stage="mark_synced",
                )
                return result

            result.synced += 1

        logger.info("sync.pass.completed", attempted=result.attempted, synced=result.synced)
        return result

    async def _record_failure(self, record_id: str) -> None:
        try:
            await self.store.mark_sync_failed(record_id)
        except Exception as e:
            logger.error(
                "sync.failure_not_recorded",
                record_id=record_id,
                error_type=type(e).__name__,
                error_message=str(e),
            )
