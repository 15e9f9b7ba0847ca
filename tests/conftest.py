"""pytest fixtures for nexusai tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- now: Controllable clock for store timestamps
- store: Function-scoped LocalRecordStore on a fresh SQLite file
- uow_factory: UnitOfWork factory bound to the same database file
- clock: Manually advanced clock for the sync coordinator timers
- pusher: Fake remote pusher recording what it was asked to push
- draft: Factory for valid generation drafts
"""

import os

# Settings validation is skipped in the test environment; must be set before
# any nexusai module builds Settings() at import time.
os.environ["APP_ENV"] = "test"
os.environ["TZ"] = "UTC"

import asyncio  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402
from typing import Any, AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from nexusai.core.database import create_local_engine, setup_db_session  # noqa: E402
from nexusai.models.generation import GenerationRecord  # noqa: E402
from nexusai.services.exceptions import NetworkFailure  # noqa: E402
from nexusai.storage.local_store import LocalRecordStore  # noqa: E402
from nexusai.uow import create_uow_factory  # noqa: E402


class SteppingNow:
    """Callable returning a fixed naive UTC time that tests move forward explicitly."""

    def __init__(self, start: datetime = datetime(2025, 1, 15, 12, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current += timedelta(**delta)
        return self.current


class ManualClock:
    """Virtual-time clock: sleepers wake only when advance() passes their deadline."""

    def __init__(self):
        self.now = 0.0
        self._sleepers: list[tuple[float, asyncio.Future]] = []

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        entry = (self.now + seconds, future)
        self._sleepers.append(entry)
        try:
            await future
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    @property
    def pending(self) -> int:
        return sum(1 for _, future in self._sleepers if not future.done())

    async def advance(self, seconds: float) -> None:
        """Move virtual time forward, waking due sleepers in deadline order."""
        target = self.now + seconds
        await _drain()

        while True:
            due = [deadline for deadline, future in self._sleepers if not future.done()]
            due = [deadline for deadline in due if deadline <= target]
            if not due:
                break

            self.now = min(due)
            for deadline, future in list(self._sleepers):
                if deadline <= self.now and not future.done():
                    future.set_result(None)
            await _drain()

        self.now = target
        await _drain()


async def _drain(rounds: int = 20) -> None:
    """Let ready callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakePusher:
    """In-memory stand-in for GenerationSyncClient."""

    def __init__(self):
        self.attempted: list[str] = []
        self.pushed: list[str] = []
        self.fail_on: set[str] = set()
        self.error: Exception = NetworkFailure("Network error: connection refused")
        self.gate: asyncio.Event | None = None

    async def push(self, record: GenerationRecord) -> None:
        self.attempted.append(record.id)
        if self.gate is not None:
            await self.gate.wait()
        if record.id in self.fail_on:
            raise self.error
        self.pushed.append(record.id)


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests.

    Autouse fixture ensures TZ=UTC is set before any test runs.
    """
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture
def now() -> SteppingNow:
    return SteppingNow()


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "nexusai-storage.db")


@pytest_asyncio.fixture(scope="function")
async def store(db_path, now) -> AsyncGenerator[LocalRecordStore, None]:
    """Provide an initialized store on a fresh database file."""
    store = LocalRecordStore(db_path, now=now)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(store, db_path):
    """Provide a UnitOfWork factory on the store's (already upgraded) database."""
    engine = create_local_engine(db_path)
    yield create_uow_factory(setup_db_session(engine))
    await engine.dispose()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def pusher() -> FakePusher:
    return FakePusher()


@pytest.fixture
def draft():
    """Factory for valid draft dicts; keyword overrides replace fields."""

    def _make(**overrides: Any) -> dict[str, Any]:
        values: dict[str, Any] = {
            "type": "image",
            "prompt": "a lighthouse at dusk, oil painting",
            "result": "https://cdn.example.com/generations/lighthouse.png",
            "model": "sdxl",
            "metadata": {"width": 1024, "height": 1024},
            "tags": ["landscape"],
        }
        values.update(overrides)
        return values

    return _make
