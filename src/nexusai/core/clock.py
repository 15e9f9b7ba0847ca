"""Clock abstraction for scheduled background work.

The sync coordinator never calls ``asyncio.sleep`` directly; it sleeps through
a ``Clock`` so tests can substitute a manually advanced clock.
"""

import asyncio
from typing import Protocol


class Clock(Protocol):
    """Anything that can suspend the caller for a number of seconds."""

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock implementation backed by the running event loop."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
