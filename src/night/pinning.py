from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress

logger = logging.getLogger(__name__)


class PinningTimer:
    """Re-apply a dimmed value every ``interval`` seconds while a session waits.

    At most one tick runs at a time; a tick that comes due while the previous
    one is still running is skipped. Tick failures are logged and dropped. The
    timer is a plain task, so it never holds the event loop open by itself.
    """

    def __init__(
        self,
        action: Callable[[], Awaitable[None]],
        interval: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._action = action
        self._interval = interval
        self._sleep = sleep
        self._cancelled = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self.ticks = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval)
            # Nothing awaits between this check and the tick being created.
            if self._cancelled.is_set():
                return
            if self._inflight is not None and not self._inflight.done():
                self.skipped += 1
                continue
            self._inflight = asyncio.create_task(self._tick())

    async def _tick(self) -> None:
        self.ticks += 1
        try:
            await self._action()
        except Exception as e:
            logger.debug("pin tick failed: %s", e)

    async def stop(self) -> None:
        """Cancel the timer; a tick already running is allowed to finish."""

        self._cancelled.set()
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        if self._inflight is not None:
            with suppress(asyncio.CancelledError):
                await self._inflight
