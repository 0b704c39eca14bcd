"""
Poll loop - the single sequencer of a cash session.

One asyncio task runs poll -> dispatch -> sleep. The sleep starts only
after dispatch, so ticks never overlap.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from core.exceptions import DeviceError
from core.value_objects import DeviceEvent
from loggers import logger


PollFunc = Callable[[], Awaitable[list[DeviceEvent]]]
DispatchFunc = Callable[[list[DeviceEvent]], Awaitable[None]]


class PollLoop:
    """
    Fixed-period poll task.

    Attributes:
        interval: Seconds between the end of one tick and the next poll.
        last_success_at: Clock time of the last successful poll.
        consecutive_failures: Failed polls since the last success.
    """

    def __init__(
        self,
        poll: PollFunc,
        dispatch: DispatchFunc,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._poll = poll
        self._dispatch = dispatch
        self._clock = clock
        self.interval = interval
        self.last_success_at: Optional[float] = None
        self.consecutive_failures = 0
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None
        self._stop_requested = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Arm the loop. No-op if it already runs."""
        if self.is_running:
            return
        self._stop_requested.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Poll loop started (every {self.interval:.2f}s)")

    def request_stop(self) -> None:
        """Stop after the current tick without waiting."""
        self._stop_requested.set()

    async def wait_stopped(self) -> None:
        """Wait for the loop task to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def stop(self) -> None:
        """Prevent further ticks and wait for the in-flight one."""
        self.request_stop()
        await self.wait_stopped()
        self._task = None

    def record_success(self) -> None:
        """Mark a successful poll made outside the loop."""
        self.last_success_at = self._clock()
        self.consecutive_failures = 0

    async def tick(self) -> None:
        """Poll once and dispatch the events in order."""
        self.ticks += 1
        try:
            events = await self._poll()
        except DeviceError as e:
            self.consecutive_failures += 1
            logger.warning(f"Poll failed ({self.consecutive_failures} in a row): {e.message}")
            return
        except Exception as e:
            self.consecutive_failures += 1
            logger.error(f"Unexpected poll error: {e}")
            return

        self.record_success()
        if not events:
            return

        try:
            await self._dispatch(events)
        except Exception as e:
            logger.error(f"Error dispatching {[event.name for event in events]}: {e}")

    async def _run(self) -> None:
        while not self._stop_requested.is_set():
            await self.tick()
            if self._stop_requested.is_set():
                break
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Poll loop stopped")
