"""
Recovery Controller - start/reset retry policy for the NV200.

Owns the reset state (in progress, attempt counter, last reset time)
and the bounded retry sequence open -> enable -> settle -> poll.
Waits are interruptible so a stop request ends an episode early.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from core.exceptions import DeviceBusyError, DeviceError, DeviceStartFailedError
from core.value_objects import DeviceEvent
from infrastructure.settings import RecoverySettings
from loggers import logger

if TYPE_CHECKING:
    from devices.nv200.device import NV200Device


Sleep = Callable[[float], Awaitable[None]]


# =============================================================================
# Reset State
# =============================================================================


@dataclass
class ResetState:
    """
    Reset bookkeeping for one session.

    attempt_count counts reset episodes since the last successful start.
    """

    in_progress: bool = False
    attempt_count: int = 0
    last_reset_at: Optional[float] = None


# =============================================================================
# Recovery Controller
# =============================================================================


class RecoveryController:
    """
    Brings the device up and back after a device reset.

    A controller belongs to one session; once aborted it stays aborted.
    """

    def __init__(
        self,
        device: NV200Device,
        settings: Optional[RecoverySettings] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._device = device
        self._settings = settings or RecoverySettings()
        self._clock = clock
        self._sleep = sleep
        self._aborted = asyncio.Event()
        self.state = ResetState()

    @property
    def settings(self) -> RecoverySettings:
        return self._settings

    @property
    def is_aborted(self) -> bool:
        return self._aborted.is_set()

    # =========================================================================
    # Delays
    # =========================================================================

    def stabilization_delay_ms(self, attempt_count: int) -> int:
        """Delay before reopening after a reset, growing per episode."""
        return min(
            self._settings.stabilization_step_ms * attempt_count,
            self._settings.stabilization_max_ms,
        )

    @staticmethod
    def backoff_delay_ms(base_delay_ms: int, attempt: int) -> int:
        """Exponential backoff: base * 2^(attempt - 1)."""
        return base_delay_ms * 2 ** (attempt - 1)

    # =========================================================================
    # Reset gate
    # =========================================================================

    def try_begin_reset(self) -> bool:
        """
        Claim the reset slot.

        Returns:
            False while a reset runs or within the cooldown of the
            previous reset's start; True otherwise (slot claimed).
        """
        if self._aborted.is_set():
            logger.info("Reset skipped: session is stopping")
            return False

        if self.state.in_progress:
            logger.info("Reset skipped: a reset is already in progress")
            return False

        now = self._clock()
        last = self.state.last_reset_at
        if last is not None and now - last < self._settings.reset_cooldown_s:
            remaining = self._settings.reset_cooldown_s - (now - last)
            logger.warning(f"Reset skipped: cooldown active for another {remaining:.1f}s")
            return False

        self.state.in_progress = True
        self.state.last_reset_at = now
        return True

    def abort(self) -> None:
        """Interrupt any wait and end the current episode."""
        if not self._aborted.is_set():
            logger.info("Recovery aborted")
        self._aborted.set()

    # =========================================================================
    # Episodes
    # =========================================================================

    async def reset(self) -> list[DeviceEvent]:
        """
        Run one reset episode. The caller must have won try_begin_reset().

        Returns:
            Events of the verification poll.

        Raises:
            DeviceStartFailedError: All attempts failed or the episode was aborted.
        """
        self.state.in_progress = True
        self.state.attempt_count += 1
        attempt_count = self.state.attempt_count
        logger.warning(f"Device reset episode #{attempt_count} started")

        try:
            try:
                await self._device.disable()
            except Exception as e:
                logger.debug(f"Disable before reset failed: {e}")
            await self._release()

            delay_ms = self.stabilization_delay_ms(attempt_count)
            logger.info(f"Waiting {delay_ms}ms for the device to stabilize")
            await self._wait(delay_ms, attempt_count)

            return await self.initialize_and_start(is_reset=True)
        finally:
            self.state.in_progress = False

    async def initialize_and_start(self, is_reset: bool = False) -> list[DeviceEvent]:
        """
        Open, enable, settle and verify with one poll, with retries.

        Args:
            is_reset: Use the reset base delay and settle time.

        Returns:
            Events of the verification poll, for the caller to dispatch.

        Raises:
            DeviceStartFailedError: Every attempt failed or the start was aborted.
            DeviceBusyError: The port is held by another process; not retried.
        """
        max_retries = self._settings.max_retries
        if is_reset:
            base_delay_ms = self._settings.reset_base_delay_ms
            settle_ms = self._settings.reset_enable_settle_ms
        else:
            base_delay_ms = self._settings.start_base_delay_ms
            settle_ms = self._settings.enable_settle_ms

        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            await self._wait(0, attempt - 1)
            logger.info(f"Starting device, attempt {attempt}/{max_retries}")
            try:
                await self._device.open()
                await self._device.enable()
                await self._wait(settle_ms, attempt)
                events = await self._device.poll()
            except DeviceStartFailedError:
                await self._release()
                raise
            except DeviceBusyError as e:
                # Another process holds the port; retrying cannot help
                logger.error(f"Start attempt {attempt}/{max_retries} failed: {e.message}")
                await self._release()
                raise
            except (DeviceError, OSError, ValueError) as e:
                last_error = e
                logger.warning(f"Start attempt {attempt}/{max_retries} failed: {e}")
                await self._release()
                if attempt < max_retries:
                    delay_ms = self.backoff_delay_ms(base_delay_ms, attempt)
                    logger.info(f"Retrying in {delay_ms}ms")
                    await self._wait(delay_ms, attempt)
                continue

            self.state.attempt_count = 0
            logger.info(f"Device started on attempt {attempt}")
            return events

        logger.error(f"Device unreachable after {max_retries} attempts: {last_error}")
        raise DeviceStartFailedError(
            f"Device unreachable after {max_retries} attempts: {last_error}",
            attempts=max_retries,
            device_name="nv200",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _wait(self, delay_ms: int, attempts: int) -> None:
        """Sleep for delay_ms unless aborted; raise if aborted."""
        if not self._aborted.is_set() and delay_ms > 0:
            sleeper = asyncio.ensure_future(self._sleep(delay_ms / 1000))
            aborter = asyncio.ensure_future(self._aborted.wait())
            try:
                await asyncio.wait({sleeper, aborter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (sleeper, aborter):
                    task.cancel()
                await asyncio.gather(sleeper, aborter, return_exceptions=True)

        if self._aborted.is_set():
            raise DeviceStartFailedError(
                "Device start aborted", attempts=attempts, device_name="nv200"
            )

    async def _release(self) -> None:
        try:
            await self._device.close()
        except Exception as e:
            logger.warning(f"Error closing device: {e}")
