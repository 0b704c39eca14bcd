"""
Cash Session - one operator's note-acceptance session on the NV200.

Ties the device, poll loop, event handler, ledger, recovery controller
and notifier together. All ledger changes happen inside the poll loop
(or the reset task while the loop is halted), so there is one writer.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Coroutine, Optional

from core.exceptions import (
    DeviceBusyError,
    DeviceError,
    DeviceStartFailedError,
    SessionAlreadyRunningError,
    SessionNotRunningError,
)
from core.value_objects import (
    DeviceEvent,
    EventName,
    LedgerSnapshot,
    SessionPhase,
    SessionStatus,
    Severity,
)
from devices.nv200.device import NV200Device
from domain.denominations import DenominationCatalog
from domain.event_handler import EventHandler, HandlerAction, HandlerResult
from domain.ledger import TransactionLedger
from domain.recovery import RecoveryController
from infrastructure.settings import Settings, get_settings
from loggers import logger

from .notifier import EventNotifier
from .poll_loop import PollLoop


class CashSession:
    """
    Note-acceptance session.

    Attributes:
        device: The NV200 device session.
        operator_id: Operator who owns the session.
        ledger: Notes accepted so far.
        recovery: Start/reset retry policy.
        poll_loop: The sequencer task.
        phase: Current lifecycle phase.
    """

    def __init__(
        self,
        device: NV200Device,
        notifier: EventNotifier,
        catalog: DenominationCatalog,
        operator_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        recovery: Optional[RecoveryController] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self.device = device
        self.notifier = notifier
        self.catalog = catalog
        self.operator_id = operator_id
        self.ledger = TransactionLedger(catalog)
        self.handler = EventHandler(catalog)
        self.recovery = recovery or RecoveryController(
            device, self._settings.recovery, clock=clock
        )
        self.poll_loop = PollLoop(
            poll=device.poll,
            dispatch=self._dispatch,
            interval=self._settings.nv200.poll_interval_s,
            clock=clock,
        )
        self.phase = SessionPhase.IDLE
        self.current_note_channel: Optional[int] = None
        self.error_message: Optional[str] = None
        self._stopping = False
        self._reset_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Bring the device up and arm the poll loop.

        Raises:
            SessionAlreadyRunningError: Session was already started.
            DeviceStartFailedError: Device unreachable; phase becomes FAILED.
            DeviceBusyError: Port held by another process; phase becomes FAILED.
        """
        if self.phase != SessionPhase.IDLE:
            raise SessionAlreadyRunningError(
                f"Session already {self.phase.name.lower()}"
            )

        self.phase = SessionPhase.STARTING
        logger.info(f"Starting cash session for operator {self.operator_id}")

        try:
            events = await self.recovery.initialize_and_start(is_reset=False)
        except (DeviceStartFailedError, DeviceBusyError) as e:
            self._fail(e)
            raise

        self.poll_loop.record_success()
        self.phase = SessionPhase.RUNNING
        # Power-up SLAVE_RESET is expected here
        await self._dispatch(events, allow_reset=False)
        self.poll_loop.start()
        logger.info("Cash session running")

    async def stop(self) -> LedgerSnapshot:
        """
        End the session and release the device.

        Returns:
            Final ledger snapshot.

        Raises:
            SessionNotRunningError: Never started or already stopped.
        """
        if self._stopping or self.phase in (SessionPhase.IDLE, SessionPhase.STOPPED):
            raise SessionNotRunningError("No cash session is running")

        self._stopping = True
        logger.info(f"Stopping cash session for operator {self.operator_id}")

        self.recovery.abort()
        await self.poll_loop.stop()

        if self._reset_task is not None:
            await asyncio.gather(self._reset_task, return_exceptions=True)
            self._reset_task = None

        await self._await_background()

        if self.device.is_enabled:
            try:
                await self.device.disable()
            except DeviceError as e:
                logger.warning(f"Disable on stop failed: {e.message}")
        await self.device.close()

        self.phase = SessionPhase.STOPPED
        snapshot = self.ledger.snapshot()
        self.notifier.notify(self._session_notification(
            EventName.TRANSACTION_COMPLETED,
            Severity.INFO,
            ledger=snapshot.to_dict(),
            total_value=snapshot.total_value,
        ))
        logger.info(f"Cash session closed, total={snapshot.total_value / 100:.2f}")
        return snapshot

    def status(self) -> SessionStatus:
        """Current status; never talks to the device."""
        last = self.poll_loop.last_success_at
        window = (
            3 * self._settings.nv200.poll_interval_s
            + self._settings.nv200.timeout_s
        )
        responsive = last is not None and self._clock() - last <= window
        return SessionStatus(
            phase=self.phase,
            operator_id=self.operator_id,
            is_responsive=responsive,
            consecutive_poll_failures=self.poll_loop.consecutive_failures,
            last_poll_at=last,
            total_value=self.ledger.total_value,
            error_message=self.error_message,
        )

    @property
    def is_alive(self) -> bool:
        return not self._stopping and self.status().is_alive

    @property
    def is_stopping(self) -> bool:
        return self._stopping

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _dispatch(self, events: list[DeviceEvent], allow_reset: bool = True) -> None:
        for event in events:
            result = self.handler.handle(event)
            self._apply(result, allow_reset)
            self.notifier.notify(result.to_notification(self.operator_id))

    def _apply(self, result: HandlerResult, allow_reset: bool) -> None:
        if result.action == HandlerAction.TRACK_NOTE:
            self.current_note_channel = result.channel
        elif result.action == HandlerAction.CREDIT:
            self.ledger.credit(result.denomination)
            self.current_note_channel = None
        elif result.action == HandlerAction.RE_ENABLE:
            self._spawn(self._re_enable())
        elif result.action == HandlerAction.RESET:
            if allow_reset:
                self._request_reset()
            else:
                logger.info("SLAVE_RESET during start-up ignored")

    # =========================================================================
    # Background work
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _await_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _re_enable(self) -> None:
        try:
            await self.device.enable()
        except DeviceError as e:
            logger.warning(f"Re-enable failed: {e.message}")

    def _request_reset(self) -> None:
        if self._stopping:
            logger.info("Reset skipped: session is stopping")
            return
        if not self.recovery.try_begin_reset():
            return

        self.phase = SessionPhase.RESETTING
        self.poll_loop.request_stop()
        self._reset_task = asyncio.create_task(self._run_reset())

    async def _run_reset(self) -> None:
        await self.poll_loop.wait_stopped()
        await self._await_background()

        try:
            events = await self.recovery.reset()
        except (DeviceStartFailedError, DeviceBusyError) as e:
            if self._stopping:
                logger.info("Reset aborted by stop")
                return
            self._fail(e)
            return

        if self._stopping:
            return

        self.phase = SessionPhase.RUNNING
        self.poll_loop.record_success()
        await self._dispatch(events, allow_reset=False)
        self.poll_loop.start()
        logger.info("Device recovered, polling resumed")

    def _fail(self, error: DeviceError) -> None:
        self.phase = SessionPhase.FAILED
        self.error_message = error.message
        logger.error(f"Cash session failed: {error.message}")
        self.notifier.notify(self._session_notification(
            EventName.DEVICE_START_FAILED,
            Severity.ERROR,
            description=error.message,
            attempts=error.details.get("attempts"),
            error=error.code,
        ))

    def _session_notification(
        self,
        name: EventName,
        severity: Severity,
        **extra: Any,
    ) -> dict[str, Any]:
        return {
            "event_name": name.value,
            "severity": severity.name.lower(),
            "operator_id": self.operator_id,
            "timestamp": time.time(),
            **extra,
        }

    def __repr__(self) -> str:
        return f"CashSession(operator={self.operator_id}, phase={self.phase.name})"
