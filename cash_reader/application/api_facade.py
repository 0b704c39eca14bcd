"""
API Facade - Unified interface for the cash reader.

Owns the single cash session and turns every outcome into a
{"success", "message", "data"} response dict.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from core.exceptions import (
    CashReaderError,
    DeviceBusyError,
    SessionAlreadyRunningError,
    SessionError,
    SessionNotRunningError,
)
from core.value_objects import SessionPhase, SessionStatus
from devices.nv200.device import NV200Device
from devices.nv200.protocol import SSPProtocol
from domain.denominations import DenominationCatalog
from infrastructure.settings import Settings, get_settings
from loggers import logger

from .cash_session import CashSession
from .notifier import EventNotifier, WebSocketEventSink


DeviceFactory = Callable[[str, int, str], NV200Device]


def create_device(
    port: str,
    baudrate: int,
    country_code: str,
    settings: Optional[Settings] = None,
) -> NV200Device:
    """Build an NV200 device session over the SSP serial driver."""
    settings = settings or get_settings()
    protocol = SSPProtocol(
        slave_id=settings.nv200.device_id,
        timeout=settings.nv200.timeout_s,
        country_code=country_code,
    )
    return NV200Device(protocol, port=port, baudrate=baudrate, country_code=country_code)


def _ok(message: str, data: Any = None) -> dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def _error(error: Exception) -> dict[str, Any]:
    if isinstance(error, CashReaderError):
        return {"success": False, "message": error.message, "data": error.to_dict()}
    return {"success": False, "message": str(error), "data": None}


class CashReaderFacade:
    """
    Facade for the cash reader API.

    At most one session is live at a time. Start and stop are serialized
    by a lock; a second caller gets DeviceBusyError instead of waiting.
    """

    def __init__(
        self,
        notifier: Optional[EventNotifier] = None,
        settings: Optional[Settings] = None,
        device_factory: Optional[DeviceFactory] = None,
    ) -> None:
        """
        Initialize the facade.

        Args:
            notifier: Event notifier; defaults to the WebSocket sink.
            settings: Application settings.
            device_factory: Builds a device for (port, baudrate, country_code).
        """
        self._settings = settings or get_settings()
        self._notifier = notifier or EventNotifier(
            WebSocketEventSink(self._settings.services.websocket_url)
        )
        self._device_factory = device_factory or (
            lambda port, baudrate, country: create_device(port, baudrate, country, self._settings)
        )
        self._lock = asyncio.Lock()
        self._session: Optional[CashSession] = None

    @property
    def session(self) -> Optional[CashSession]:
        return self._session

    @property
    def notifier(self) -> EventNotifier:
        return self._notifier

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    async def start_session(
        self,
        operator_id: str,
        port: Optional[str] = None,
        baudrate: Optional[int] = None,
        country_code: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Start a cash session.

        Args:
            operator_id: Operator owning the session.
            port: Serial port (default from settings).
            baudrate: Baud rate (default from settings).
            country_code: Currency (default from settings).

        Returns:
            Dictionary with the session status on success.
        """
        if self._lock.locked():
            return _error(DeviceBusyError("Another start/stop is in progress", device_name="nv200"))

        async with self._lock:
            if self._session is not None:
                if self._session.is_alive:
                    return _error(SessionAlreadyRunningError(
                        f"Session of operator {self._session.operator_id} is running",
                        details={"operator_id": self._session.operator_id},
                    ))
                await self._discard_session()

            country = country_code or self._settings.nv200.country_code
            try:
                catalog = DenominationCatalog.for_country(country)
            except ValueError as e:
                return _error(e)

            device = self._device_factory(
                port or self._settings.serial.port,
                baudrate or self._settings.serial.baudrate,
                country,
            )
            session = CashSession(
                device,
                self._notifier,
                catalog,
                operator_id=operator_id,
                settings=self._settings,
            )
            self._session = session

            try:
                await session.start()
            except CashReaderError as e:
                logger.error(f"Failed to start cash session: {e.message}")
                # Never ran; nothing to stop or report later
                self._session = None
                await session.device.close()
                return _error(e)

            return _ok("Cash session started", session.status().to_dict())

    async def stop_session(self, operator_id: Optional[str] = None) -> dict[str, Any]:
        """
        Stop the running session.

        Returns:
            Dictionary with the final ledger.
        """
        if self._lock.locked():
            return _error(DeviceBusyError("Another start/stop is in progress", device_name="nv200"))

        async with self._lock:
            session = self._session
            if session is None or session.is_stopping or session.phase in (
                SessionPhase.IDLE,
                SessionPhase.STOPPED,
            ):
                return _error(SessionNotRunningError("No cash session is running"))

            if operator_id and session.operator_id and operator_id != session.operator_id:
                logger.warning(
                    f"Operator {operator_id} stops the session of {session.operator_id}"
                )

            try:
                snapshot = await session.stop()
            except SessionError as e:
                return _error(e)
            finally:
                self._session = None

            await self._notifier.drain(self._settings.control.notifier_drain_timeout_s)

            data = snapshot.to_dict()
            data["operator_id"] = session.operator_id
            return _ok("Cash session stopped", data)

    async def session_status(self) -> dict[str, Any]:
        """Get the status of the current session."""
        if self._session is None:
            return _ok("No cash session", SessionStatus(phase=SessionPhase.IDLE).to_dict())

        status = self._session.status()
        data = status.to_dict()
        data["is_alive"] = self._session.is_alive
        data["ledger"] = self._session.ledger.snapshot().to_dict()
        return _ok(f"Session {status.phase.name.lower()}", data)

    async def _discard_session(self) -> None:
        session, self._session = self._session, None
        if session is None or session.is_stopping or session.phase == SessionPhase.STOPPED:
            return
        logger.warning(f"Replacing dead session of operator {session.operator_id}")
        try:
            await session.stop()
        except SessionError as e:
            logger.warning(f"Dead session stop failed: {e.message}")

    async def shutdown(self) -> None:
        """Stop any session and flush the notifier."""
        if self._session is not None and not self._session.is_stopping:
            try:
                await self._session.stop()
            except SessionNotRunningError:
                pass
            self._session = None
        await self._notifier.close(self._settings.control.notifier_drain_timeout_s)
        logger.info("Cash reader shut down")

    # =========================================================================
    # Device Operations
    # =========================================================================

    def _running_session(self) -> CashSession:
        session = self._session
        if session is None or session.phase != SessionPhase.RUNNING or session.is_stopping:
            raise SessionNotRunningError("No running cash session")
        return session

    async def _run(
        self,
        message: str,
        operation: Callable[[CashSession], Awaitable[Any]],
    ) -> dict[str, Any]:
        try:
            session = self._running_session()
            data = await operation(session)
        except (CashReaderError, ValueError) as e:
            logger.warning(f"{message} failed: {e}")
            return _error(e)
        return _ok(message, data)

    async def get_serial_number(self) -> dict[str, Any]:
        """Get the device serial number."""
        async def operation(session: CashSession) -> Any:
            return {"serial_number": await session.device.get_serial_number()}

        return await self._run("Serial number read", operation)

    async def get_note_inventory(self) -> dict[str, Any]:
        """Get the route of every denomination."""
        async def operation(session: CashSession) -> Any:
            return await session.device.get_note_inventory(session.catalog)

        return await self._run("Note inventory read", operation)

    async def set_denomination_route(self, value: int, route: str) -> dict[str, Any]:
        """
        Route a denomination to "payout" or "cashbox".

        Args:
            value: Face value in minor units.
            route: Target route.
        """
        async def operation(session: CashSession) -> Any:
            denomination = session.catalog.by_value(int(value))
            if denomination is None:
                raise ValueError(f"Unknown denomination value: {value}")
            await session.device.set_denomination_route(denomination, route)
            return {"denomination": denomination.label, "route": route}

        return await self._run("Denomination route set", operation)

    async def payout(self, amount: int) -> dict[str, Any]:
        """Pay out an amount in minor units."""
        async def operation(session: CashSession) -> Any:
            await session.device.payout(int(amount))
            return {"amount": int(amount)}

        return await self._run("Payout started", operation)

    async def float_amount(self, amount: int, min_payout: int = 0) -> dict[str, Any]:
        """Keep amount in the payout and move the rest to the cashbox."""
        async def operation(session: CashSession) -> Any:
            await session.device.float_amount(int(amount), int(min_payout))
            return {"amount": int(amount), "min_payout": int(min_payout)}

        return await self._run("Float started", operation)

    async def empty_cashbox(self) -> dict[str, Any]:
        """Move all stored notes to the cashbox."""
        async def operation(session: CashSession) -> Any:
            await session.device.empty_cashbox()
            return None

        return await self._run("Emptying started", operation)
