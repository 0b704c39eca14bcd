"""
NV200 device session.

Thin async wrapper that turns Transport commands into the primitives the
cash session uses. Commands are serialized by a lock so the poll loop,
background enables and operator requests never interleave on the wire.
"""

import asyncio
import logging
from typing import Any, Optional, Union

from core.exceptions import (
    DeviceError,
    DeviceNotReadyError,
    DeviceProtocolError,
)
from core.interfaces import Transport
from core.value_objects import CommandResult, Denomination, DeviceEvent
from domain.denominations import DenominationCatalog

from .constants import ROUTES


logger = logging.getLogger(__name__)

DEVICE_NAME = "nv200"
VALID_ROUTES = frozenset(ROUTES.values())


class NV200Device:
    """
    One NV200 on one serial port.

    Attributes:
        port: Serial port path.
        baudrate: Serial baud rate.
        country_code: Currency used for money commands.
    """

    def __init__(
        self,
        transport: Transport,
        port: str,
        baudrate: int = 9600,
        country_code: str = "EUR",
    ) -> None:
        self._transport = transport
        self.port = port
        self.baudrate = baudrate
        self.country_code = country_code
        self._lock = asyncio.Lock()
        self._enabled = False

    @property
    def is_open(self) -> bool:
        return self._transport.is_open

    @property
    def is_enabled(self) -> bool:
        return self._transport.is_open and self._enabled

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        """Open the port and bring the link up."""
        if self._transport.is_open:
            logger.debug(f"{self.port} already open")
            return
        logger.info(f"Opening NV200 on {self.port} @ {self.baudrate}")
        async with self._lock:
            await self._transport.open(self.port, self.baudrate)
        self._enabled = False

    async def enable(self) -> None:
        """Allow the validator to accept notes."""
        self._require_open()
        await self._command("ENABLE")
        self._enabled = True
        logger.info("NV200 enabled")

    async def disable(self) -> None:
        """Stop accepting notes."""
        self._require_open()
        await self._command("DISABLE")
        self._enabled = False
        logger.info("NV200 disabled")

    async def close(self) -> None:
        """Close the port. Safe to call when already closed."""
        self._enabled = False
        if not self._transport.is_open:
            return
        async with self._lock:
            try:
                await self._transport.close()
            except (DeviceError, OSError) as e:
                logger.warning(f"Error closing {self.port}: {e}")
                return
        logger.info(f"NV200 on {self.port} closed")

    async def poll(self) -> list[DeviceEvent]:
        """
        Poll the device.

        Returns:
            Events in device order (possibly empty).
        """
        self._require_enabled()
        result = await self._command("POLL", log_level=logging.DEBUG)
        events = list(result.info or [])
        if events:
            logger.debug(f"POLL events: {[event.name for event in events]}")
        return events

    # =========================================================================
    # Queries / operator commands
    # =========================================================================

    async def get_serial_number(self) -> str:
        """Read the device serial number."""
        self._require_open()
        result = await self._command("GET_SERIAL_NUMBER")
        return str(result.info["serial_number"])

    async def payout(self, amount: int) -> CommandResult:
        """Pay out amount (minor units) from the note float."""
        self._require_enabled()
        if amount <= 0:
            raise ValueError(f"Payout amount must be positive: {amount}")
        return await self._command(
            "PAYOUT_AMOUNT",
            {"amount": amount, "country_code": self.country_code},
        )

    async def float_amount(self, amount: int, min_payout: int = 0) -> CommandResult:
        """Move notes to the cashbox until amount remains in the float."""
        self._require_enabled()
        return await self._command(
            "FLOAT_AMOUNT",
            {"amount": amount, "min_payout": min_payout, "country_code": self.country_code},
        )

    async def empty_cashbox(self) -> CommandResult:
        """Move every stored note into the cashbox."""
        self._require_enabled()
        return await self._command("EMPTY_ALL")

    async def get_denomination_route(self, denomination: Union[Denomination, int]) -> str:
        """
        Get where notes of a denomination are routed.

        Returns:
            "payout" or "cashbox".
        """
        self._require_open()
        result = await self._command(
            "GET_DENOMINATION_ROUTE",
            {"value": _face_value(denomination), "country_code": self.country_code},
        )
        return result.info["route"]

    async def set_denomination_route(
        self,
        denomination: Union[Denomination, int],
        route: str,
    ) -> CommandResult:
        """Route a denomination to "payout" or "cashbox"."""
        if route not in VALID_ROUTES:
            raise ValueError(f"Route must be one of {sorted(VALID_ROUTES)}: {route!r}")
        self._require_open()
        return await self._command(
            "SET_DENOMINATION_ROUTE",
            {"value": _face_value(denomination), "route": route, "country_code": self.country_code},
        )

    async def get_note_inventory(self, catalog: DenominationCatalog) -> dict[str, str]:
        """
        Query the route of every catalog denomination.

        Returns:
            Label -> "payout" | "cashbox" | "Unknown" | "Error".
            A rejected query records "Unknown", a failed one "Error";
            neither stops the sweep.
        """
        self._require_open()
        inventory: dict[str, str] = {}
        for denomination in catalog:
            try:
                route = await self.get_denomination_route(denomination)
            except DeviceProtocolError as e:
                logger.warning(f"Route query for {denomination.label} rejected: {e.message}")
                inventory[denomination.label] = "Unknown" if e.status else "Error"
                continue
            except DeviceError as e:
                logger.warning(f"Route query for {denomination.label} failed: {e.message}")
                inventory[denomination.label] = "Error"
                continue
            inventory[denomination.label] = route if route in VALID_ROUTES else "Unknown"
        return inventory

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_open(self) -> None:
        if not self._transport.is_open:
            raise DeviceNotReadyError("Device is not open", device_name=DEVICE_NAME)

    def _require_enabled(self) -> None:
        self._require_open()
        if not self._enabled:
            raise DeviceNotReadyError("Device is not enabled", device_name=DEVICE_NAME)

    async def _command(
        self,
        name: str,
        params: Optional[dict[str, Any]] = None,
        log_level: int = logging.INFO,
    ) -> CommandResult:
        async with self._lock:
            try:
                result = await self._transport.command(name, params)
            except DeviceError as e:
                logger.warning(f"{name} failed: {e.message}")
                raise

        logger.log(log_level, f"{name}: {result.status}")
        if not result.success:
            raise DeviceProtocolError(
                f"{name} rejected with {result.status}",
                status=result.status,
                device_name=DEVICE_NAME,
            )
        return result


def _face_value(denomination: Union[Denomination, int]) -> int:
    if isinstance(denomination, Denomination):
        return denomination.face_value
    return int(denomination)
