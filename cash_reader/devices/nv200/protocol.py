"""
SSP Protocol Layer.

Handles command encoding, response decoding, the sequence flag and the
link handshake. SSPProtocol implements the Transport contract used by
the device session: command names in, CommandResult out.

This layer sits between the Transport Layer (frames) and the device
session (primitives).
"""

import asyncio
import errno
import logging
import struct
from typing import Any, Awaitable, Callable, Optional

import serial
import serial_asyncio

from core.exceptions import (
    DeviceBusyError,
    DeviceError,
    DeviceNotReadyError,
    DeviceProtocolError,
)
from core.value_objects import CommandResult, DeviceEvent, EventName

from .constants import (
    ALL_CHANNELS_MASK,
    CHANNEL_EVENTS,
    DEFAULT_PROTOCOL_VERSION,
    DEFAULT_SLAVE_ID,
    EVENT_DESCRIPTIONS,
    EVENT_NAMES,
    PAYOUT_EXECUTE,
    PAYOUT_TEST,
    RESPONSE_TIMEOUT_S,
    ROUTES,
    SEQUENCE_FLAG,
    SERIAL_OPTIONS,
    VALUE_EVENTS,
    Command,
    PollEventCode,
    get_status_name,
)
from .transport import SSPPacket, SSPTransport


logger = logging.getLogger(__name__)

SerialConnector = Callable[..., Awaitable[tuple[asyncio.StreamReader, asyncio.StreamWriter]]]

ROUTE_CODES: dict[str, int] = {route: code for code, route in ROUTES.items()}


# =============================================================================
# Encoding
# =============================================================================


def _country(params: dict[str, Any], default: str) -> bytes:
    code = str(params.get("country_code") or default).upper()
    if len(code) != 3:
        raise ValueError(f"Country code must have 3 letters: {code!r}")
    return code.encode("ascii")


def _amount(params: dict[str, Any], key: str) -> int:
    if key not in params:
        raise ValueError(f"Missing parameter: {key}")
    value = int(params[key])
    if value < 0:
        raise ValueError(f"{key} must not be negative: {value}")
    return value


def encode_arguments(
    command: Command,
    params: dict[str, Any],
    protocol_version: int = DEFAULT_PROTOCOL_VERSION,
    country_code: str = "EUR",
) -> bytes:
    """
    Encode command parameters.

    Values are little-endian minor units. From protocol 6 on, money
    commands carry the 3-letter country code.

    Raises:
        ValueError: Missing or invalid parameter.
    """
    with_currency = protocol_version >= 6

    if command == Command.PAYOUT_AMOUNT:
        data = struct.pack('<I', _amount(params, "amount"))
        if with_currency:
            flag = PAYOUT_TEST if params.get("test") else PAYOUT_EXECUTE
            data += _country(params, country_code) + bytes([flag])
        return data

    if command == Command.FLOAT_AMOUNT:
        data = struct.pack('<HI', _amount(params, "min_payout"), _amount(params, "amount"))
        if with_currency:
            flag = PAYOUT_TEST if params.get("test") else PAYOUT_EXECUTE
            data += _country(params, country_code) + bytes([flag])
        return data

    if command == Command.SET_DENOMINATION_ROUTE:
        route = params.get("route")
        if route not in ROUTE_CODES:
            raise ValueError(f"Unknown route: {route!r}")
        data = bytes([ROUTE_CODES[route]]) + struct.pack('<I', _amount(params, "value"))
        if with_currency:
            data += _country(params, country_code)
        return data

    if command == Command.GET_DENOMINATION_ROUTE:
        data = struct.pack('<I', _amount(params, "value"))
        if with_currency:
            data += _country(params, country_code)
        return data

    if command == Command.SET_CHANNEL_INHIBITS:
        return bytes(params.get("mask", ALL_CHANNELS_MASK))

    return b''


# =============================================================================
# Decoding
# =============================================================================


def _read_value(data: bytes, offset: int, protocol_version: int) -> tuple[Any, int]:
    """Read a value block; returns (value, next offset)."""
    if protocol_version < 6:
        if offset + 4 > len(data):
            raise DeviceProtocolError("Truncated value in poll response", device_name="nv200")
        return struct.unpack_from('<I', data, offset)[0], offset + 4

    if offset >= len(data):
        raise DeviceProtocolError("Truncated value in poll response", device_name="nv200")
    count = data[offset]
    end = offset + 1 + count * 7
    if end > len(data):
        raise DeviceProtocolError("Truncated value in poll response", device_name="nv200")

    values = []
    for start in range(offset + 1, end, 7):
        values.append({
            "value": struct.unpack_from('<I', data, start)[0],
            "country_code": data[start + 4:start + 7].decode("ascii", errors="replace"),
        })
    return values, end


def decode_poll_events(
    data: bytes,
    protocol_version: int = DEFAULT_PROTOCOL_VERSION,
) -> list[DeviceEvent]:
    """
    Decode the event list of a POLL response (status byte removed).

    Events are returned in device order. An unknown code stops decoding
    because its length cannot be known; it is reported as UNKNOWN.

    Raises:
        DeviceProtocolError: An event is truncated.
    """
    events: list[DeviceEvent] = []
    offset = 0

    while offset < len(data):
        code = data[offset]
        offset += 1
        name = EVENT_NAMES.get(code)

        if name is None:
            logger.warning(f"Unknown poll event 0x{code:02X}, dropping rest: {data[offset:].hex()}")
            events.append(DeviceEvent(
                name=EventName.UNKNOWN.value,
                code=code,
                raw_data=bytes(data[offset - 1:]),
            ))
            break

        description = EVENT_DESCRIPTIONS.get(code)
        start = offset

        if code in CHANNEL_EVENTS:
            if offset >= len(data):
                raise DeviceProtocolError(f"{name.value} without channel byte", device_name="nv200")
            events.append(DeviceEvent(
                name=name.value,
                channel=data[offset],
                description=description,
                raw_data=bytes(data[offset:offset + 1]),
                code=code,
            ))
            offset += 1
            continue

        value = None
        if code in VALUE_EVENTS:
            value, offset = _read_value(data, offset, protocol_version)
        elif code == PollEventCode.NOTE_TRANSFERRED_TO_STACKER and protocol_version >= 6:
            if offset + 7 > len(data):
                raise DeviceProtocolError("Truncated value in poll response", device_name="nv200")
            value = {
                "value": struct.unpack_from('<I', data, offset)[0],
                "country_code": data[offset + 4:offset + 7].decode("ascii", errors="replace"),
            }
            offset += 7
        elif code == PollEventCode.ERROR:
            value, offset = _read_value(data, offset, protocol_version)
            if offset >= len(data):
                raise DeviceProtocolError("ERROR event without error code", device_name="nv200")
            description = f"{description} (code 0x{data[offset]:02X})"
            offset += 1

        events.append(DeviceEvent(
            name=name.value,
            description=description,
            raw_data=bytes(data[start:offset]) or None,
            code=code,
            value=value,
        ))

    return events


def parse_setup_request(data: bytes) -> dict[str, Any]:
    """
    Parse a SETUP_REQUEST response for a note validator (status removed).

    Layout: unit type, firmware (4), country (3), value multiplier (3),
    channel count n, n channel values, n security bytes, real value
    multiplier (3), protocol version.
    """
    try:
        n = data[11]
        return {
            "unit_type": data[0],
            "firmware_version": data[1:5].decode("ascii", errors="replace"),
            "country_code": data[5:8].decode("ascii", errors="replace"),
            "value_multiplier": int.from_bytes(data[8:11], 'big'),
            "channel_count": n,
            "channel_values": list(data[12:12 + n]),
            "real_value_multiplier": int.from_bytes(data[12 + n * 2:15 + n * 2], 'big'),
            "protocol_version": data[15 + n * 2],
        }
    except IndexError:
        raise DeviceProtocolError(
            f"Truncated setup response: {data.hex()}", device_name="nv200"
        ) from None


def _decode_serial_number(data: bytes) -> dict[str, Any]:
    if len(data) < 4:
        raise DeviceProtocolError("Truncated serial number", device_name="nv200")
    return {"serial_number": int.from_bytes(data[:4], 'big')}


def _decode_route(data: bytes) -> dict[str, Any]:
    if not data:
        raise DeviceProtocolError("Missing route byte", device_name="nv200")
    return {"route": ROUTES.get(data[0], "unknown")}


def decode_response(
    command: str,
    data: bytes,
    protocol_version: int = DEFAULT_PROTOCOL_VERSION,
) -> CommandResult:
    """
    Decode a response packet's data into a CommandResult.

    Non-OK statuses are returned as-is; the caller decides whether
    they are errors.

    Raises:
        DeviceProtocolError: Empty or malformed response.
    """
    if not data:
        raise DeviceProtocolError(f"Empty response to {command}", device_name="nv200")

    status = get_status_name(data[0])
    payload = bytes(data[1:])

    if status != "OK":
        return CommandResult(command=command, status=status, info=payload.hex() or None)

    if command == "POLL":
        info: Any = decode_poll_events(payload, protocol_version)
    elif command == "SETUP_REQUEST":
        info = parse_setup_request(payload)
    elif command == "GET_SERIAL_NUMBER":
        info = _decode_serial_number(payload)
    elif command == "GET_DENOMINATION_ROUTE":
        info = _decode_route(payload)
    else:
        info = payload.hex() or None

    return CommandResult(command=command, status=status, info=info)


# =============================================================================
# Protocol
# =============================================================================


def _port_error(port: str, error: Exception) -> DeviceError:
    """Map a serial open failure onto a device error."""
    if getattr(error, "errno", None) == errno.EBUSY or "busy" in str(error).lower():
        return DeviceBusyError(f"Serial port {port} is busy: {error}", device_name="nv200")
    return DeviceNotReadyError(f"Cannot open serial port {port}: {error}", device_name="nv200")


class SSPProtocol:
    """
    SSP command channel to one NV200.

    Attributes:
        slave_id: SSP address of the validator.
        timeout: Response timeout in seconds.
        country_code: Default currency for money commands.
        protocol_version: Version reported by SETUP_REQUEST.
        setup_info: Parsed SETUP_REQUEST response.
    """

    def __init__(
        self,
        slave_id: int = DEFAULT_SLAVE_ID,
        timeout: float = RESPONSE_TIMEOUT_S,
        country_code: str = "EUR",
        port_options: Optional[dict[str, Any]] = None,
        connector: Optional[SerialConnector] = None,
    ) -> None:
        self.slave_id = slave_id
        self.timeout = timeout
        self.country_code = country_code
        self.protocol_version = DEFAULT_PROTOCOL_VERSION
        self.setup_info: dict[str, Any] = {}
        self._port_options = dict(port_options or SERIAL_OPTIONS)
        self._connector = connector or serial_asyncio.open_serial_connection
        self._transport: Optional[SSPTransport] = None
        self._sequence = SEQUENCE_FLAG

    @property
    def is_open(self) -> bool:
        """Check if the serial link is open."""
        return self._transport is not None

    async def open(self, port: str, baudrate: int) -> None:
        """
        Open the serial port and bring the SSP link up.

        Sends SYNC, reads SETUP_REQUEST for the protocol version and
        enables all channels.

        Raises:
            DeviceBusyError: Port is held by another process.
            DeviceNotReadyError: Port cannot be opened.
            DeviceTimeoutError: Device did not answer the handshake.
            DeviceProtocolError: Handshake was rejected.
        """
        if self._transport is not None:
            logger.debug("SSP link already open")
            return

        try:
            reader, writer = await self._connector(
                url=port, baudrate=baudrate, **self._port_options
            )
        except (serial.SerialException, OSError) as e:
            raise _port_error(port, e) from e

        self._transport = SSPTransport(reader, writer, timeout=self.timeout)
        self._sequence = SEQUENCE_FLAG

        try:
            await self._handshake()
        except Exception:
            await self.close()
            raise

        logger.info(f"SSP link up on {port} @ {baudrate} (protocol v{self.protocol_version})")

    async def _handshake(self) -> None:
        sync = await self.command("SYNC")
        if not sync.success:
            raise DeviceProtocolError(
                f"SYNC rejected: {sync.status}", status=sync.status, device_name="nv200"
            )

        setup = await self.command("SETUP_REQUEST")
        if setup.success and setup.info:
            self.setup_info = setup.info
            self.protocol_version = setup.info.get("protocol_version", DEFAULT_PROTOCOL_VERSION)
            logger.info(
                f"NV200 firmware {self.setup_info.get('firmware_version')}, "
                f"{self.setup_info.get('channel_count')} channels, "
                f"currency {self.setup_info.get('country_code')}"
            )
        else:
            logger.warning(
                f"SETUP_REQUEST failed ({setup.status}), "
                f"assuming protocol v{DEFAULT_PROTOCOL_VERSION}"
            )

        inhibits = await self.command("SET_CHANNEL_INHIBITS")
        if not inhibits.success:
            logger.warning(f"SET_CHANNEL_INHIBITS failed: {inhibits.status}")

    async def command(
        self,
        name: str,
        params: Optional[dict[str, Any]] = None,
    ) -> CommandResult:
        """
        Send one command and wait for its response.

        Args:
            name: Command name (e.g. "POLL").
            params: Command parameters.

        Raises:
            DeviceNotReadyError: Link is not open.
            DeviceTimeoutError: No response in time.
            DeviceProtocolError: Malformed or mismatched response.
            ValueError: Unknown command or bad parameters.
        """
        if self._transport is None:
            raise DeviceNotReadyError("Serial port is not open", device_name="nv200")

        try:
            code = Command[name]
        except KeyError:
            raise ValueError(f"Unknown command: {name}") from None

        if code == Command.SYNC:
            self._sequence = SEQUENCE_FLAG

        payload = bytes([code]) + encode_arguments(
            code, params or {}, self.protocol_version, self.country_code
        )
        request = SSPPacket(slave_id=self.slave_id, sequence=self._sequence, data=payload)

        try:
            await self._transport.send_packet(request)
            response = await self._transport.receive_packet()
        except OSError as e:
            raise DeviceProtocolError(f"Serial I/O error: {e}", device_name="nv200") from e

        # On timeout the flag is kept, so the device answers a repeat
        # with its cached response
        if response.slave_id != self.slave_id or response.sequence != request.sequence:
            raise DeviceProtocolError(
                f"Unexpected response {response!r} to {request!r}", device_name="nv200"
            )
        self._sequence ^= SEQUENCE_FLAG

        result = decode_response(name, response.data, self.protocol_version)
        logger.debug(f"{name} -> {result.status}")
        return result

    async def close(self) -> None:
        """Close the serial link."""
        transport, self._transport = self._transport, None
        if transport is None:
            return
        await transport.close()
        logger.info("SSP link closed")
