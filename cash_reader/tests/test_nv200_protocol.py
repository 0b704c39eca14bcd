"""
Tests for the NV200 SSP driver: CRC, framing, codecs and the handshake.
"""

import asyncio
import errno
import struct
from unittest.mock import AsyncMock, MagicMock

import pytest
import serial

from core.exceptions import (
    DeviceBusyError,
    DeviceNotReadyError,
    DeviceProtocolError,
    DeviceTimeoutError,
)
from devices.nv200.constants import Command
from devices.nv200.crc import calculate_crc16, stuff, verify_crc16
from devices.nv200.protocol import (
    SSPProtocol,
    decode_poll_events,
    decode_response,
    encode_arguments,
    parse_setup_request,
)
from devices.nv200.transport import SSPPacket, SSPTransport


SYNC_FRAME = bytes.fromhex("7F8001116582")
SYNC_OK_FRAME = bytes.fromhex("7F8001F02380")

# unit type, firmware, country, multiplier, 2 channels, values,
# security, real multiplier, protocol version 7
SETUP_DATA = (
    bytes([0x00]) + b"0400" + b"EUR" + bytes([0, 0, 1])
    + bytes([2, 5, 10, 2, 2]) + bytes([0, 0, 100]) + bytes([7])
)


def frame(sequence: int, data: bytes) -> bytes:
    return SSPPacket(sequence=sequence, data=data).to_bytes()


def make_writer() -> MagicMock:
    writer = MagicMock()
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    return writer


def written(writer: MagicMock) -> list[bytes]:
    return [call.args[0] for call in writer.write.call_args_list]


# =============================================================================
# CRC / framing
# =============================================================================


class TestCrc:
    """Tests for the CRC-16 and byte stuffing."""

    def test_sync_frame(self):
        assert SSPPacket(data=bytes([Command.SYNC])).to_bytes() == SYNC_FRAME

    def test_known_crc(self):
        assert calculate_crc16(bytes([0x80, 0x01, 0x11])) == bytes([0x65, 0x82])
        assert calculate_crc16(bytes([0x80, 0x01, 0xF0])) == bytes([0x23, 0x80])

    def test_verify(self):
        assert verify_crc16(SYNC_FRAME[1:])
        assert not verify_crc16(SYNC_FRAME[1:-1] + b"\x00")
        assert not verify_crc16(b"\x80\x00")

    def test_stuffing(self):
        assert stuff(bytes([0x01, 0x7F, 0x02])) == bytes([0x01, 0x7F, 0x7F, 0x02])

    def test_packet_stuffs_data(self):
        raw = SSPPacket(data=bytes([0xF0, 0x7F])).to_bytes()
        assert raw[0] == 0x7F
        assert bytes([0x7F, 0x7F]) in raw[1:]

    def test_data_too_long(self):
        with pytest.raises(ValueError):
            SSPPacket(data=bytes(256)).to_bytes()


class TestTransport:
    """Tests for SSPTransport over an in-memory stream."""

    @pytest.mark.asyncio
    async def test_receive_ok(self):
        reader = asyncio.StreamReader()
        reader.feed_data(SYNC_OK_FRAME)
        transport = SSPTransport(reader, make_writer(), timeout=0.5)

        packet = await transport.receive_packet()

        assert packet.sequence == 0x80
        assert packet.slave_id == 0
        assert packet.data == bytes([0xF0])

    @pytest.mark.asyncio
    async def test_skips_garbage_before_stx(self):
        reader = asyncio.StreamReader()
        reader.feed_data(b"\x00\x12\x34" + SYNC_OK_FRAME)
        transport = SSPTransport(reader, make_writer(), timeout=0.5)

        packet = await transport.receive_packet()

        assert packet.data == bytes([0xF0])

    @pytest.mark.asyncio
    async def test_unstuffs_data(self):
        reader = asyncio.StreamReader()
        reader.feed_data(frame(0x00, bytes([0xF0, 0x7F, 0x7F, 0x01])))
        transport = SSPTransport(reader, make_writer(), timeout=0.5)

        packet = await transport.receive_packet()

        assert packet.sequence == 0x00
        assert packet.data == bytes([0xF0, 0x7F, 0x7F, 0x01])

    @pytest.mark.asyncio
    async def test_bad_crc(self):
        reader = asyncio.StreamReader()
        reader.feed_data(SYNC_OK_FRAME[:-1] + b"\x00")
        transport = SSPTransport(reader, make_writer(), timeout=0.5)

        with pytest.raises(DeviceProtocolError):
            await transport.receive_packet()

    @pytest.mark.asyncio
    async def test_timeout(self):
        transport = SSPTransport(asyncio.StreamReader(), make_writer(), timeout=0.01)

        with pytest.raises(DeviceTimeoutError):
            await transport.receive_packet()

    @pytest.mark.asyncio
    async def test_stream_closed(self):
        reader = asyncio.StreamReader()
        reader.feed_data(SYNC_OK_FRAME[:3])
        reader.feed_eof()
        transport = SSPTransport(reader, make_writer(), timeout=0.5)

        with pytest.raises(DeviceProtocolError):
            await transport.receive_packet()

    @pytest.mark.asyncio
    async def test_send(self):
        writer = make_writer()
        transport = SSPTransport(asyncio.StreamReader(), writer)

        await transport.send_packet(SSPPacket(data=bytes([Command.SYNC])))

        assert written(writer) == [SYNC_FRAME]
        writer.drain.assert_awaited_once()


# =============================================================================
# Codecs
# =============================================================================


class TestDecodePollEvents:
    """Tests for decode_poll_events()."""

    def test_channel_events(self):
        events = decode_poll_events(bytes([0xEF, 0x02, 0xEE, 0x02, 0xCC, 0xEB]))

        assert [(e.name, e.channel) for e in events] == [
            ("READ_NOTE", 2),
            ("CREDIT_NOTE", 2),
            ("NOTE_STACKING", None),
            ("NOTE_STACKED", None),
        ]
        assert events[1].description == "A note has passed the credit point"

    def test_value_event_with_currency(self):
        data = bytes([0xD2, 0x01]) + struct.pack("<I", 1000) + b"EUR"
        events = decode_poll_events(data, protocol_version=7)

        assert events[0].name == "NOTE_DISPENSED"
        assert events[0].value == [{"value": 1000, "country_code": "EUR"}]

    def test_value_event_legacy(self):
        data = bytes([0xDA]) + struct.pack("<I", 500) + bytes([0xE8])
        events = decode_poll_events(data, protocol_version=4)

        assert [e.name for e in events] == ["NOTE_DISPENSING", "DISABLED"]
        assert events[0].value == 500

    def test_payout_error_event(self):
        data = bytes([0xB1, 0x01]) + struct.pack("<I", 2000) + b"EUR" + bytes([0x03])
        events = decode_poll_events(data, protocol_version=7)

        assert events[0].name == "ERROR"
        assert events[0].value == [{"value": 2000, "country_code": "EUR"}]
        assert "0x03" in events[0].description

    def test_unknown_code_stops_decoding(self):
        events = decode_poll_events(bytes([0xF1, 0x42, 0xEE, 0x01]))

        assert [e.name for e in events] == ["SLAVE_RESET", "UNKNOWN"]
        assert events[1].code == 0x42
        assert events[1].raw_data == bytes([0x42, 0xEE, 0x01])

    @pytest.mark.parametrize(
        "data",
        [
            bytes([0xEE]),
            bytes([0xD2, 0x02]) + struct.pack("<I", 1000) + b"EUR",
            bytes([0xC9, 0x00, 0x01]),
        ],
    )
    def test_truncated(self, data):
        with pytest.raises(DeviceProtocolError):
            decode_poll_events(data, protocol_version=7)

    def test_empty(self):
        assert decode_poll_events(b"") == []


class TestEncodeArguments:
    """Tests for encode_arguments()."""

    def test_payout_with_currency(self):
        data = encode_arguments(Command.PAYOUT_AMOUNT, {"amount": 1000}, protocol_version=7)
        assert data == struct.pack("<I", 1000) + b"EUR" + bytes([0x58])

    def test_payout_test_mode(self):
        data = encode_arguments(
            Command.PAYOUT_AMOUNT,
            {"amount": 1000, "country_code": "gbp", "test": True},
            protocol_version=7,
        )
        assert data[4:] == b"GBP" + bytes([0x19])

    def test_payout_legacy(self):
        data = encode_arguments(Command.PAYOUT_AMOUNT, {"amount": 1000}, protocol_version=4)
        assert data == struct.pack("<I", 1000)

    def test_float(self):
        data = encode_arguments(
            Command.FLOAT_AMOUNT, {"amount": 5000, "min_payout": 100}, protocol_version=7
        )
        assert data == struct.pack("<HI", 100, 5000) + b"EUR" + bytes([0x58])

    def test_route(self):
        data = encode_arguments(
            Command.SET_DENOMINATION_ROUTE, {"value": 2000, "route": "cashbox"}, protocol_version=7
        )
        assert data == bytes([0x01]) + struct.pack("<I", 2000) + b"EUR"

    def test_inhibits_default_mask(self):
        assert encode_arguments(Command.SET_CHANNEL_INHIBITS, {}) == bytes([0xFF, 0xFF])

    @pytest.mark.parametrize(
        "command,params",
        [
            (Command.PAYOUT_AMOUNT, {}),
            (Command.PAYOUT_AMOUNT, {"amount": -1}),
            (Command.PAYOUT_AMOUNT, {"amount": 1, "country_code": "EURO"}),
            (Command.SET_DENOMINATION_ROUTE, {"value": 500, "route": "floor"}),
        ],
    )
    def test_invalid(self, command, params):
        with pytest.raises(ValueError):
            encode_arguments(command, params)

    @pytest.mark.parametrize("name", ["LAST_REJECT_CODE", "HOST_PROTOCOL_VERSION", "RESET", "REJECT_BANKNOTE"])
    def test_unused_commands_not_defined(self, name):
        assert name not in Command.__members__


class TestDecodeResponse:
    """Tests for decode_response() and parse_setup_request()."""

    def test_serial_number(self):
        result = decode_response("GET_SERIAL_NUMBER", bytes.fromhex("F000BC614E"))
        assert result.success
        assert result.info == {"serial_number": 12345678}

    def test_route(self):
        assert decode_response("GET_DENOMINATION_ROUTE", bytes([0xF0, 0x00])).info == {"route": "payout"}

    def test_rejected(self):
        result = decode_response("PAYOUT_AMOUNT", bytes([0xF5, 0x01]))
        assert not result.success
        assert result.status == "COMMAND_CANNOT_BE_PROCESSED"
        assert result.info == "01"

    def test_undefined_status(self):
        assert decode_response("POLL", bytes([0x01])).status == "UNDEFINED"

    def test_empty(self):
        with pytest.raises(DeviceProtocolError):
            decode_response("POLL", b"")

    def test_setup(self):
        info = parse_setup_request(SETUP_DATA)
        assert info["protocol_version"] == 7
        assert info["channel_count"] == 2
        assert info["channel_values"] == [5, 10]
        assert info["country_code"] == "EUR"
        assert info["real_value_multiplier"] == 100

    def test_setup_truncated(self):
        with pytest.raises(DeviceProtocolError):
            parse_setup_request(SETUP_DATA[:12])


# =============================================================================
# Protocol
# =============================================================================


class TestSSPProtocol:
    """Tests for SSPProtocol over a fake serial connector."""

    @staticmethod
    def make_protocol(*responses: bytes, timeout: float = 0.5, error: Exception = None):
        reader = asyncio.StreamReader()
        for response in responses:
            reader.feed_data(response)
        writer = make_writer()
        opened = {}

        async def connector(**kwargs):
            opened.update(kwargs)
            if error is not None:
                raise error
            return reader, writer

        protocol = SSPProtocol(timeout=timeout, connector=connector)
        return protocol, writer, opened

    @pytest.mark.asyncio
    async def test_handshake(self):
        protocol, writer, opened = self.make_protocol(
            frame(0x80, bytes([0xF0])),
            frame(0x00, bytes([0xF0]) + SETUP_DATA),
            frame(0x80, bytes([0xF0])),
            frame(0x00, bytes([0xF0, 0xEE, 0x03])),
        )

        await protocol.open("/dev/ttyUSB0", 9600)

        assert protocol.is_open
        assert protocol.protocol_version == 7
        assert opened["url"] == "/dev/ttyUSB0"
        assert opened["stopbits"] == 2
        frames = written(writer)
        assert frames[0] == SYNC_FRAME
        assert frames[1] == frame(0x00, bytes([Command.SETUP_REQUEST]))
        assert frames[2] == frame(0x80, bytes([Command.SET_CHANNEL_INHIBITS, 0xFF, 0xFF]))

        result = await protocol.command("POLL")
        assert [(e.name, e.channel) for e in result.info] == [("CREDIT_NOTE", 3)]

        await protocol.close()
        assert not protocol.is_open
        writer.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_setup_failure_keeps_default_version(self):
        protocol, _, _ = self.make_protocol(
            frame(0x80, bytes([0xF0])),
            frame(0x00, bytes([0xF8])),
            frame(0x80, bytes([0xF0])),
        )

        await protocol.open("/dev/ttyUSB0", 9600)

        assert protocol.protocol_version == 6

    @pytest.mark.asyncio
    async def test_no_answer(self):
        protocol, writer, _ = self.make_protocol(timeout=0.01)

        with pytest.raises(DeviceTimeoutError):
            await protocol.open("/dev/ttyUSB0", 9600)

        assert not protocol.is_open
        writer.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_wrong_sequence(self):
        protocol, _, _ = self.make_protocol(frame(0x00, bytes([0xF0])))

        with pytest.raises(DeviceProtocolError):
            await protocol.open("/dev/ttyUSB0", 9600)
        assert not protocol.is_open

    @pytest.mark.asyncio
    async def test_busy_port(self):
        protocol, _, _ = self.make_protocol(
            error=serial.SerialException("[Errno 16] could not open port: Device or resource busy")
        )

        with pytest.raises(DeviceBusyError):
            await protocol.open("/dev/ttyUSB0", 9600)

    @pytest.mark.asyncio
    async def test_missing_port(self):
        protocol, _, _ = self.make_protocol(
            error=OSError(errno.ENOENT, "No such file or directory")
        )

        with pytest.raises(DeviceNotReadyError):
            await protocol.open("/dev/ttyUSB9", 9600)

    @pytest.mark.asyncio
    async def test_command_before_open(self):
        protocol = SSPProtocol()
        with pytest.raises(DeviceNotReadyError):
            await protocol.command("POLL")

    @pytest.mark.asyncio
    async def test_unknown_command(self):
        protocol, _, _ = self.make_protocol(
            frame(0x80, bytes([0xF0])),
            frame(0x00, bytes([0xF0]) + SETUP_DATA),
            frame(0x80, bytes([0xF0])),
        )
        await protocol.open("/dev/ttyUSB0", 9600)

        with pytest.raises(ValueError):
            await protocol.command("SELF_DESTRUCT")
        await protocol.close()
