"""
SSP Transport Layer.

Handles low-level serial communication: frame building, byte stuffing,
CRC validation and timeouts.

Frame format:
    STX | SEQ/ID | LEN | DATA... | CRC_L | CRC_H

    STX    - 0x7F, never stuffed
    SEQ/ID - sequence flag (0x80 or 0x00) | slave id (7 bits)
    LEN    - number of DATA bytes
    CRC    - CRC-16 over SEQ/ID, LEN and DATA

Every 0x7F after STX is transmitted as 0x7F 0x7F.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from core.exceptions import DeviceProtocolError, DeviceTimeoutError

from .constants import (
    DEFAULT_SLAVE_ID,
    MAX_DATA_LENGTH,
    RESPONSE_TIMEOUT_S,
    SEQUENCE_FLAG,
    STX,
)
from .crc import append_crc, stuff, verify_crc16


logger = logging.getLogger(__name__)


@dataclass
class SSPPacket:
    """
    SSP packet structure.

    Attributes:
        slave_id: Device address (0x00 for validators).
        sequence: Sequence flag, 0x80 or 0x00.
        data: Command code and parameters, or status and response data.
    """

    slave_id: int = DEFAULT_SLAVE_ID
    sequence: int = SEQUENCE_FLAG
    data: bytes = b''

    @property
    def seq_id(self) -> int:
        """Combined SEQ/ID byte."""
        return (self.sequence & SEQUENCE_FLAG) | (self.slave_id & 0x7F)

    def to_bytes(self) -> bytes:
        """
        Serialize packet to bytes for transmission.

        Returns:
            Complete frame with STX, stuffed body and CRC.
        """
        if len(self.data) > MAX_DATA_LENGTH:
            raise ValueError(f"Data too long: {len(self.data)} bytes")
        body = append_crc(bytes([self.seq_id, len(self.data)]) + self.data)
        return bytes([STX]) + stuff(body)

    @classmethod
    def from_body(cls, body: bytes) -> Optional['SSPPacket']:
        """
        Parse an unstuffed frame body (everything after STX).

        Args:
            body: SEQ/ID + LEN + DATA + CRC.

        Returns:
            Parsed packet or None if length or CRC is invalid.
        """
        if len(body) < 4:
            logger.warning(f"Frame too short: {len(body)} bytes")
            return None

        length = body[1]
        if len(body) != length + 4:
            logger.warning(f"Length mismatch: expected {length + 4}, got {len(body)}")
            return None

        if not verify_crc16(body):
            logger.warning(f"CRC error in frame: {body.hex()}")
            return None

        return cls(
            slave_id=body[0] & 0x7F,
            sequence=body[0] & SEQUENCE_FLAG,
            data=bytes(body[2:2 + length]),
        )

    def __repr__(self) -> str:
        return (
            f"SSPPacket(id=0x{self.slave_id:02X}, seq=0x{self.sequence:02X}, "
            f"data={self.data.hex()})"
        )


class SSPTransport:
    """
    Frame-level transport over an asyncio stream pair.

    Attributes:
        timeout: Response timeout in seconds.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        timeout: float = RESPONSE_TIMEOUT_S,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.timeout = timeout

    async def send_packet(self, packet: SSPPacket) -> None:
        """Send a packet and flush the writer."""
        frame = packet.to_bytes()
        logger.debug(f"TX: {frame.hex()}")
        self._writer.write(frame)
        await self._writer.drain()

    async def receive_packet(self, timeout: Optional[float] = None) -> SSPPacket:
        """
        Receive one packet.

        Args:
            timeout: Override for the default timeout.

        Raises:
            DeviceTimeoutError: Nothing complete arrived in time.
            DeviceProtocolError: Bad CRC, bad length or the stream closed.
        """
        wait = self.timeout if timeout is None else timeout
        try:
            body = await asyncio.wait_for(self._read_frame(), timeout=wait)
        except asyncio.TimeoutError:
            raise DeviceTimeoutError(
                f"No response within {wait:.1f}s", device_name="nv200"
            ) from None
        except asyncio.IncompleteReadError as e:
            raise DeviceProtocolError(
                "Serial stream closed while reading", device_name="nv200"
            ) from e

        logger.debug(f"RX: {body.hex()}")
        packet = SSPPacket.from_body(body)
        if packet is None:
            raise DeviceProtocolError(
                f"Invalid frame: {body.hex()}", device_name="nv200"
            )
        return packet

    async def _read_frame(self) -> bytes:
        # Hunt for a lone STX; a doubled 0x7F is stuffed data
        while True:
            byte = (await self._reader.readexactly(1))[0]
            if byte != STX:
                continue
            seq_id = (await self._reader.readexactly(1))[0]
            if seq_id != STX:
                break

        length = await self._read_unstuffed()
        body = bytearray([seq_id, length])
        for _ in range(length + 2):
            body.append(await self._read_unstuffed())
        return bytes(body)

    async def _read_unstuffed(self) -> int:
        byte = (await self._reader.readexactly(1))[0]
        if byte != STX:
            return byte
        following = (await self._reader.readexactly(1))[0]
        if following != STX:
            raise DeviceProtocolError(
                "Unexpected STX inside frame", device_name="nv200"
            )
        return STX

    async def close(self) -> None:
        """Close the underlying writer."""
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (OSError, RuntimeError) as e:
            logger.debug(f"Error while closing serial writer: {e}")
