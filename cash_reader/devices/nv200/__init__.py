"""
SSP Protocol Driver Package for the Innovative Technology NV200.

Layers, bottom up:
    crc         - CRC-16 and byte stuffing
    transport   - frame read/write over an asyncio stream pair
    protocol    - command codec, sequence flag and link handshake
    device      - session primitives (open, enable, poll, payout, ...)

Example:
    from devices.nv200 import NV200Device, SSPProtocol

    device = NV200Device(SSPProtocol(), port='/dev/ttyUSB0')
    await device.open()
    await device.enable()
    events = await device.poll()
"""

from .constants import (
    Command,
    PollEventCode,
    ResponseStatus,
    DEFAULT_PROTOCOL_VERSION,
    DEFAULT_SLAVE_ID,
    get_status_name,
)
from .crc import (
    calculate_crc16,
    verify_crc16,
    append_crc,
)
from .transport import (
    SSPPacket,
    SSPTransport,
)
from .protocol import (
    SSPProtocol,
    decode_poll_events,
    decode_response,
    encode_arguments,
)
from .device import (
    NV200Device,
)


__all__ = [
    # Constants
    "Command",
    "PollEventCode",
    "ResponseStatus",
    "DEFAULT_PROTOCOL_VERSION",
    "DEFAULT_SLAVE_ID",
    "get_status_name",
    # CRC
    "calculate_crc16",
    "verify_crc16",
    "append_crc",
    # Transport
    "SSPPacket",
    "SSPTransport",
    # Protocol
    "SSPProtocol",
    "decode_poll_events",
    "decode_response",
    "encode_arguments",
    # Device
    "NV200Device",
]
