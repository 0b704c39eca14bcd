"""
SSP Protocol Constants and Enumerations for the NV200 note validator.

Commands, response statuses and POLL event codes are defined as IntEnum
for type safety. Event codes map onto the reader-wide EventName values.
"""

from enum import IntEnum
from typing import Final

from core.value_objects import EventName


# Framing constants
STX: Final[int] = 0x7F  # Start of frame; 0x7F inside a frame is sent twice
SEQUENCE_FLAG: Final[int] = 0x80
DEFAULT_SLAVE_ID: Final[int] = 0x00
MAX_DATA_LENGTH: Final[int] = 255

# CRC-16 over SEQ/ID, LEN and DATA
CRC_SEED: Final[int] = 0xFFFF
CRC_POLYNOMIAL: Final[int] = 0x8005

# Serial line settings (8 data bits, no parity, 2 stop bits)
SERIAL_OPTIONS: Final[dict[str, object]] = {
    "bytesize": 8,
    "parity": "N",
    "stopbits": 2,
}

# Timing
RESPONSE_TIMEOUT_S: Final[float] = 3.0

# Event layouts changed with protocol version 6
DEFAULT_PROTOCOL_VERSION: Final[int] = 6

# Test flag for payout/float requests (0x58 = execute, 0x19 = test only)
PAYOUT_EXECUTE: Final[int] = 0x58
PAYOUT_TEST: Final[int] = 0x19

# All channels enabled (channel 1 is the LSB)
ALL_CHANNELS_MASK: Final[bytes] = bytes([0xFF, 0xFF])


class Command(IntEnum):
    """SSP generic and validator commands used by the reader."""

    SET_CHANNEL_INHIBITS = 0x02
    SETUP_REQUEST = 0x05
    POLL = 0x07
    DISABLE = 0x09
    ENABLE = 0x0A
    GET_SERIAL_NUMBER = 0x0C
    SYNC = 0x11
    PAYOUT_AMOUNT = 0x33
    SET_DENOMINATION_ROUTE = 0x3B
    GET_DENOMINATION_ROUTE = 0x3C
    FLOAT_AMOUNT = 0x3D
    EMPTY_ALL = 0x3F


class ResponseStatus(IntEnum):
    """First byte of every device response."""

    OK = 0xF0
    COMMAND_NOT_KNOWN = 0xF2
    WRONG_NO_PARAMETERS = 0xF3
    PARAMETER_OUT_OF_RANGE = 0xF4
    COMMAND_CANNOT_BE_PROCESSED = 0xF5
    SOFTWARE_ERROR = 0xF6
    FAIL = 0xF8
    KEY_NOT_SET = 0xFA


class PollEventCode(IntEnum):
    """Event codes carried in a POLL response."""

    SLAVE_RESET = 0xF1
    READ_NOTE = 0xEF
    CREDIT_NOTE = 0xEE
    NOTE_REJECTING = 0xED
    NOTE_REJECTED = 0xEC
    NOTE_STACKING = 0xCC
    NOTE_STACKED = 0xEB
    SAFE_JAM = 0xEA
    UNSAFE_JAM = 0xE9
    DISABLED = 0xE8
    STACKER_FULL = 0xE7
    FRAUD_ATTEMPT = 0xE6
    BARCODE_TICKET_VALIDATED = 0xE5
    CASH_BOX_REPLACED = 0xE4
    CASH_BOX_REMOVED = 0xE3
    NOTE_CLEARED_TO_CASHBOX = 0xE2
    NOTE_CLEARED_FROM_FRONT = 0xE1
    NOTE_PATH_OPEN = 0xE0
    NOTE_STORED_IN_PAYOUT = 0xDB
    NOTE_DISPENSING = 0xDA
    NOTE_DISPENSED = 0xD2
    BARCODE_TICKET_ACKNOWLEDGE = 0xD1
    NOTE_TRANSFERRED_TO_STACKER = 0xC9
    COIN_MECH_JAM = 0xC4
    EMPTIED = 0xC3
    EMPTYING = 0xC2
    COIN_MECH_ERROR = 0xB7
    INITIALISING = 0xB6
    CHANNEL_DISABLE = 0xB5
    SMART_EMPTIED = 0xB4
    SMART_EMPTYING = 0xB3
    ERROR = 0xB1  # error during payout


# Event code -> reader event name
EVENT_NAMES: Final[dict[int, EventName]] = {
    code: EventName[code.name] for code in PollEventCode
}

EVENT_DESCRIPTIONS: Final[dict[int, str]] = {
    PollEventCode.SLAVE_RESET: "Device has undergone a power reset",
    PollEventCode.READ_NOTE: "A note is being read",
    PollEventCode.CREDIT_NOTE: "A note has passed the credit point",
    PollEventCode.NOTE_REJECTING: "A note is being rejected",
    PollEventCode.NOTE_REJECTED: "A note has been rejected",
    PollEventCode.NOTE_STACKING: "A note is being moved to the stacker",
    PollEventCode.NOTE_STACKED: "A note has been stacked",
    PollEventCode.SAFE_JAM: "Note jammed, not retrievable by the user",
    PollEventCode.UNSAFE_JAM: "Note jammed, possibly retrievable by the user",
    PollEventCode.DISABLED: "Device is disabled",
    PollEventCode.STACKER_FULL: "Stacker is full",
    PollEventCode.FRAUD_ATTEMPT: "Fraud attempt detected",
    PollEventCode.BARCODE_TICKET_VALIDATED: "Barcode ticket validated",
    PollEventCode.CASH_BOX_REPLACED: "Cashbox replaced",
    PollEventCode.CASH_BOX_REMOVED: "Cashbox removed",
    PollEventCode.NOTE_CLEARED_TO_CASHBOX: "Note cleared to cashbox at power-up",
    PollEventCode.NOTE_CLEARED_FROM_FRONT: "Note cleared from front at power-up",
    PollEventCode.NOTE_PATH_OPEN: "Note path open",
    PollEventCode.NOTE_STORED_IN_PAYOUT: "Note stored in payout",
    PollEventCode.NOTE_DISPENSING: "Payout in progress",
    PollEventCode.NOTE_DISPENSED: "Payout completed",
    PollEventCode.BARCODE_TICKET_ACKNOWLEDGE: "Barcode ticket acknowledged",
    PollEventCode.NOTE_TRANSFERRED_TO_STACKER: "Note moved from payout to stacker",
    PollEventCode.COIN_MECH_JAM: "Coin mechanism jammed",
    PollEventCode.EMPTIED: "Emptying completed",
    PollEventCode.EMPTYING: "Emptying in progress",
    PollEventCode.COIN_MECH_ERROR: "Coin mechanism error",
    PollEventCode.INITIALISING: "Device is initialising",
    PollEventCode.CHANNEL_DISABLE: "All channels are inhibited",
    PollEventCode.SMART_EMPTIED: "Smart emptying completed",
    PollEventCode.SMART_EMPTYING: "Smart emptying in progress",
    PollEventCode.ERROR: "Error during payout",
}

# Events followed by one channel byte
CHANNEL_EVENTS: Final[frozenset[int]] = frozenset({
    PollEventCode.READ_NOTE,
    PollEventCode.CREDIT_NOTE,
    PollEventCode.FRAUD_ATTEMPT,
    PollEventCode.NOTE_CLEARED_FROM_FRONT,
    PollEventCode.NOTE_CLEARED_TO_CASHBOX,
})

# Events followed by a value (4 bytes, or count + 7 bytes per currency on v6+)
VALUE_EVENTS: Final[frozenset[int]] = frozenset({
    PollEventCode.NOTE_DISPENSING,
    PollEventCode.NOTE_DISPENSED,
    PollEventCode.SMART_EMPTYING,
    PollEventCode.SMART_EMPTIED,
})

ROUTES: Final[dict[int, str]] = {
    0x00: "payout",
    0x01: "cashbox",
}


def get_status_name(code: int) -> str:
    """Get response status name, or UNDEFINED for unknown codes."""
    try:
        return ResponseStatus(code).name
    except ValueError:
        return "UNDEFINED"
