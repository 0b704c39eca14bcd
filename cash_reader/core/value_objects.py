"""
Value Objects for the cash reader.

Immutable objects that represent values in the domain.
Value objects are compared by value, not by identity.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional


# =============================================================================
# Enums
# =============================================================================


class SessionPhase(Enum):
    """Lifecycle phase of a cash session."""

    IDLE = auto()
    STARTING = auto()
    RUNNING = auto()
    RESETTING = auto()
    FAILED = auto()
    STOPPED = auto()


class Severity(Enum):
    """Severity attached to an outbound notification."""

    INFO = auto()
    WARNING = auto()
    ERROR = auto()


class EventName(str, Enum):
    """
    Names of device events reported by POLL.

    Plus the two session-level notifications emitted by the reader itself.
    """

    SLAVE_RESET = "SLAVE_RESET"
    READ_NOTE = "READ_NOTE"
    CREDIT_NOTE = "CREDIT_NOTE"
    NOTE_REJECTING = "NOTE_REJECTING"
    NOTE_REJECTED = "NOTE_REJECTED"
    NOTE_STACKING = "NOTE_STACKING"
    NOTE_STACKED = "NOTE_STACKED"
    SAFE_JAM = "SAFE_JAM"
    UNSAFE_JAM = "UNSAFE_JAM"
    DISABLED = "DISABLED"
    FRAUD_ATTEMPT = "FRAUD_ATTEMPT"
    STACKER_FULL = "STACKER_FULL"
    NOTE_CLEARED_FROM_FRONT = "NOTE_CLEARED_FROM_FRONT"
    NOTE_CLEARED_TO_CASHBOX = "NOTE_CLEARED_TO_CASHBOX"
    CASH_BOX_REMOVED = "CASH_BOX_REMOVED"
    CASH_BOX_REPLACED = "CASH_BOX_REPLACED"
    NOTE_PATH_OPEN = "NOTE_PATH_OPEN"
    CHANNEL_DISABLE = "CHANNEL_DISABLE"
    INITIALISING = "INITIALISING"
    NOTE_STORED_IN_PAYOUT = "NOTE_STORED_IN_PAYOUT"
    NOTE_DISPENSING = "NOTE_DISPENSING"
    NOTE_DISPENSED = "NOTE_DISPENSED"
    NOTE_TRANSFERRED_TO_STACKER = "NOTE_TRANSFERRED_TO_STACKER"
    EMPTYING = "EMPTYING"
    EMPTIED = "EMPTIED"
    SMART_EMPTYING = "SMART_EMPTYING"
    SMART_EMPTIED = "SMART_EMPTIED"
    COIN_MECH_ERROR = "COIN_MECH_ERROR"
    COIN_MECH_JAM = "COIN_MECH_JAM"
    BARCODE_TICKET_VALIDATED = "BARCODE_TICKET_VALIDATED"
    BARCODE_TICKET_ACKNOWLEDGE = "BARCODE_TICKET_ACKNOWLEDGE"
    ERROR = "ERROR"
    UNKNOWN = "UNKNOWN"

    # Emitted by the reader, never by the device
    TRANSACTION_COMPLETED = "TRANSACTION_COMPLETED"
    DEVICE_START_FAILED = "DEVICE_START_FAILED"


# =============================================================================
# Denomination Value Object
# =============================================================================


@dataclass(frozen=True)
class Denomination:
    """
    A note denomination bound to a hardware channel.

    Attributes:
        channel: Hardware channel number (1-based, 0 for unknown).
        face_value: Value in minor currency units (cents).
        label: Human-readable label, e.g. "10 EUR".
    """

    channel: int
    face_value: int
    label: str

    @property
    def is_known(self) -> bool:
        """Check if this is a real catalog entry."""
        return self.channel > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "channel": self.channel,
            "value": self.face_value,
            "label": self.label,
        }


UNKNOWN_DENOMINATION = Denomination(channel=0, face_value=0, label="Unknown")


# =============================================================================
# Device Event / Command Result
# =============================================================================


@dataclass(frozen=True)
class DeviceEvent:
    """
    One event decoded from a POLL response.

    Attributes:
        name: Event name (e.g. "CREDIT_NOTE").
        channel: Channel number for note events.
        description: Human-readable description.
        raw_data: Undecoded bytes belonging to the event.
        code: SSP event code.
        value: Value payload for value-reporting events.
    """

    name: str
    channel: Optional[int] = None
    description: Optional[str] = None
    raw_data: Optional[bytes] = None
    code: Optional[int] = None
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting empty fields."""
        result: dict[str, Any] = {"name": self.name}
        if self.channel is not None:
            result["channel"] = self.channel
        if self.description:
            result["description"] = self.description
        if self.code is not None:
            result["code"] = self.code
        if self.value is not None:
            result["value"] = self.value
        if self.raw_data:
            result["raw_data"] = self.raw_data.hex()
        return result


@dataclass(frozen=True)
class CommandResult:
    """
    Answer of the device to a single command.

    Attributes:
        command: Command name.
        status: Response status name ("OK" on success).
        info: Decoded response payload.
    """

    command: str
    status: str
    info: Any = None

    @property
    def success(self) -> bool:
        """Check if the device answered OK."""
        return self.status == "OK"


# =============================================================================
# Ledger Snapshot
# =============================================================================


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Immutable copy of a session ledger.

    Attributes:
        total_value: Sum of count * face_value over all entries.
        entries: Tuples of (label, count, face_value) in catalog order.
    """

    total_value: int = 0
    entries: tuple[tuple[str, int, int], ...] = field(default_factory=tuple)

    def count_of(self, label: str) -> int:
        """Get the count recorded for a label."""
        for entry_label, count, _ in self.entries:
            if entry_label == label:
                return count
        return 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_value": self.total_value,
            "entries": {
                label: {"count": count, "face_value": face_value}
                for label, count, face_value in self.entries
            },
        }


# =============================================================================
# Session Status
# =============================================================================


@dataclass(frozen=True)
class SessionStatus:
    """
    Point-in-time status of a cash session.

    Attributes:
        phase: Lifecycle phase.
        operator_id: Operator who started the session.
        is_responsive: Whether a poll succeeded recently.
        consecutive_poll_failures: Failed polls since the last success.
        last_poll_at: Monotonic time of the last successful poll.
        total_value: Current ledger total.
        error_message: Last fatal error, if any.
    """

    phase: SessionPhase
    operator_id: Optional[str] = None
    is_responsive: bool = False
    consecutive_poll_failures: int = 0
    last_poll_at: Optional[float] = None
    total_value: int = 0
    error_message: Optional[str] = None

    @property
    def is_alive(self) -> bool:
        """Check if the session still drives the device."""
        if self.phase in (SessionPhase.STARTING, SessionPhase.RESETTING):
            return True
        return self.phase == SessionPhase.RUNNING and self.is_responsive

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "phase": self.phase.name.lower(),
            "operator_id": self.operator_id,
            "is_responsive": self.is_responsive,
            "consecutive_poll_failures": self.consecutive_poll_failures,
            "total_value": self.total_value,
        }
        if self.error_message:
            result["error"] = self.error_message
        return result
