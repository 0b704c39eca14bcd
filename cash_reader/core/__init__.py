"""
Core module - Foundation layer with no external dependencies.

Contains:
- Exceptions
- Interfaces (Protocols)
- Value Objects
"""

from .exceptions import (
    CashReaderError,
    DeviceError,
    DeviceTimeoutError,
    DeviceProtocolError,
    DeviceNotReadyError,
    DeviceStartFailedError,
    DeviceBusyError,
    SessionError,
    SessionAlreadyRunningError,
    SessionNotRunningError,
    NotifierDeliveryError,
)
from .interfaces import (
    Transport,
    EventSink,
)
from .value_objects import (
    CommandResult,
    Denomination,
    DeviceEvent,
    EventName,
    LedgerSnapshot,
    SessionPhase,
    SessionStatus,
    Severity,
    UNKNOWN_DENOMINATION,
)


__all__ = [
    # Exceptions
    "CashReaderError",
    "DeviceError",
    "DeviceTimeoutError",
    "DeviceProtocolError",
    "DeviceNotReadyError",
    "DeviceStartFailedError",
    "DeviceBusyError",
    "SessionError",
    "SessionAlreadyRunningError",
    "SessionNotRunningError",
    "NotifierDeliveryError",
    # Interfaces
    "Transport",
    "EventSink",
    # Value Objects
    "CommandResult",
    "Denomination",
    "DeviceEvent",
    "EventName",
    "LedgerSnapshot",
    "SessionPhase",
    "SessionStatus",
    "Severity",
    "UNKNOWN_DENOMINATION",
]
