"""
Event Handler - maps device events to session actions.

The handler is a dispatch table and never touches session state.
It returns a HandlerResult that the poll loop applies in order, and
that is then turned into the outbound notification.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Optional

from core.value_objects import (
    Denomination,
    DeviceEvent,
    EventName,
    Severity,
)
from domain.denominations import DenominationCatalog
from loggers import logger


class HandlerAction(Enum):
    """What the session must do after an event."""

    NONE = auto()
    TRACK_NOTE = auto()   # remember the note in transit
    CREDIT = auto()       # credit the ledger, clear the note in transit
    RE_ENABLE = auto()    # fire-and-forget enable()
    RESET = auto()        # start a reset episode


@dataclass(frozen=True)
class HandlerResult:
    """
    Result of handling one device event.

    Attributes:
        event: The handled event.
        action: Action for the session to apply.
        severity: Severity of the outbound notification.
        denomination: Resolved denomination for CREDIT_NOTE.
        channel: Channel for TRACK_NOTE / CREDIT.
        handled: False when the event name has no dispatch entry.
    """

    event: DeviceEvent
    action: HandlerAction = HandlerAction.NONE
    severity: Severity = Severity.INFO
    denomination: Optional[Denomination] = None
    channel: Optional[int] = None
    handled: bool = True

    def to_notification(self, operator_id: Optional[str] = None) -> dict[str, Any]:
        """Build the payload sent to the event notifier."""
        payload: dict[str, Any] = {
            "event_name": self.event.name,
            "severity": self.severity.name.lower(),
            "operator_id": operator_id,
            "timestamp": time.time(),
        }
        if self.event.channel is not None:
            payload["channel"] = self.event.channel
        if self.event.description:
            payload["description"] = self.event.description
        if self.denomination is not None:
            payload["denomination"] = self.denomination.to_dict()
        if self.event.value is not None:
            payload["value"] = self.event.value
        return payload


# Informational events and the severity they are logged with
INFO_EVENTS: dict[str, tuple[Severity, str]] = {
    EventName.NOTE_REJECTING: (Severity.WARNING, "Note is being rejected"),
    EventName.NOTE_REJECTED: (Severity.WARNING, "Note has been rejected"),
    EventName.NOTE_STACKING: (Severity.INFO, "Note is being stacked"),
    EventName.NOTE_STACKED: (Severity.INFO, "Note has been stacked"),
    EventName.CASH_BOX_REPLACED: (Severity.INFO, "Cash box has been replaced"),
    EventName.NOTE_STORED_IN_PAYOUT: (Severity.INFO, "Note stored in payout device"),
    EventName.NOTE_DISPENSING: (Severity.INFO, "Note is being dispensed"),
    EventName.NOTE_DISPENSED: (Severity.INFO, "Note has been dispensed"),
    EventName.NOTE_TRANSFERRED_TO_STACKER: (Severity.INFO, "Note transferred to stacker"),
    EventName.NOTE_CLEARED_FROM_FRONT: (Severity.WARNING, "Note cleared from front at power-up"),
    EventName.NOTE_CLEARED_TO_CASHBOX: (Severity.WARNING, "Note cleared to cashbox at power-up"),
    EventName.NOTE_PATH_OPEN: (Severity.WARNING, "Note path open"),
    EventName.EMPTYING: (Severity.INFO, "Emptying in progress"),
    EventName.EMPTIED: (Severity.INFO, "Emptying completed"),
    EventName.SMART_EMPTYING: (Severity.INFO, "Smart emptying in progress"),
    EventName.SMART_EMPTIED: (Severity.INFO, "Smart emptying completed"),
    EventName.CHANNEL_DISABLE: (Severity.WARNING, "All channels disabled"),
    EventName.INITIALISING: (Severity.INFO, "Device is initializing"),
    EventName.BARCODE_TICKET_VALIDATED: (Severity.INFO, "Barcode ticket validated"),
    EventName.BARCODE_TICKET_ACKNOWLEDGE: (Severity.INFO, "Barcode ticket acknowledged"),
}

# Faults with no ledger effect; the notification is escalated
FAULT_EVENTS: dict[str, tuple[Severity, str]] = {
    EventName.FRAUD_ATTEMPT: (Severity.ERROR, "Fraud attempt detected"),
    EventName.STACKER_FULL: (Severity.WARNING, "Stacker is full"),
    EventName.CASH_BOX_REMOVED: (Severity.WARNING, "Cash box has been removed"),
    EventName.COIN_MECH_ERROR: (Severity.ERROR, "Coin mechanism error"),
    EventName.COIN_MECH_JAM: (Severity.ERROR, "Coin mechanism jam"),
    EventName.SAFE_JAM: (Severity.ERROR, "Safe jam detected"),
    EventName.UNSAFE_JAM: (Severity.ERROR, "Unsafe jam detected"),
    EventName.ERROR: (Severity.ERROR, "Generic error occurred"),
}

_LOG_LEVELS: dict[Severity, Callable[..., None]] = {
    Severity.INFO: logger.info,
    Severity.WARNING: logger.warning,
    Severity.ERROR: logger.error,
}


class EventHandler:
    """
    Total dispatch from DeviceEvent.name to a HandlerResult.

    Attributes:
        catalog: Catalog used to resolve CREDIT_NOTE channels.
    """

    def __init__(self, catalog: DenominationCatalog) -> None:
        self.catalog = catalog
        self._dispatch: dict[str, Callable[[DeviceEvent], HandlerResult]] = {
            EventName.SLAVE_RESET: self._on_slave_reset,
            EventName.DISABLED: self._on_disabled,
            EventName.READ_NOTE: self._on_read_note,
            EventName.CREDIT_NOTE: self._on_credit_note,
        }
        for name in INFO_EVENTS:
            self._dispatch[name] = self._on_informational
        for name in FAULT_EVENTS:
            self._dispatch[name] = self._on_fault

    def handle(self, event: DeviceEvent) -> HandlerResult:
        """
        Map one event to its action.

        Never raises for unknown names; they are logged as unhandled.
        """
        handler = self._dispatch.get(event.name)
        if handler is None:
            logger.warning(f"Unhandled event: {event.name}")
            return HandlerResult(event=event, severity=Severity.WARNING, handled=False)
        return handler(event)

    def _on_slave_reset(self, event: DeviceEvent) -> HandlerResult:
        logger.warning("The device has reset itself")
        return HandlerResult(event=event, action=HandlerAction.RESET, severity=Severity.WARNING)

    def _on_disabled(self, event: DeviceEvent) -> HandlerResult:
        logger.warning("Device is disabled. Attempting to enable...")
        return HandlerResult(event=event, action=HandlerAction.RE_ENABLE, severity=Severity.WARNING)

    def _on_read_note(self, event: DeviceEvent) -> HandlerResult:
        logger.info(f"Note being read: channel {event.channel}")
        return HandlerResult(event=event, action=HandlerAction.TRACK_NOTE, channel=event.channel)

    def _on_credit_note(self, event: DeviceEvent) -> HandlerResult:
        denomination = self.catalog.resolve(event.channel)
        logger.info(
            f"Note credited: channel {event.channel} -> {denomination.label} ({denomination.face_value})"
        )
        return HandlerResult(
            event=event,
            action=HandlerAction.CREDIT,
            denomination=denomination,
            channel=event.channel,
        )

    def _on_informational(self, event: DeviceEvent) -> HandlerResult:
        severity, message = INFO_EVENTS[event.name]
        _LOG_LEVELS[severity](message)
        return HandlerResult(event=event, severity=severity)

    def _on_fault(self, event: DeviceEvent) -> HandlerResult:
        severity, message = FAULT_EVENTS[event.name]
        details = f": {event.description}" if event.description else ""
        _LOG_LEVELS[severity](f"{message}{details}")
        return HandlerResult(event=event, severity=severity)
