"""
Application layer - Cash session use cases.

Contains:
- Cash session (lifecycle, dispatch, reset orchestration)
- Poll loop
- Event notifier
- API facade and command handler
"""

from .notifier import EventNotifier, WebSocketEventSink
from .poll_loop import PollLoop
from .cash_session import CashSession
from .api_facade import CashReaderFacade, create_device
from .command_handler import CommandHandler, CommandResponse


__all__ = [
    "EventNotifier",
    "WebSocketEventSink",
    "PollLoop",
    "CashSession",
    "CashReaderFacade",
    "create_device",
    "CommandHandler",
    "CommandResponse",
]
