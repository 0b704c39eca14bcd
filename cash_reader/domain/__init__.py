"""
Domain layer - Business logic of a cash session.

Contains:
- Denomination catalog
- Transaction ledger
- Event handler (device event -> session action)
- Recovery controller (start/reset retry policy)
"""

from .denominations import DenominationCatalog
from .ledger import LedgerEntry, TransactionLedger
from .event_handler import EventHandler, HandlerAction, HandlerResult
from .recovery import RecoveryController, ResetState


__all__ = [
    # Catalog / Ledger
    "DenominationCatalog",
    "LedgerEntry",
    "TransactionLedger",
    # Events
    "EventHandler",
    "HandlerAction",
    "HandlerResult",
    # Recovery
    "RecoveryController",
    "ResetState",
]
