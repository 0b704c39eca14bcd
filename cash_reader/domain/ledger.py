"""
Transaction Ledger - running tally of notes accepted in one session.

Notes are only ever added. The total is updated together with the
entry on every credit, so it always equals the sum of the entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.value_objects import Denomination, LedgerSnapshot
from domain.denominations import DenominationCatalog
from loggers import logger


@dataclass
class LedgerEntry:
    """Count of accepted notes of one denomination."""

    label: str
    face_value: int
    count: int = 0

    @property
    def value(self) -> int:
        """Get the value contributed by this entry."""
        return self.count * self.face_value


class TransactionLedger:
    """
    In-memory accumulator of accepted notes for the current session.

    Entries are pre-seeded with every catalog denomination at count 0.
    """

    def __init__(self, catalog: Optional[DenominationCatalog] = None) -> None:
        self._entries: dict[str, LedgerEntry] = {}
        self._total_value = 0
        if catalog is not None:
            for denomination in catalog:
                self._entries[denomination.label] = LedgerEntry(
                    label=denomination.label,
                    face_value=denomination.face_value,
                )

    @property
    def total_value(self) -> int:
        """Get the total accepted value in minor units."""
        return self._total_value

    @property
    def entries(self) -> dict[str, LedgerEntry]:
        """Get a copy of the entries keyed by label."""
        return {
            label: LedgerEntry(entry.label, entry.face_value, entry.count)
            for label, entry in self._entries.items()
        }

    @property
    def note_count(self) -> int:
        """Get the number of credited notes."""
        return sum(entry.count for entry in self._entries.values())

    def credit(self, denomination: Denomination) -> LedgerEntry:
        """
        Record one accepted note.

        Args:
            denomination: Resolved denomination; Unknown is recorded with value 0.

        Returns:
            The updated entry.
        """
        entry = self._entries.get(denomination.label)
        if entry is None:
            entry = LedgerEntry(label=denomination.label, face_value=denomination.face_value)
            self._entries[denomination.label] = entry

        entry.count += 1
        self._total_value += entry.face_value

        if not denomination.is_known:
            logger.warning(f"Credited note of unknown denomination, count={entry.count}")
        else:
            logger.info(
                f"Ledger: {entry.label} added, count={entry.count}, "
                f"total={self._total_value / 100:.2f}"
            )
        return entry

    def recompute_total(self) -> int:
        """Recompute the total from the entries."""
        return sum(entry.value for entry in self._entries.values())

    def snapshot(self) -> LedgerSnapshot:
        """Get an immutable copy of the ledger."""
        return LedgerSnapshot(
            total_value=self._total_value,
            entries=tuple(
                (entry.label, entry.count, entry.face_value)
                for entry in self._entries.values()
            ),
        )

    def __repr__(self) -> str:
        return f"TransactionLedger(total={self._total_value}, notes={self.note_count})"
