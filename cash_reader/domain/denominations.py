"""
Denomination catalog for the NV200 note validator.

Maps hardware channel numbers to note values. Channel N is the N-th
entry of the catalog; anything outside the catalog resolves to the
Unknown denomination instead of raising.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from configs import CURRENCY_DENOMINATIONS, DEFAULT_COUNTRY_CODE
from core.value_objects import Denomination, UNKNOWN_DENOMINATION


class DenominationCatalog:
    """
    Immutable, channel-ordered list of denominations.

    Attributes:
        country_code: ISO currency code the catalog belongs to.
    """

    def __init__(
        self,
        denominations: Iterable[Denomination],
        country_code: str = DEFAULT_COUNTRY_CODE,
    ) -> None:
        ordered = tuple(sorted(denominations, key=lambda d: d.channel))
        for index, denomination in enumerate(ordered, start=1):
            if denomination.channel != index:
                raise ValueError(
                    f"Channels must be contiguous from 1, got {denomination.channel} at position {index}"
                )
            if denomination.face_value <= 0:
                raise ValueError(f"Face value must be positive: {denomination}")
        self._denominations = ordered
        self.country_code = country_code

    @classmethod
    def from_values(
        cls,
        values: Iterable[tuple[int, str]],
        country_code: str = DEFAULT_COUNTRY_CODE,
    ) -> DenominationCatalog:
        """
        Build a catalog from (face_value, label) pairs in channel order.

        Args:
            values: Pairs ordered by channel, channel 1 first.
            country_code: ISO currency code.

        Returns:
            New catalog.
        """
        return cls(
            (
                Denomination(channel=channel, face_value=value, label=label)
                for channel, (value, label) in enumerate(values, start=1)
            ),
            country_code=country_code,
        )

    @classmethod
    def for_country(cls, country_code: str = DEFAULT_COUNTRY_CODE) -> DenominationCatalog:
        """
        Get the built-in catalog for a currency.

        Raises:
            ValueError: No catalog is configured for the currency.
        """
        try:
            values = CURRENCY_DENOMINATIONS[country_code]
        except KeyError:
            raise ValueError(f"No denominations configured for {country_code}") from None
        return cls.from_values(values, country_code=country_code)

    def resolve(self, channel: Optional[int]) -> Denomination:
        """
        Resolve a channel to its denomination.

        Never raises; out-of-range or missing channels give UNKNOWN_DENOMINATION.
        """
        if channel is None or not 1 <= channel <= len(self._denominations):
            return UNKNOWN_DENOMINATION
        return self._denominations[channel - 1]

    def by_value(self, face_value: int) -> Optional[Denomination]:
        """Find a denomination by its face value."""
        for denomination in self._denominations:
            if denomination.face_value == face_value:
                return denomination
        return None

    @property
    def labels(self) -> list[str]:
        return [d.label for d in self._denominations]

    def __iter__(self) -> Iterator[Denomination]:
        return iter(self._denominations)

    def __len__(self) -> int:
        return len(self._denominations)

    def __repr__(self) -> str:
        return f"DenominationCatalog({self.country_code}, {self.labels})"
