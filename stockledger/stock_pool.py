"""Available stock per catalog item for one terminal session."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from stockledger.errors import InsufficientStock, UnknownItem
from stockledger.models import CatalogItem, ItemKey
from stockledger.quantity import ZERO, to_quantity


@dataclass(frozen=True)
class StockPool:
    """Immutable mapping of (kind, id) to available quantity.

    The pool is seeded once from a catalog snapshot; afterwards it only moves
    through reserve and release, each of which returns a new pool.
    """

    available: Mapping[ItemKey, Decimal] = field(default_factory=dict)

    @classmethod
    def from_catalog(cls, items: Iterable[CatalogItem]) -> StockPool:
        seeded: dict[ItemKey, Decimal] = {}
        for item in items:
            seeded[item.key] = max(ZERO, to_quantity(item.quantity))
        return cls(available=seeded)

    def __contains__(self, key: object) -> bool:
        return key in self.available

    def available_for(self, key: ItemKey) -> Decimal:
        try:
            return self.available[key]
        except KeyError:
            raise UnknownItem(key) from None

    def ceiling(self, key: ItemKey, in_use: Decimal) -> Decimal:
        """Most a holder already using `in_use` units may hold in total."""
        return in_use + self.available_for(key)

    def reserve(self, key: ItemKey, amount: Decimal) -> StockPool:
        if amount < 0:
            raise ValueError("reserve amount must be non-negative")
        current = self.available_for(key)
        if current < amount:
            raise InsufficientStock(key, amount, current)
        return self._with(key, current - amount)

    def release(self, key: ItemKey, amount: Decimal) -> StockPool:
        if amount < 0:
            raise ValueError("release amount must be non-negative")
        return self._with(key, self.available_for(key) + amount)

    def shift(self, key: ItemKey, in_use: Decimal, target: Decimal) -> StockPool:
        """Move a holder from `in_use` to `target` units, reserving or releasing the difference."""
        if target > in_use:
            try:
                return self.reserve(key, target - in_use)
            except InsufficientStock:
                raise InsufficientStock(key, target, self.ceiling(key, in_use)) from None
        if target < in_use:
            return self.release(key, in_use - target)
        return self

    def _with(self, key: ItemKey, value: Decimal) -> StockPool:
        updated = dict(self.available)
        updated[key] = value
        return StockPool(available=updated)
