"""Domain models for the stock ledger."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from stockledger.constant import KINDS

Kind = Literal["product", "inventory"]
ItemKey = tuple[str, int]
SheetMode = Literal["delivery", "cook", "usage"]
FocusMode = Literal["quantity", "cash"]
NoticeLevel = Literal["info", "success", "warning", "error"]


def item_key(kind: str, item_id: int) -> ItemKey:
    """Build the (kind, id) key used by every arena in the ledger."""
    if kind not in KINDS:
        raise ValueError(f"unknown kind {kind!r}")
    return (kind, int(item_id))


@dataclass(frozen=True)
class CatalogItem:
    """A catalog row as reported by the system of record at fetch time."""

    kind: str
    item_id: int
    name: str
    unit_price: Decimal
    quantity: Decimal
    image_ref: str | None = None
    category_id: int | None = None
    category_name: str | None = None

    @property
    def key(self) -> ItemKey:
        return item_key(self.kind, self.item_id)

    @property
    def allows_decimal(self) -> bool:
        return self.kind == "inventory"


@dataclass(frozen=True)
class CatalogSnapshot:
    """Catalog rows plus the stock version they were read at."""

    items: tuple[CatalogItem, ...]
    version: str | None = None


@dataclass(frozen=True)
class CartEntry:
    """One selected catalog item held by an order cart or cook queue."""

    key: ItemKey
    name: str
    unit_price: Decimal
    quantity: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class LedgerRecord:
    """Beginning, delta and ending quantities for one delivery/cook/usage row."""

    key: ItemKey
    name: str
    beginning_quantity: Decimal
    delta_quantity: Decimal
    original_delta_quantity: Decimal
    direction: int = 1

    @property
    def ending_quantity(self) -> Decimal:
        return self.beginning_quantity + self.direction * self.delta_quantity

    @property
    def floor(self) -> Decimal:
        return self.original_delta_quantity

    @property
    def is_dirty(self) -> bool:
        return self.delta_quantity != self.original_delta_quantity and self.delta_quantity > 0


@dataclass(frozen=True)
class BaselineRow:
    """Previously committed quantities for one record, read at session start."""

    kind: str
    item_id: int
    name: str
    beginning_quantity: Decimal
    original_delta_quantity: Decimal

    @property
    def key(self) -> ItemKey:
        return item_key(self.kind, self.item_id)


@dataclass(frozen=True)
class FocusState:
    """The single input currently being edited and its staged text."""

    key: ItemKey | None
    mode: str = "quantity"
    buffer: str = ""


@dataclass(frozen=True)
class Notice:
    """A user-facing message produced by a transition or commit."""

    level: str
    message: str

    @property
    def persistent(self) -> bool:
        return self.level == "error"


@dataclass(frozen=True)
class BatchLine:
    """One serialized item of a commit batch."""

    kind: str
    item_id: int
    beginning_quantity: Decimal
    delta_quantity: Decimal
    ending_quantity: Decimal

    @property
    def key(self) -> ItemKey:
        return item_key(self.kind, self.item_id)

    def to_payload(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "id": self.item_id,
            "beginning_qty": str(self.beginning_quantity),
            "delta_qty": str(self.delta_quantity),
            "ending_qty": str(self.ending_quantity),
        }


@dataclass(frozen=True)
class CommitResult:
    """Outcome reported by the system of record for one commit request."""

    success: bool
    message: str = ""
    order_id: str | None = None
    version: str | None = None
