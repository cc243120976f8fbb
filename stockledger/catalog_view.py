"""Search, filter and sort over catalog and sheet rows."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from stockledger.config import LOW_STOCK_THRESHOLD
from stockledger.constant import BACKORDER_LABEL, FILTER_OPTIONS, OUT_OF_STOCK_LABEL, SORT_FIELDS, STOCK_STATUS_LEVELS
from stockledger.engine import CartState
from stockledger.models import ItemKey
from stockledger.quantity import ZERO
from stockledger.sheet import SheetState


@dataclass(frozen=True)
class CatalogRow:
    """One listed line. ``quantity`` is what is left to take right now."""

    key: ItemKey
    name: str
    quantity: Decimal
    beginning: Decimal
    delta: Decimal
    ending: Decimal
    unit_price: Decimal = ZERO
    category_name: str | None = None

    @property
    def kind(self) -> str:
        return self.key[0]

    @property
    def item_id(self) -> int:
        return self.key[1]


def rows_for_cart(cart: CartState, category: str | None = None) -> list[CatalogRow]:
    """Rows for a cart, limited to one category name when `category` is given."""
    rows = []
    for key, item in cart.catalog.items():
        if category and item.category_name != category:
            continue
        available = cart.pool.available_for(key) if key in cart.pool else ZERO
        rows.append(
            CatalogRow(
                key=key,
                name=item.name,
                quantity=available,
                beginning=item.quantity,
                delta=cart.quantity_of(key),
                ending=available,
                unit_price=item.unit_price,
                category_name=item.category_name,
            )
        )
    return rows


def rows_for_sheet(sheet: SheetState) -> list[CatalogRow]:
    return [
        CatalogRow(
            key=key,
            name=record.name,
            quantity=record.ending_quantity,
            beginning=record.beginning_quantity,
            delta=record.delta_quantity,
            ending=record.ending_quantity,
        )
        for key, record in sheet.records.items()
    ]


def stock_status(quantity: Decimal) -> str:
    if quantity == ZERO:
        return OUT_OF_STOCK_LABEL
    for minimum, label in STOCK_STATUS_LEVELS:
        if quantity >= minimum:
            return label
    return BACKORDER_LABEL


def matches_filter(row: CatalogRow, filter_name: str, threshold: int = LOW_STOCK_THRESHOLD) -> bool:
    if filter_name == "all":
        return True
    if filter_name == "products":
        return row.kind == "product"
    if filter_name == "inventory":
        return row.kind == "inventory"
    if filter_name == "available":
        return row.quantity > ZERO
    if filter_name == "lowstock":
        return ZERO < row.quantity < threshold
    if filter_name == "outofstock":
        return row.quantity <= ZERO
    raise ValueError(f"unknown filter {filter_name!r}")


def matches_search(row: CatalogRow, query: str) -> bool:
    """Every whitespace-separated token must appear in the name or equal the id."""
    name = row.name.lower()
    for token in query.lower().split():
        if token not in name and token != str(row.item_id):
            return False
    return True


def _sort_value(row: CatalogRow, field: str) -> object:
    if field == "id":
        return row.item_id
    if field == "name":
        return row.name.lower()
    if field == "quantity":
        return row.quantity
    if field == "beginning":
        return row.beginning
    if field == "delta":
        return row.delta
    if field == "ending":
        return row.ending
    raise ValueError(f"unknown sort field {field!r}")


def sort_rows(rows: Iterable[CatalogRow], field: str = "id", descending: bool = False) -> list[CatalogRow]:
    """Sort rows by one field. Non-id sorts keep products ahead of inventory."""
    ordered = sorted(rows, key=lambda row: _sort_value(row, field), reverse=descending)
    if field == "id":
        return ordered
    # Stable sort keeps the field order inside each kind.
    return sorted(ordered, key=lambda row: row.kind != "product")


def view_rows(
    rows: Iterable[CatalogRow],
    query: str = "",
    filter_name: str = "all",
    sort_field: str = "id",
    descending: bool = False,
) -> list[CatalogRow]:
    visible = [row for row in rows if matches_filter(row, filter_name) and matches_search(row, query)]
    return sort_rows(visible, sort_field, descending)


def next_option(options: dict[str, str], current: str) -> str:
    """Cycle through an options table in declaration order."""
    names = list(options)
    return names[(names.index(current) + 1) % len(names)]


def next_filter(current: str) -> str:
    return next_option(FILTER_OPTIONS, current)


def next_sort_field(current: str) -> str:
    return next_option(SORT_FIELDS, current)
