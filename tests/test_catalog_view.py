from dataclasses import replace
from decimal import Decimal

import pytest

from stockledger import engine
from stockledger.catalog_view import (
    CatalogRow,
    next_filter,
    next_sort_field,
    rows_for_cart,
    rows_for_sheet,
    sort_rows,
    stock_status,
    view_rows,
)
from stockledger.engine import AddItem, CartState
from stockledger.sheet import SheetState

from tests.conftest import baseline


def row(kind, item_id, name, quantity):
    value = Decimal(quantity)
    return CatalogRow(key=(kind, item_id), name=name, quantity=value, beginning=value, delta=Decimal("0"), ending=value)


ROWS = [
    row("product", 1, "Grilled Milkfish", "10"),
    row("inventory", 2, "Rice (kg)", "3"),
    row("product", 3, "Fried Tilapia", "0"),
    row("product", 4, "Grilled Pork Belly", "45"),
    row("inventory", 1, "Charcoal (kg)", "12"),
]


@pytest.mark.parametrize(
    "quantity,label",
    [("45", "High Stock"), ("30", "High Stock"), ("12", "In Stock"), ("5", "Low Stock"), ("0", "Out of Stock"), ("3", "Backorder")],
)
def test_stock_status(quantity, label):
    assert stock_status(Decimal(quantity)) == label


def test_search_requires_every_token():
    names = [r.name for r in view_rows(ROWS, query="grilled pork")]
    assert names == ["Grilled Pork Belly"]
    assert [r.name for r in view_rows(ROWS, query="GRILLED")] == ["Grilled Milkfish", "Grilled Pork Belly"]


def test_filters():
    assert {r.name for r in view_rows(ROWS, filter_name="inventory")} == {"Rice (kg)", "Charcoal (kg)"}
    assert [r.name for r in view_rows(ROWS, filter_name="outofstock")] == ["Fried Tilapia"]
    assert [r.name for r in view_rows(ROWS, filter_name="lowstock")] == ["Rice (kg)"]
    assert len(view_rows(ROWS, filter_name="available")) == 4
    with pytest.raises(ValueError):
        view_rows(ROWS, filter_name="expired")


def test_name_sort_keeps_products_first():
    names = [r.name for r in sort_rows(ROWS, "name")]
    assert names == ["Fried Tilapia", "Grilled Milkfish", "Grilled Pork Belly", "Charcoal (kg)", "Rice (kg)"]


def test_quantity_sort_descending():
    quantities = [r.quantity for r in sort_rows(ROWS, "quantity", descending=True)]
    assert quantities == [Decimal("45"), Decimal("10"), Decimal("0"), Decimal("12"), Decimal("3")]


def test_rows_for_cart_show_remaining_stock(catalog_items):
    cart = engine.reduce(CartState.from_snapshot("pos", catalog_items), AddItem(("product", 1))).state
    by_key = {r.key: r for r in rows_for_cart(cart)}
    assert by_key[("product", 1)].quantity == Decimal("9")
    assert by_key[("product", 1)].delta == Decimal("1")


def test_rows_for_sheet_show_ending():
    state = SheetState.from_baseline("usage", [baseline("inventory", 1, "Rice (kg)", "10", "4")])
    (only,) = rows_for_sheet(state)
    assert only.ending == Decimal("6")
    assert only.quantity == Decimal("6")


def test_option_cycling_wraps():
    assert next_filter("all") == "products"
    assert next_filter("outofstock") == "all"
    assert next_sort_field("ending") == "id"


def test_rows_for_cart_limited_to_one_category(catalog_items):
    grilled = {("product", 1), ("product", 2)}
    items = [replace(item, category_name="Grilled" if item.key in grilled else "Drinks") for item in catalog_items]
    cart = CartState.from_snapshot("cook", items)
    assert {r.key for r in rows_for_cart(cart, "Grilled")} == grilled
    assert len(rows_for_cart(cart)) == len(items)
