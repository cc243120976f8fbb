from datetime import date
from decimal import Decimal

import pytest

from stockledger.debuglog import DebugLog
from stockledger.models import BaselineRow, CatalogItem

TODAY = date(2026, 10, 17)


def product(item_id, name, quantity, price="50"):
    return CatalogItem(
        kind="product",
        item_id=item_id,
        name=name,
        unit_price=Decimal(price),
        quantity=Decimal(quantity),
    )


def inventory(item_id, name, quantity, price="10"):
    return CatalogItem(
        kind="inventory",
        item_id=item_id,
        name=name,
        unit_price=Decimal(price),
        quantity=Decimal(quantity),
    )


def baseline(kind, item_id, name, beginning, original):
    return BaselineRow(
        kind=kind,
        item_id=item_id,
        name=name,
        beginning_quantity=Decimal(beginning),
        original_delta_quantity=Decimal(original),
    )


@pytest.fixture
def catalog_items():
    return [
        product(1, "Milkfish", "10"),
        product(2, "Lumpia", "40", price="35"),
        product(3, "Iced Tea", "0", price="25"),
        inventory(1, "Rice (kg)", "25.5", price="52"),
    ]


@pytest.fixture
def debug_log(tmp_path):
    return DebugLog(tmp_path / "debug.log")
