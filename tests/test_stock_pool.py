from decimal import Decimal

import pytest

from stockledger.errors import InsufficientStock, UnknownItem
from stockledger.stock_pool import StockPool

from tests.conftest import product

MILKFISH = ("product", 1)


def test_from_catalog_clamps_negative_quantities():
    pool = StockPool.from_catalog([product(1, "Milkfish", "10"), product(2, "Lumpia", "-3")])
    assert pool.available_for(MILKFISH) == Decimal("10")
    assert pool.available_for(("product", 2)) == Decimal("0")


def test_reserve_and_release_return_new_pools():
    pool = StockPool.from_catalog([product(1, "Milkfish", "10")])
    reserved = pool.reserve(MILKFISH, Decimal("4"))
    assert reserved.available_for(MILKFISH) == Decimal("6")
    assert pool.available_for(MILKFISH) == Decimal("10")
    assert reserved.release(MILKFISH, Decimal("4")).available_for(MILKFISH) == Decimal("10")


def test_reserve_beyond_available_is_all_or_nothing():
    pool = StockPool.from_catalog([product(1, "Milkfish", "3")])
    with pytest.raises(InsufficientStock) as exc_info:
        pool.reserve(MILKFISH, Decimal("5"))
    assert exc_info.value.ceiling == Decimal("3")
    assert pool.available_for(MILKFISH) == Decimal("3")


def test_shift_reports_ceiling_including_what_is_in_use():
    pool = StockPool.from_catalog([product(1, "Milkfish", "10")]).reserve(MILKFISH, Decimal("4"))
    with pytest.raises(InsufficientStock) as exc_info:
        pool.shift(MILKFISH, Decimal("4"), Decimal("11"))
    assert exc_info.value.ceiling == Decimal("10")
    assert pool.shift(MILKFISH, Decimal("4"), Decimal("2")).available_for(MILKFISH) == Decimal("8")


def test_unknown_item():
    pool = StockPool.from_catalog([])
    assert MILKFISH not in pool
    with pytest.raises(UnknownItem):
        pool.available_for(MILKFISH)
