from decimal import Decimal

import pytest

from stockledger import engine
from stockledger.engine import (
    AddItem,
    AdjustQuantity,
    CartState,
    FocusQuantity,
    PressKey,
    RemoveEntry,
    SetQuantity,
    TypeText,
)
from stockledger.models import BatchLine, CatalogSnapshot
from stockledger.quantity import ZERO
from stockledger.stock_pool import StockPool

from tests.conftest import inventory, product

MILKFISH = ("product", 1)
LUMPIA = ("product", 2)
ICED_TEA = ("product", 3)
RICE = ("inventory", 1)


@pytest.fixture
def cart(catalog_items):
    return CartState.from_snapshot("pos", catalog_items)


def run(state, *events):
    notices = []
    for event in events:
        transition = engine.reduce(state, event)
        state = transition.state
        if transition.notice is not None:
            notices.append(transition.notice)
    return state, notices


def assert_conserved(state):
    for key, item in state.catalog.items():
        assert state.pool.available_for(key) + state.quantity_of(key) == max(ZERO, item.quantity)
        assert state.pool.available_for(key) >= ZERO


def test_add_item_reserves_one_unit(cart):
    state, notices = run(cart, AddItem(MILKFISH))
    assert notices == []
    assert state.entries[MILKFISH].quantity == Decimal("1")
    assert state.pool.available_for(MILKFISH) == Decimal("9")
    assert_conserved(state)


def test_add_item_without_stock_warns(cart):
    state, notices = run(cart, AddItem(ICED_TEA))
    assert state is cart
    assert notices[0].level == "warning"
    assert notices[0].message == "No stock available for this item."


def test_keypad_digit_that_would_exceed_stock_is_rejected(cart):
    state, _ = run(cart, AddItem(MILKFISH), FocusQuantity(MILKFISH))
    state, notices = run(state, PressKey("0"))
    assert notices == []
    assert state.entries[MILKFISH].quantity == Decimal("10")
    assert state.pool.available_for(MILKFISH) == ZERO

    rejected = engine.reduce(state, PressKey("0"))
    assert rejected.state is state
    assert rejected.notice.message == "Cannot set quantity to 100. Only 10 available in stock."
    assert rejected.state.focus.buffer == "10"
    assert_conserved(rejected.state)


@pytest.mark.parametrize("digit", list("123456789"))
def test_keypad_rejects_every_digit_past_the_ceiling(cart, digit):
    state, _ = run(cart, AddItem(MILKFISH), FocusQuantity(MILKFISH))
    transition = engine.reduce(state, PressKey(digit))
    assert transition.state is state
    assert transition.notice.level == "warning"
    assert transition.state.focus.buffer == "1"


def test_adjust_up_stops_at_available_stock(cart):
    state, _ = run(cart, AddItem(MILKFISH), SetQuantity(MILKFISH, "10"))
    state, notices = run(state, AdjustQuantity(MILKFISH, Decimal("1")))
    assert state.entries[MILKFISH].quantity == Decimal("10")
    assert notices[0].message == "No more stock available for this item."


def test_adjust_down_to_zero_removes_entry(cart):
    state, _ = run(cart, AddItem(LUMPIA), AdjustQuantity(LUMPIA, Decimal("-1")))
    assert LUMPIA not in state.entries
    assert state.pool.available_for(LUMPIA) == Decimal("40")


def test_adjust_on_absent_entry_adds_it(cart):
    state, _ = run(cart, AdjustQuantity(LUMPIA, Decimal("1")))
    assert state.entries[LUMPIA].quantity == Decimal("1")


def test_set_quantity_over_ceiling_leaves_cart_unchanged(cart):
    state, _ = run(cart, AddItem(MILKFISH), SetQuantity(MILKFISH, "4"))
    transition = engine.reduce(state, SetQuantity(MILKFISH, "11"))
    assert transition.state.entries[MILKFISH].quantity == Decimal("4")
    assert transition.state.pool == state.pool
    assert "Only 10 available" in transition.notice.message


def test_set_quantity_same_value_is_a_no_op(cart):
    state, _ = run(cart, AddItem(MILKFISH), SetQuantity(MILKFISH, "4"))
    again, notices = run(state, SetQuantity(MILKFISH, "4"))
    assert notices == []
    assert again.entries == state.entries
    assert again.pool == state.pool


def test_set_quantity_empty_or_zero_removes(cart):
    state, _ = run(cart, AddItem(MILKFISH), SetQuantity(MILKFISH, "0"))
    assert MILKFISH not in state.entries
    state, _ = run(state, AddItem(MILKFISH), SetQuantity(MILKFISH, ""))
    assert MILKFISH not in state.entries
    assert_conserved(state)


def test_set_quantity_rejects_fraction_for_products(cart):
    state, _ = run(cart, AddItem(MILKFISH))
    transition = engine.reduce(state, SetQuantity(MILKFISH, "2.5"))
    assert transition.state.entries[MILKFISH].quantity == Decimal("1")
    assert transition.notice.level == "warning"


def test_inventory_accepts_decimal_keypad_entry(cart):
    state, _ = run(cart, AddItem(RICE), FocusQuantity(RICE), PressKey("."), PressKey("5"))
    assert state.entries[RICE].quantity == Decimal("1.5")
    assert state.pool.available_for(RICE) == Decimal("24.0")


def test_decimal_key_is_ignored_for_products(cart):
    state, _ = run(cart, AddItem(MILKFISH), FocusQuantity(MILKFISH))
    assert engine.reduce(state, PressKey(".")).state is state


def test_focus_switch_completes_pending_text(cart):
    state, _ = run(
        cart,
        AddItem(MILKFISH),
        AddItem(LUMPIA),
        FocusQuantity(MILKFISH),
        TypeText("3"),
    )
    # Typed text is only staged until the box loses focus.
    assert state.entries[MILKFISH].quantity == Decimal("1")
    state, _ = run(state, FocusQuantity(LUMPIA))
    assert state.entries[MILKFISH].quantity == Decimal("3")
    assert state.focus.key == LUMPIA
    assert_conserved(state)


def test_blur_with_invalid_text_warns_and_keeps_quantity(cart):
    state, _ = run(cart, AddItem(MILKFISH), FocusQuantity(MILKFISH), TypeText("abc"))
    state, notices = run(state, engine.Blur())
    assert state.entries[MILKFISH].quantity == Decimal("1")
    assert state.focus is None
    assert notices[0].message == "Invalid quantity: 'abc'"


def test_remove_entry_releases_reservation(cart):
    state, _ = run(cart, AddItem(LUMPIA), SetQuantity(LUMPIA, "7"), FocusQuantity(LUMPIA), RemoveEntry(LUMPIA))
    assert state.entries == {}
    assert state.focus is None
    assert state.pool.available_for(LUMPIA) == Decimal("40")


def test_cash_keypad_double_zero_and_two_decimals(cart):
    state, _ = run(cart, engine.FocusCash(), PressKey("1"), PressKey("00"), PressKey("."), PressKey("5"), PressKey("0"))
    assert state.payment_buffer == "100.50"
    transition = engine.reduce(state, PressKey("1"))
    assert transition.state is state
    assert transition.notice.level == "warning"


def test_conservation_over_mixed_sequence(cart):
    state, _ = run(
        cart,
        AddItem(MILKFISH),
        AdjustQuantity(MILKFISH, Decimal("3")),
        AddItem(LUMPIA),
        SetQuantity(LUMPIA, "12"),
        FocusQuantity(MILKFISH),
        PressKey("backspace"),
        PressKey("6"),
        SetQuantity(MILKFISH, "99"),
        AdjustQuantity(LUMPIA, Decimal("-5")),
        AddItem(RICE),
    )
    assert state.entries[MILKFISH].quantity == Decimal("6")
    assert state.entries[LUMPIA].quantity == Decimal("7")
    assert_conserved(state)


def test_clear_after_checkout_releases_only_uncommitted_extra(cart):
    state, _ = run(cart, AddItem(MILKFISH), SetQuantity(MILKFISH, "3"))
    committed = [BatchLine("product", 1, ZERO, Decimal("2"), Decimal("2"))]
    closed = engine.clear_after_checkout(state, committed).state
    assert closed.entries == {}
    assert closed.pool.available_for(MILKFISH) == Decimal("8")


def test_clear_cart_returns_everything(cart):
    state, _ = run(cart, AddItem(MILKFISH), AddItem(LUMPIA))
    cleared = engine.clear_cart(state).state
    assert cleared.entries == {}
    assert cleared.pool == cart.pool


def test_rebase_shrinks_entries_to_new_stock(cart):
    state, _ = run(cart, AddItem(MILKFISH), SetQuantity(MILKFISH, "5"), AddItem(LUMPIA))
    snapshot = CatalogSnapshot(
        items=(product(1, "Milkfish", "3"), product(2, "Lumpia", "40"), inventory(1, "Rice (kg)", "25.5")),
        version="2",
    )
    transition = engine.rebase(state, snapshot)
    assert transition.state.entries[MILKFISH].quantity == Decimal("3")
    assert transition.state.pool.available_for(MILKFISH) == ZERO
    assert transition.state.entries[LUMPIA].quantity == Decimal("1")
    assert transition.notice.message == "Stock changed for: Milkfish"


def test_unknown_event_is_a_type_error(cart):
    with pytest.raises(TypeError):
        engine.reduce(cart, object())


def test_milkfish_walkthrough(cart):
    state, notices = run(cart, AddItem(MILKFISH), *[AdjustQuantity(MILKFISH, Decimal("1"))] * 3)
    assert notices == []
    assert state.entries[MILKFISH].quantity == Decimal("4")
    assert state.pool.available_for(MILKFISH) == Decimal("6")

    rejected = engine.reduce(state, SetQuantity(MILKFISH, "12"))
    assert rejected.notice.message == "Cannot set quantity to 12. Only 10 available in stock."
    assert rejected.state.entries[MILKFISH].quantity == Decimal("4")
    assert rejected.state.pool.available_for(MILKFISH) == Decimal("6")

    state, notices = run(rejected.state, SetQuantity(MILKFISH, "0"))
    assert notices == []
    assert MILKFISH not in state.entries
    assert state.pool.available_for(MILKFISH) == Decimal("10")
    assert_conserved(state)


def test_rebase_reserves_from_what_other_carts_left(cart):
    state, _ = run(cart, AddItem(MILKFISH), SetQuantity(MILKFISH, "5"))
    snapshot = CatalogSnapshot(items=(product(1, "Milkfish", "6"),), version="3")
    left = StockPool.from_catalog(snapshot.items).reserve(MILKFISH, Decimal("4"))

    transition = engine.rebase(state, snapshot, left)
    assert transition.state.entries[MILKFISH].quantity == Decimal("2")
    assert transition.state.pool.available_for(MILKFISH) == ZERO
    assert transition.notice.message == "Stock changed for: Milkfish"
