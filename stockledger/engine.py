"""Cart reconciliation: order carts and cook queues kept in step with the stock pool.

Every operation is a pure function ``(state, ...) -> Transition``. A
transition carries the next state plus an optional notice for the user; a
rejected edit returns the previous state unchanged together with a warning,
so cart quantities and pool availability can never disagree.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import ROUND_FLOOR, Decimal
from typing import Callable, Iterable, Mapping

from stockledger.constant import (
    BACKSPACE_KEY,
    CLEAR_KEY,
    DECIMAL_KEY,
    DIGIT_KEYS,
    DOUBLE_ZERO_KEY,
    MAX_DECIMAL_PLACES,
    MSG_INVALID_QUANTITY,
    MSG_NO_MORE_STOCK,
    MSG_NO_STOCK,
    MSG_OVER_CEILING,
)
from stockledger.errors import InsufficientStock, InvalidQuantityInput, UnknownItem
from stockledger.models import BatchLine, CartEntry, CatalogItem, CatalogSnapshot, FocusState, ItemKey, Notice
from stockledger.quantity import ONE, ZERO, decimal_places, format_quantity, parse_quantity, to_quantity
from stockledger.stock_pool import StockPool


@dataclass(frozen=True)
class CartState:
    """Cart entries, the pool they reserve from, and the focused input.

    Carts of one session hold the same pool; whichever cart mutates last
    hands its pool on to the others.
    """

    owner: str
    catalog: Mapping[ItemKey, CatalogItem]
    pool: StockPool
    entries: Mapping[ItemKey, CartEntry] = field(default_factory=dict)
    focus: FocusState | None = None
    payment_buffer: str = ""

    @classmethod
    def from_snapshot(cls, owner: str, items: Iterable[CatalogItem]) -> CartState:
        rows = list(items)
        return cls(
            owner=owner,
            catalog={item.key: item for item in rows},
            pool=StockPool.from_catalog(rows),
        )

    def quantity_of(self, key: ItemKey) -> Decimal:
        entry = self.entries.get(key)
        return entry.quantity if entry is not None else ZERO

    def ceiling(self, key: ItemKey) -> Decimal:
        return self.pool.ceiling(key, self.quantity_of(key))

    @property
    def subtotal(self) -> Decimal:
        return sum((entry.line_total for entry in self.entries.values()), ZERO)

    def display_quantity(self, key: ItemKey) -> str:
        """Text shown in the quantity box: the staged buffer while it is focused."""
        if self.focus is not None and self.focus.mode == "quantity" and self.focus.key == key:
            return self.focus.buffer
        return format_quantity(self.quantity_of(key))


@dataclass(frozen=True)
class Transition:
    state: CartState
    notice: Notice | None = None


@dataclass(frozen=True)
class AddItem:
    key: ItemKey


@dataclass(frozen=True)
class AdjustQuantity:
    key: ItemKey
    delta: Decimal = ONE


@dataclass(frozen=True)
class SetQuantity:
    key: ItemKey
    text: str


@dataclass(frozen=True)
class FocusQuantity:
    key: ItemKey


@dataclass(frozen=True)
class FocusCash:
    pass


@dataclass(frozen=True)
class TypeText:
    text: str


@dataclass(frozen=True)
class PressKey:
    key: str


@dataclass(frozen=True)
class Blur:
    pass


@dataclass(frozen=True)
class RemoveEntry:
    key: ItemKey


def _warn(state: CartState, message: str) -> Transition:
    return Transition(state, Notice("warning", message))


def _require_item(state: CartState, key: ItemKey) -> CatalogItem:
    item = state.catalog.get(key)
    if item is None:
        raise UnknownItem(key)
    return item


def _over_ceiling(state: CartState, key: ItemKey, requested: Decimal) -> Transition:
    return _warn(
        state,
        MSG_OVER_CEILING.format(
            requested=format_quantity(requested),
            ceiling=format_quantity(state.ceiling(key)),
        ),
    )


def _sync_focus(state: CartState, key: ItemKey) -> CartState:
    """Keep a focused quantity box showing the committed quantity of its entry."""
    focus = state.focus
    if focus is None or focus.mode != "quantity" or focus.key != key:
        return state
    if key not in state.entries:
        return replace(state, focus=None)
    return replace(state, focus=replace(focus, buffer=format_quantity(state.quantity_of(key))))


def _with_quantity(state: CartState, key: ItemKey, target: Decimal) -> CartState:
    """Move pool and entry together. A target of zero removes the entry."""
    pool = state.pool.shift(key, state.quantity_of(key), target)
    entries = dict(state.entries)
    if target <= ZERO:
        entries.pop(key, None)
    elif key in entries:
        entries[key] = replace(entries[key], quantity=target)
    else:
        item = state.catalog[key]
        entries[key] = CartEntry(key=key, name=item.name, unit_price=item.unit_price, quantity=target)
    return replace(state, pool=pool, entries=entries)


def add_item(state: CartState, key: ItemKey) -> Transition:
    _require_item(state, key)
    if state.pool.available_for(key) <= ZERO:
        return _warn(state, MSG_NO_STOCK)
    return Transition(_sync_focus(_with_quantity(state, key, state.quantity_of(key) + ONE), key))


def remove_entry(state: CartState, key: ItemKey) -> Transition:
    """Drop an entry and release exactly the quantity it had reserved."""
    entry = state.entries.get(key)
    if entry is None:
        return Transition(state)
    entries = {k: v for k, v in state.entries.items() if k != key}
    focus = state.focus
    if focus is not None and focus.mode == "quantity" and focus.key == key:
        focus = None
    return Transition(replace(state, pool=state.pool.release(key, entry.quantity), entries=entries, focus=focus))


def adjust_quantity(state: CartState, key: ItemKey, delta: object = ONE) -> Transition:
    _require_item(state, key)
    step = to_quantity(delta)
    current = state.quantity_of(key)
    if current == ZERO:
        if step > ZERO:
            return add_item(state, key)
        return Transition(state)

    target = current + step
    if step < ZERO and target < ONE:
        return remove_entry(state, key)
    if step > ZERO and state.pool.available_for(key) <= ZERO:
        return _warn(state, MSG_NO_MORE_STOCK)
    try:
        updated = _with_quantity(state, key, target)
    except InsufficientStock:
        return _over_ceiling(state, key, target)
    return Transition(_sync_focus(updated, key))


def set_quantity(state: CartState, key: ItemKey, text: str) -> Transition:
    """Commit a typed absolute quantity, as when a quantity box loses focus."""
    item = _require_item(state, key)
    try:
        requested = parse_quantity(text, allow_decimal=item.allows_decimal)
    except InvalidQuantityInput:
        return _warn(_sync_focus(state, key), MSG_INVALID_QUANTITY.format(text=text))

    if requested is None or requested < ONE:
        return remove_entry(state, key)
    if requested == state.quantity_of(key):
        return Transition(_sync_focus(state, key))
    if requested > state.ceiling(key):
        return _over_ceiling(_sync_focus(state, key), key, requested)
    return Transition(_sync_focus(_with_quantity(state, key, requested), key))


def blur(state: CartState) -> Transition:
    """Complete whatever edit is pending and leave the terminal unfocused."""
    focus = state.focus
    if focus is None:
        return Transition(state)
    unfocused = replace(state, focus=None)
    if focus.mode == "cash":
        try:
            amount = parse_quantity(focus.buffer)
        except InvalidQuantityInput:
            return _warn(replace(unfocused, payment_buffer=""), MSG_INVALID_QUANTITY.format(text=focus.buffer))
        return Transition(replace(unfocused, payment_buffer="" if amount is None else focus.buffer.strip()))
    if focus.key not in state.entries:
        return Transition(unfocused)
    return set_quantity(unfocused, focus.key, focus.buffer)


def _switch_focus(state: CartState, target: FocusState) -> Transition:
    notice = None
    if state.focus is not None and state.focus != target:
        completed = blur(state)
        state, notice = completed.state, completed.notice
    return Transition(replace(state, focus=target), notice)


def focus_quantity(state: CartState, key: ItemKey) -> Transition:
    current = state.focus
    if current is not None and current.mode == "quantity" and current.key == key:
        return Transition(state)
    notice = None
    if current is not None:
        completed = blur(state)
        state, notice = completed.state, completed.notice
    if key not in state.entries:
        return Transition(state, notice)
    focus = FocusState(key=key, mode="quantity", buffer=format_quantity(state.quantity_of(key)))
    return Transition(replace(state, focus=focus), notice)


def focus_cash(state: CartState) -> Transition:
    if state.focus is not None and state.focus.mode == "cash":
        return Transition(state)
    return _switch_focus(state, FocusState(key=None, mode="cash", buffer=state.payment_buffer))


def type_text(state: CartState, text: str) -> Transition:
    """Stage raw text in the focused box; nothing is validated until blur."""
    focus = state.focus
    if focus is None:
        return Transition(state)
    updated = replace(state, focus=replace(focus, buffer=text))
    if focus.mode == "cash":
        updated = replace(updated, payment_buffer=text)
    return Transition(updated)


def _apply_buffer(state: CartState, key: ItemKey, buffer: str) -> CartState:
    staged = replace(state, focus=replace(state.focus, buffer=buffer))
    value = parse_quantity(buffer, allow_decimal=state.catalog[key].allows_decimal)
    if value is None or value < ONE or value == state.quantity_of(key):
        return staged
    return _with_quantity(staged, key, value)


def _press_cash_key(state: CartState, key: str) -> Transition:
    buffer = state.focus.buffer
    if key == BACKSPACE_KEY:
        candidate = buffer[:-1]
    elif key == CLEAR_KEY:
        candidate = ""
    elif key == DECIMAL_KEY:
        if "." in buffer:
            return Transition(state)
        candidate = (buffer or "0") + "."
    elif key in DIGIT_KEYS or key == DOUBLE_ZERO_KEY:
        candidate = buffer + key
        if decimal_places(candidate) > MAX_DECIMAL_PLACES:
            return _warn(state, MSG_INVALID_QUANTITY.format(text=candidate))
    else:
        return Transition(state)
    return Transition(replace(state, focus=replace(state.focus, buffer=candidate), payment_buffer=candidate))


def press_key(state: CartState, key: str) -> Transition:
    """Feed one on-screen keypad key to the focused input.

    Digits are checked against the ceiling before they reach the buffer, so a
    rejected digit leaves the buffer exactly as it was.
    """
    focus = state.focus
    if focus is None:
        return Transition(state)
    if focus.mode == "cash":
        return _press_cash_key(state, key)

    entry_key = focus.key
    item = state.catalog[entry_key]
    buffer = focus.buffer
    if key == BACKSPACE_KEY:
        candidate = buffer[:-1]
    elif key == CLEAR_KEY:
        candidate = ""
    elif key == DECIMAL_KEY:
        if not item.allows_decimal or "." in buffer:
            return Transition(state)
        candidate = (buffer or "0") + "."
    elif key in DIGIT_KEYS:
        candidate = buffer + key
        if decimal_places(candidate) > MAX_DECIMAL_PLACES:
            return _warn(state, MSG_INVALID_QUANTITY.format(text=candidate))
        try:
            value = parse_quantity(candidate, allow_decimal=item.allows_decimal)
        except InvalidQuantityInput:
            return _warn(state, MSG_INVALID_QUANTITY.format(text=candidate))
        if value is not None and value > state.ceiling(entry_key):
            return _over_ceiling(state, entry_key, value)
    else:
        return Transition(state)

    try:
        return Transition(_apply_buffer(state, entry_key, candidate))
    except InvalidQuantityInput:
        return Transition(replace(state, focus=replace(focus, buffer=candidate)))


def clear_cart(state: CartState) -> Transition:
    """Cancel the cart, returning every reservation to the pool."""
    pool = state.pool
    for key, entry in state.entries.items():
        pool = pool.release(key, entry.quantity)
    return Transition(replace(state, pool=pool, entries={}, focus=None, payment_buffer=""))


def clear_after_checkout(state: CartState, committed: Iterable[BatchLine | CartEntry] = ()) -> Transition:
    """Close the cart after a successful commit.

    Committed quantities stay consumed. Anything reserved beyond them while the
    request was in flight goes back to the pool.
    """
    consumed: dict[ItemKey, Decimal] = {}
    for line in committed:
        amount = line.delta_quantity if isinstance(line, BatchLine) else line.quantity
        consumed[line.key] = consumed.get(line.key, ZERO) + amount
    pool = state.pool
    for key, entry in state.entries.items():
        extra = entry.quantity - consumed.get(key, ZERO)
        if extra > ZERO:
            pool = pool.release(key, extra)
    return Transition(replace(state, pool=pool, entries={}, focus=None, payment_buffer=""))


def rebase(state: CartState, snapshot: CatalogSnapshot, pool: StockPool | None = None) -> Transition:
    """Re-reserve the current cart against a fresh snapshot.

    `pool` is what other carts left of the snapshot; by default the cart gets
    the whole snapshot. Entries the stock cannot fully cover shrink to what is
    left or are dropped; the notice names them.
    """
    catalog = {item.key: item for item in snapshot.items}
    if pool is None:
        pool = StockPool.from_catalog(snapshot.items)
    entries: dict[ItemKey, CartEntry] = {}
    adjusted: list[str] = []
    for key, entry in state.entries.items():
        if key not in catalog:
            adjusted.append(entry.name)
            continue
        keep = min(entry.quantity, pool.available_for(key))
        if not catalog[key].allows_decimal:
            keep = keep.to_integral_value(rounding=ROUND_FLOOR)
        if keep < ONE:
            adjusted.append(entry.name)
            continue
        pool = pool.reserve(key, keep)
        item = catalog[key]
        entries[key] = replace(entry, name=item.name, unit_price=item.unit_price, quantity=keep)
        if keep < entry.quantity:
            adjusted.append(entry.name)

    rebuilt = CartState(owner=state.owner, catalog=catalog, pool=pool, entries=entries, payment_buffer=state.payment_buffer)
    if adjusted:
        return Transition(rebuilt, Notice("warning", "Stock changed for: " + ", ".join(adjusted)))
    return Transition(rebuilt)


_HANDLERS: dict[type, Callable[[CartState, object], Transition]] = {
    AddItem: lambda state, event: add_item(state, event.key),
    AdjustQuantity: lambda state, event: adjust_quantity(state, event.key, event.delta),
    SetQuantity: lambda state, event: set_quantity(state, event.key, event.text),
    FocusQuantity: lambda state, event: focus_quantity(state, event.key),
    FocusCash: lambda state, event: focus_cash(state),
    TypeText: lambda state, event: type_text(state, event.text),
    PressKey: lambda state, event: press_key(state, event.key),
    Blur: lambda state, event: blur(state),
    RemoveEntry: lambda state, event: remove_entry(state, event.key),
}


def reduce(state: CartState, event: object) -> Transition:
    """Apply one UI event to the cart."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"unsupported cart event {event!r}")
    return handler(state, event)
