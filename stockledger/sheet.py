"""Delivery, cook and usage sheets: delta quantities bounded below by what was already saved."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Callable, Iterable, Mapping

from stockledger.constant import (
    BACKSPACE_KEY,
    CLEAR_KEY,
    DECIMAL_KEY,
    DIGIT_KEYS,
    MAX_DECIMAL_PLACES,
    MSG_BELOW_FLOOR,
    MSG_INVALID_QUANTITY,
    MSG_OVER_CEILING,
)
from stockledger.errors import InvalidQuantityInput, UnknownItem
from stockledger.models import BaselineRow, BatchLine, FocusState, ItemKey, LedgerRecord, Notice
from stockledger.quantity import ONE, ZERO, decimal_places, format_quantity, parse_quantity, to_quantity

# Delivered and cooked amounts add to stock; used amounts subtract from it.
DIRECTION_BY_MODE: dict[str, int] = {
    "delivery": 1,
    "cook": 1,
    "usage": -1,
}


@dataclass(frozen=True)
class SheetState:
    """All records of one sheet plus the focused delta box."""

    mode: str
    records: Mapping[ItemKey, LedgerRecord] = field(default_factory=dict)
    focus: FocusState | None = None

    @classmethod
    def from_baseline(cls, mode: str, rows: Iterable[BaselineRow]) -> SheetState:
        direction = DIRECTION_BY_MODE[mode]
        records: dict[ItemKey, LedgerRecord] = {}
        for row in rows:
            original = max(ZERO, to_quantity(row.original_delta_quantity))
            records[row.key] = LedgerRecord(
                key=row.key,
                name=row.name,
                beginning_quantity=to_quantity(row.beginning_quantity),
                delta_quantity=original,
                original_delta_quantity=original,
                direction=direction,
            )
        return cls(mode=mode, records=records)

    def record(self, key: ItemKey) -> LedgerRecord:
        try:
            return self.records[key]
        except KeyError:
            raise UnknownItem(key) from None

    def ceiling(self, key: ItemKey) -> Decimal | None:
        """Usage can never exceed what the day began with; deliveries are unbounded."""
        if self.mode == "usage":
            return self.record(key).beginning_quantity
        return None

    def dirty_records(self) -> list[LedgerRecord]:
        return [record for record in self.records.values() if record.is_dirty]

    def display_delta(self, key: ItemKey) -> str:
        if self.focus is not None and self.focus.key == key:
            return self.focus.buffer
        return format_quantity(self.record(key).delta_quantity)


@dataclass(frozen=True)
class SheetTransition:
    state: SheetState
    notice: Notice | None = None


@dataclass(frozen=True)
class AdjustDelta:
    key: ItemKey
    step: Decimal = ONE


@dataclass(frozen=True)
class SetDelta:
    key: ItemKey
    text: str


@dataclass(frozen=True)
class FocusDelta:
    key: ItemKey


@dataclass(frozen=True)
class TypeDeltaText:
    text: str


@dataclass(frozen=True)
class PressDeltaKey:
    key: str


@dataclass(frozen=True)
class BlurDelta:
    pass


def _warn(state: SheetState, message: str) -> SheetTransition:
    return SheetTransition(state, Notice("warning", message))


def _allows_decimal(key: ItemKey) -> bool:
    return key[0] == "inventory"


def _sync_focus(state: SheetState, key: ItemKey) -> SheetState:
    focus = state.focus
    if focus is None or focus.key != key:
        return state
    return replace(state, focus=replace(focus, buffer=format_quantity(state.record(key).delta_quantity)))


def _with_delta(state: SheetState, key: ItemKey, value: Decimal) -> SheetState:
    records = dict(state.records)
    records[key] = replace(records[key], delta_quantity=value)
    return _sync_focus(replace(state, records=records), key)


def _bounds_notice(state: SheetState, key: ItemKey, value: Decimal) -> Notice | None:
    record = state.record(key)
    if value < record.floor:
        return Notice("warning", MSG_BELOW_FLOOR.format(floor=format_quantity(record.floor)))
    ceiling = state.ceiling(key)
    if ceiling is not None and value > ceiling:
        return Notice(
            "warning",
            MSG_OVER_CEILING.format(requested=format_quantity(value), ceiling=format_quantity(ceiling)),
        )
    return None


def adjust_delta(state: SheetState, key: ItemKey, step: object = ONE) -> SheetTransition:
    record = state.record(key)
    target = record.delta_quantity + to_quantity(step)
    notice = _bounds_notice(state, key, target)
    if notice is not None:
        return SheetTransition(state, notice)
    return SheetTransition(_with_delta(state, key, target))


def set_delta(state: SheetState, key: ItemKey, text: str) -> SheetTransition:
    """Commit a typed delta. Empty input reverts to the saved floor."""
    record = state.record(key)
    try:
        value = parse_quantity(text, allow_decimal=_allows_decimal(key))
    except InvalidQuantityInput:
        return _warn(_sync_focus(state, key), MSG_INVALID_QUANTITY.format(text=text))
    if value is None:
        return SheetTransition(_with_delta(state, key, record.floor))
    notice = _bounds_notice(state, key, value)
    if notice is not None:
        return SheetTransition(_sync_focus(state, key), notice)
    return SheetTransition(_with_delta(state, key, value))


def blur_delta(state: SheetState) -> SheetTransition:
    focus = state.focus
    if focus is None:
        return SheetTransition(state)
    return set_delta(replace(state, focus=None), focus.key, focus.buffer)


def focus_delta(state: SheetState, key: ItemKey) -> SheetTransition:
    """Focus a delta box, first completing any edit pending in another one."""
    record = state.record(key)
    if state.focus is not None and state.focus.key == key:
        return SheetTransition(state)
    notice = None
    if state.focus is not None:
        completed = blur_delta(state)
        state, notice = completed.state, completed.notice
        record = state.record(key)
    # An untouched box opens empty so the operator types over it.
    if record.delta_quantity in (ZERO, record.original_delta_quantity):
        buffer = ""
    else:
        buffer = format_quantity(record.delta_quantity)
    return SheetTransition(replace(state, focus=FocusState(key=key, mode="quantity", buffer=buffer)), notice)


def type_delta_text(state: SheetState, text: str) -> SheetTransition:
    """Stage free text; a valid in-bounds value applies at once, anything else waits for blur."""
    focus = state.focus
    if focus is None:
        return SheetTransition(state)
    staged = replace(state, focus=replace(focus, buffer=text))
    try:
        value = parse_quantity(text, allow_decimal=_allows_decimal(focus.key))
    except InvalidQuantityInput:
        return SheetTransition(staged)
    if value is None:
        return SheetTransition(staged)
    notice = _bounds_notice(staged, focus.key, value)
    if notice is not None:
        return SheetTransition(staged, notice)
    records = dict(staged.records)
    records[focus.key] = replace(records[focus.key], delta_quantity=value)
    return SheetTransition(replace(staged, records=records))


def press_delta_key(state: SheetState, key: str) -> SheetTransition:
    focus = state.focus
    if focus is None:
        return SheetTransition(state)
    record_key = focus.key
    buffer = focus.buffer
    if key == BACKSPACE_KEY:
        candidate = buffer[:-1]
    elif key == CLEAR_KEY:
        candidate = ""
    elif key == DECIMAL_KEY:
        if not _allows_decimal(record_key) or "." in buffer:
            return SheetTransition(state)
        candidate = (buffer or "0") + "."
    elif key in DIGIT_KEYS:
        candidate = buffer + key
        if decimal_places(candidate) > MAX_DECIMAL_PLACES:
            return _warn(state, MSG_INVALID_QUANTITY.format(text=candidate))
        try:
            value = parse_quantity(candidate, allow_decimal=_allows_decimal(record_key))
        except InvalidQuantityInput:
            return _warn(state, MSG_INVALID_QUANTITY.format(text=candidate))
        ceiling = state.ceiling(record_key)
        if value is not None and ceiling is not None and value > ceiling:
            return _warn(
                state,
                MSG_OVER_CEILING.format(requested=format_quantity(value), ceiling=format_quantity(ceiling)),
            )
    else:
        return SheetTransition(state)

    staged = replace(state, focus=replace(focus, buffer=candidate))
    try:
        value = parse_quantity(candidate, allow_decimal=_allows_decimal(record_key))
    except InvalidQuantityInput:
        return SheetTransition(staged)
    # Values under the floor stay staged; blur decides whether to revert them.
    if value is None or value < staged.record(record_key).floor:
        return SheetTransition(staged)
    records = dict(staged.records)
    records[record_key] = replace(records[record_key], delta_quantity=value)
    return SheetTransition(replace(staged, records=records))


def mark_committed(state: SheetState, lines: Iterable[BatchLine]) -> SheetState:
    """Advance each saved record's floor to the delta that was just saved."""
    records = dict(state.records)
    for line in lines:
        record = records.get(line.key)
        if record is None:
            continue
        saved = line.delta_quantity
        records[line.key] = replace(
            record,
            delta_quantity=max(record.delta_quantity, saved),
            original_delta_quantity=saved,
        )
    return replace(state, records=records)


def absorb(state: SheetState, lines: Iterable[BatchLine], names: Mapping[ItemKey, str] | None = None) -> SheetState:
    """Add committed cook-queue amounts to the cooked tally and lock them in as the floor."""
    records = dict(state.records)
    direction = DIRECTION_BY_MODE[state.mode]
    for line in lines:
        record = records.get(line.key)
        if record is None:
            name = (names or {}).get(line.key, f"{line.kind} #{line.item_id}")
            record = LedgerRecord(
                key=line.key,
                name=name,
                beginning_quantity=ZERO,
                delta_quantity=ZERO,
                original_delta_quantity=ZERO,
                direction=direction,
            )
        total = record.delta_quantity + line.delta_quantity
        records[line.key] = replace(record, delta_quantity=total, original_delta_quantity=total)
    return replace(state, records=records)


_HANDLERS: dict[type, Callable[[SheetState, object], SheetTransition]] = {
    AdjustDelta: lambda state, event: adjust_delta(state, event.key, event.step),
    SetDelta: lambda state, event: set_delta(state, event.key, event.text),
    FocusDelta: lambda state, event: focus_delta(state, event.key),
    TypeDeltaText: lambda state, event: type_delta_text(state, event.text),
    PressDeltaKey: lambda state, event: press_delta_key(state, event.key),
    BlurDelta: lambda state, event: blur_delta(state),
}


def reduce(state: SheetState, event: object) -> SheetTransition:
    """Apply one UI event to the sheet."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"unsupported sheet event {event!r}")
    return handler(state, event)
