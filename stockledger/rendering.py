"""Rendering helpers for catalog rows, carts, sheets and notices."""

from __future__ import annotations

from rich.text import Text

from stockledger.catalog_view import CatalogRow, stock_status
from stockledger.engine import CartState
from stockledger.models import LedgerRecord, Notice
from stockledger.quantity import format_money, format_quantity
from stockledger.sheet import SheetState


def badge_style(kind: str) -> str:
    """Return a consistent badge style for kind tags."""
    if kind == "inventory":
        return "bold #ffffff on #2f6db5"
    return "bold #0b1f0f on #5fbf72"


def status_style(status: str) -> str:
    if status == "Out of Stock":
        return "bold #ff6b6b"
    if status in ("Low Stock", "Backorder"):
        return "#ffcc66"
    return "#9be39b"


def notice_style(notice: Notice) -> str:
    if notice.level == "error":
        return "bold #ffffff on #b23a48"
    if notice.level == "warning":
        return "bold #1a1a1a on #ffcc66"
    if notice.level == "success":
        return "bold #0b1f0f on #5fbf72"
    return "#dddddd"


def format_kind_badge(kind: str) -> Text:
    text = Text()
    text.append("P" if kind == "product" else "I", style=badge_style(kind))
    return text


def format_catalog_row(row: CatalogRow, show_price: bool = True) -> Text:
    """Render a catalog line with its kind tag, availability and stock status."""
    text = format_kind_badge(row.kind)
    text.append(f" #{row.item_id} {row.name}")
    if show_price:
        text.append(f"  {format_money(row.unit_price)}", style="dim")
    status = stock_status(row.quantity)
    text.append(f"  {format_quantity(row.quantity)} left ")
    text.append(f"[{status}]", style=status_style(status))
    return text


def format_sheet_row(row: CatalogRow, sheet: SheetState) -> Text:
    """Render beginning, delta box and ending for one sheet record."""
    record = sheet.record(row.key)
    focused = sheet.focus is not None and sheet.focus.key == row.key
    text = format_kind_badge(row.kind)
    text.append(f" #{row.item_id} {row.name}  ")
    text.append(f"beg {format_quantity(record.beginning_quantity)}  ")
    delta_text = sheet.display_delta(row.key)
    if focused:
        text.append(f"[{delta_text}_]", style="reverse")
    else:
        text.append(f"[{delta_text}]", style="bold" if record.is_dirty else "")
    text.append(f"  end {format_quantity(record.ending_quantity)}")
    if record.is_dirty:
        text.append(" *", style="#ffcc66")
    return text


def format_cart_line(cart: CartState, index: int) -> Text:
    entry = list(cart.entries.values())[index]
    focused = cart.focus is not None and cart.focus.mode == "quantity" and cart.focus.key == entry.key
    text = Text(f"{entry.name} x ")
    quantity_text = cart.display_quantity(entry.key)
    if focused:
        text.append(f"[{quantity_text}_]", style="reverse")
    else:
        text.append(quantity_text, style="bold")
    text.append(f"  {format_money(entry.line_total)}", style="dim")
    return text


def format_cart_totals(cart: CartState) -> Text:
    count = sum(entry.quantity for entry in cart.entries.values())
    text = Text()
    text.append(f"Items: {format_quantity(count)}  ")
    text.append(f"Subtotal: {format_money(cart.subtotal)}", style="bold")
    return text


def format_dirty_record(record: LedgerRecord) -> Text:
    text = format_kind_badge(record.key[0])
    text.append(
        f" {record.name}: {format_quantity(record.original_delta_quantity)} -> "
        f"{format_quantity(record.delta_quantity)} (end {format_quantity(record.ending_quantity)})"
    )
    return text


def format_notice(notice: Notice | None) -> Text:
    if notice is None:
        return Text("")
    return Text(f" {notice.message} ", style=notice_style(notice))
