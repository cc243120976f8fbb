"""Main Textual app class."""

from __future__ import annotations

from decimal import Decimal
from functools import partial
from typing import Awaitable

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.events import Key
from textual.reactive import reactive
from textual.widgets import Header, Static

from stockledger import engine, sheet
from stockledger.catalog_view import CatalogRow, next_filter, next_sort_field, rows_for_cart, rows_for_sheet, view_rows
from stockledger.config import COOK_CATEGORY, DASHBOARD_POLL_SECONDS, SUCCESS_DISMISS_SECONDS, WARNING_DISMISS_SECONDS
from stockledger.confirm_modal import ConfirmModal
from stockledger.constant import (
    BACKSPACE_KEY,
    CLEAR_KEY,
    DECIMAL_KEY,
    DIGIT_KEYS,
    FILTER_OPTIONS,
    MSG_COMMIT_IN_FLIGHT,
    MSG_NOTHING_TO_SAVE,
    SHEET_BY_STATION,
    SORT_FIELDS,
    STATIONS,
)
from stockledger.errors import CommitFailure
from stockledger.models import ItemKey, Notice
from stockledger.payment_modal import PaymentModal
from stockledger.quantity import ONE
from stockledger.rendering import (
    format_cart_line,
    format_cart_totals,
    format_catalog_row,
    format_dirty_record,
    format_notice,
    format_sheet_row,
)
from stockledger.session import TerminalSession

_MODALS = (PaymentModal, ConfirmModal)


class StockLedgerApp(App):
    """A Textual terminal for order carts, the cook queue and stock sheets."""

    TITLE = "Stock Ledger"
    SUB_TITLE = "POS / Cook / Delivery / Usage"

    CSS = """
    Screen {
        layout: vertical;
    }

    #main-layout {
        height: 1fr;
    }

    #catalog-pane {
        width: 3fr;
        border: round $primary;
        padding: 1;
    }

    #ticket-pane {
        width: 2fr;
        border: round $secondary;
        padding: 1;
    }

    #search-bar {
        border: heavy $secondary;
        padding: 0 1;
        margin-bottom: 1;
        height: 3;
    }

    #catalog-list {
        height: 1fr;
        border: tall $surface;
        padding: 0 1;
    }

    #ticket-list {
        height: 1fr;
        border: tall $surface;
        padding: 0 1;
    }

    #ticket-totals {
        height: 1;
    }

    #notice-bar {
        height: 1;
    }

    #dashboard-bar {
        height: 1;
        color: $text-muted;
    }

    .pane-title {
        text-style: bold;
        margin-bottom: 1;
    }
    """

    station = reactive("pos")
    input_state = reactive("normal")
    edit_style = reactive("keypad")
    search_text = reactive("")
    filter_name = reactive("all")
    sort_field = reactive("id")
    descending = reactive(False)
    selected_index = reactive(0)
    entry_index = reactive(0)
    active_pane = reactive("catalog")

    BINDINGS = [
        ("f1", "switch_station('pos')", "POS"),
        ("f2", "switch_station('cook')", "Cook"),
        ("f3", "switch_station('delivery')", "Delivery"),
        ("f4", "switch_station('usage')", "Usage"),
        Binding("ctrl+s", "commit", "Save", priority=True),
        ("ctrl+r", "reload", "Reload stock"),
        ("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, session: TerminalSession) -> None:
        super().__init__()
        self.session = session
        self.log_file = session.log
        self.notice: Notice | None = None
        self._notice_token = 0
        self.log_file.write("app_init")

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-layout"):
            with Vertical(id="catalog-pane"):
                yield Static(id="search-bar")
                yield Static(id="catalog-list")
            with Vertical(id="ticket-pane"):
                yield Static("Cart", id="ticket-title", classes="pane-title")
                yield Static("(no items yet)", id="ticket-list")
                yield Static(id="ticket-totals")
        yield Static(id="notice-bar")
        yield Static(id="dashboard-bar")

    def on_mount(self) -> None:
        self._refresh_all()
        self.run_worker(self._load_session(), group="load", exclusive=True)
        self.set_interval(DASHBOARD_POLL_SECONDS, self._poll_dashboard)

    async def on_unmount(self) -> None:
        await self.session.aclose()

    async def _load_session(self) -> None:
        try:
            await self.session.load()
        except CommitFailure as exc:
            self.log_file.write(f"load_failed error={exc.message!r}")
            self._show_notice(Notice("error", f"Could not load catalog: {exc.message}"))
            return
        self._refresh_all()
        await self._refresh_dashboard()

    def _poll_dashboard(self) -> None:
        self.run_worker(self._refresh_dashboard(), group="dashboard", exclusive=True)

    async def _refresh_dashboard(self) -> None:
        await self.session.refresh_dashboard()
        self._refresh_dashboard_bar()

    # Station helpers

    @property
    def is_cart_station(self) -> bool:
        return self.station in self.session.carts

    def _sheet_mode(self) -> str:
        return SHEET_BY_STATION[self.station]

    def _current_rows(self) -> list[CatalogRow]:
        if self.is_cart_station:
            category = COOK_CATEGORY if self.station == "cook" else None
            rows = rows_for_cart(self.session.carts[self.station], category)
        else:
            rows = rows_for_sheet(self.session.sheets[self._sheet_mode()])
        return view_rows(rows, self.search_text, self.filter_name, self.sort_field, self.descending)

    def _entry_keys(self) -> list[ItemKey]:
        if not self.is_cart_station:
            return []
        return list(self.session.carts[self.station].entries)

    def _selected_row(self) -> CatalogRow | None:
        rows = self._current_rows()
        if not rows:
            return None
        if self.selected_index >= len(rows):
            self.selected_index = len(rows) - 1
        return rows[self.selected_index]

    def _target_key(self) -> ItemKey | None:
        if self.is_cart_station and self.active_pane == "ticket":
            keys = self._entry_keys()
            if not keys:
                return None
            return keys[min(self.entry_index, len(keys) - 1)]
        row = self._selected_row()
        return row.key if row is not None else None

    def _has_focus(self) -> bool:
        if self.is_cart_station:
            return self.session.carts[self.station].focus is not None
        return self.session.sheets[self._sheet_mode()].focus is not None

    def _dispatch(self, event: object) -> None:
        notice = self.session.apply(self.station, event)
        if notice is not None:
            self._show_notice(notice)
        if self.input_state == "edit" and not self._has_focus():
            self.input_state = "normal"
        self._refresh_all()

    # Keys

    def on_key(self, event: Key) -> None:
        if isinstance(self.screen, _MODALS):
            return

        self.log_file.write(
            f"on_key key={event.key!r} char={event.character!r} state={self.input_state!r} station={self.station!r}"
        )

        if self.input_state == "edit":
            self._handle_edit_key(event)
            event.stop()
            return

        if self.input_state == "search":
            if self._handle_search_key(event):
                event.stop()
            return

        if self._handle_normal_key(event):
            event.stop()

    def _handle_search_key(self, event: Key) -> bool:
        if event.key in {"escape", "ctrl+c"}:
            self.input_state = "normal"
            self.search_text = ""
        elif event.key == "enter":
            self.input_state = "normal"
        elif event.key == "backspace":
            self.search_text = self.search_text[:-1]
        elif event.key in {"down", "tab"}:
            self._move_selection(1)
            return True
        elif event.key == "up":
            self._move_selection(-1)
            return True
        elif event.is_printable and event.character:
            self.search_text += event.character
        else:
            return False
        self.selected_index = 0
        self._refresh_all()
        return True

    def _handle_normal_key(self, event: Key) -> bool:
        key = event.key
        char = event.character or ""

        if key == "down" or char == "j":
            self._move_selection(1)
        elif key == "up" or char == "k":
            self._move_selection(-1)
        elif key == "tab":
            if self.is_cart_station:
                self.active_pane = "ticket" if self.active_pane == "catalog" else "catalog"
                self._refresh_all()
        elif key == "enter":
            self._activate_selected()
        elif key == "escape":
            self._dismiss_notice()
        elif key == "delete" or char == "x":
            target = self._target_key()
            if self.is_cart_station and target is not None:
                self._dispatch(engine.RemoveEntry(target))
        elif char == "/":
            self.input_state = "search"
            self._refresh_all()
        elif char in {"+", "="}:
            self._adjust_target(ONE)
        elif char == "-":
            self._adjust_target(-ONE)
        elif char == "e":
            self._begin_edit()
        elif char == "f":
            self.filter_name = next_filter(self.filter_name)
            self.selected_index = 0
            self._refresh_all()
        elif char == "o":
            self.sort_field = next_sort_field(self.sort_field)
            self._refresh_all()
        elif char == "r":
            self.descending = not self.descending
            self._refresh_all()
        elif char == "c":
            if self.is_cart_station:
                self.session.clear_cart(self.station)
                self._refresh_all()
        else:
            return False
        return True

    def _handle_edit_key(self, event: Key) -> None:
        key = event.key
        char = event.character or ""
        cart_station = self.is_cart_station

        if key in {"enter", "escape"}:
            self._dispatch(engine.Blur() if cart_station else sheet.BlurDelta())
            self.input_state = "normal"
            self.log_file.write(f"edit_end station={self.station!r}")
            self._refresh_all()
            return

        if key == "tab":
            self._focus_next()
            return

        if key == "ctrl+t":
            self.edit_style = "text" if self.edit_style == "keypad" else "keypad"
            self._refresh_all()
            return

        if char in {"+", "-"}:
            self._adjust_target(ONE if char == "+" else -ONE)
            return

        if self.edit_style == "text":
            buffer = self._focus_buffer()
            if key == "backspace":
                text = buffer[:-1]
            elif event.is_printable and char:
                text = buffer + char
            else:
                return
            self._dispatch(engine.TypeText(text) if cart_station else sheet.TypeDeltaText(text))
            return

        if key == "backspace":
            pad_key = BACKSPACE_KEY
        elif key == "delete":
            pad_key = CLEAR_KEY
        elif char == DECIMAL_KEY or char in DIGIT_KEYS:
            pad_key = char
        else:
            return
        self._dispatch(engine.PressKey(pad_key) if cart_station else sheet.PressDeltaKey(pad_key))

    def _focus_buffer(self) -> str:
        if self.is_cart_station:
            focus = self.session.carts[self.station].focus
        else:
            focus = self.session.sheets[self._sheet_mode()].focus
        return focus.buffer if focus is not None else ""

    def _move_selection(self, delta: int) -> None:
        if self.is_cart_station and self.active_pane == "ticket":
            keys = self._entry_keys()
            if keys:
                self.entry_index = (self.entry_index + delta) % len(keys)
        else:
            rows = self._current_rows()
            if rows:
                self.selected_index = (self.selected_index + delta) % len(rows)
        self._refresh_all()

    def _activate_selected(self) -> None:
        if self.is_cart_station and self.active_pane == "ticket":
            self._begin_edit()
            return
        row = self._selected_row()
        if row is None:
            return
        if self.is_cart_station:
            self._dispatch(engine.AddItem(row.key))
        else:
            self._begin_edit()

    def _adjust_target(self, step: Decimal) -> None:
        target = self._target_key()
        if target is None:
            return
        if self.is_cart_station:
            self._dispatch(engine.AdjustQuantity(target, step))
        else:
            self._dispatch(sheet.AdjustDelta(target, step))

    def _begin_edit(self) -> None:
        if self.is_cart_station:
            self.active_pane = "ticket"
            target = self._target_key()
            if target is None:
                return
            self._dispatch(engine.FocusQuantity(target))
        else:
            target = self._target_key()
            if target is None:
                return
            self._dispatch(sheet.FocusDelta(target))
        if not self._has_focus():
            return
        self.input_state = "edit"
        self.log_file.write(f"edit_begin station={self.station!r} key={target!r}")
        self._refresh_all()

    def _focus_next(self) -> None:
        """Move focus to the next line; the pending edit completes first."""
        if self.is_cart_station:
            keys = self._entry_keys()
            if not keys:
                return
            self.entry_index = (self.entry_index + 1) % len(keys)
            self._dispatch(engine.FocusQuantity(keys[self.entry_index]))
        else:
            rows = self._current_rows()
            if not rows:
                return
            self.selected_index = (self.selected_index + 1) % len(rows)
            self._dispatch(sheet.FocusDelta(rows[self.selected_index].key))
        self._refresh_all()

    # Actions

    def action_switch_station(self, station: str) -> None:
        if isinstance(self.screen, _MODALS):
            return
        if station == self.station:
            return
        if self.input_state == "edit":
            self._dispatch(engine.Blur() if self.is_cart_station else sheet.BlurDelta())
        self.input_state = "normal"
        self.station = station
        self.search_text = ""
        self.selected_index = 0
        self.entry_index = 0
        self.active_pane = "catalog"
        self.log_file.write(f"station station={station!r}")
        self._refresh_all()

    def action_commit(self) -> None:
        self.log_file.write(f"commit_enter station={self.station!r} screen={type(self.screen).__name__}")
        if isinstance(self.screen, _MODALS):
            return
        if self.session.busy:
            self._show_notice(Notice("warning", MSG_COMMIT_IN_FLIGHT))
            return
        if self.input_state == "edit":
            self._dispatch(engine.Blur() if self.is_cart_station else sheet.BlurDelta())
            self.input_state = "normal"

        if self.station == "pos":
            if not self.session.carts["pos"].entries:
                self._show_notice(Notice("info", MSG_NOTHING_TO_SAVE))
                return
            self.push_screen(PaymentModal(self.session), self._on_payment_chosen)
            return

        if self.station == "cook":
            queue = self.session.carts["cook"]
            lines = [format_cart_line(queue, idx) for idx in range(len(queue.entries))]
            save = self.session.commit_cook
            title = "Save cooked items"
        else:
            mode = self._sheet_mode()
            lines = [format_dirty_record(record) for record in self.session.sheets[mode].dirty_records()]
            save = partial(self.session.commit_sheet, mode)
            title = f"Save {STATIONS[self.station]}"

        if not lines:
            self._show_notice(Notice("info", MSG_NOTHING_TO_SAVE))
            return
        self.push_screen(ConfirmModal(title, lines), partial(self._on_confirmed, save))

    def action_reload(self) -> None:
        if isinstance(self.screen, _MODALS) or self.session.busy:
            return
        self.run_worker(self._reload_catalog(), group="load", exclusive=True)

    async def _reload_catalog(self) -> None:
        try:
            adjusted = await self.session.reload_catalog()
        except CommitFailure as exc:
            self._show_notice(Notice("error", exc.message))
            return
        self._show_notice(adjusted or Notice("info", "Stock reloaded"))
        self._refresh_all()

    def _on_payment_chosen(self, method: str | None) -> None:
        if method is None:
            self._refresh_all()
            return
        self.run_worker(self._run_commit(self.session.checkout(method)), group="commit")

    def _on_confirmed(self, save, confirmed: bool | None) -> None:
        if not confirmed:
            return
        self.run_worker(self._run_commit(save()), group="commit")

    async def _run_commit(self, pending: Awaitable[Notice]) -> None:
        notice = await pending
        self._show_notice(notice)
        self._refresh_all()
        if notice.level == "success":
            await self._refresh_dashboard()

    # Notices

    def _show_notice(self, notice: Notice) -> None:
        self.notice = notice
        self._notice_token += 1
        self._refresh_notice()
        if notice.persistent:
            return
        delay = SUCCESS_DISMISS_SECONDS if notice.level == "success" else WARNING_DISMISS_SECONDS
        self.set_timer(delay, partial(self._expire_notice, self._notice_token))

    def _expire_notice(self, token: int) -> None:
        if token != self._notice_token:
            return
        self._dismiss_notice()

    def _dismiss_notice(self) -> None:
        self.notice = None
        self._refresh_notice()

    # Rendering

    def _visible_rows(self, widget: Static) -> int:
        height = widget.size.height
        if height <= 0:
            return 8
        return max(1, height)

    def _window_bounds(self, total: int, rows: int, selected: int | None) -> tuple[int, int]:
        if total <= 0:
            return (0, 0)

        rows = max(1, rows)
        if total <= rows:
            return (0, total)

        start = 0
        if selected is not None:
            start = min(max(0, selected - rows // 2), total - rows)
        return (start, start + rows)

    def _render_window(self, widget: Static, lines: list[Text], selected: int | None) -> None:
        start, end = self._window_bounds(len(lines), self._visible_rows(widget), selected)
        body = Text()
        if start > 0:
            body.append("⋮\n", style="dim")
        for idx in range(start, end):
            if idx > start:
                body.append("\n")
            body.append("➤ " if idx == selected else "  ")
            body.append_text(lines[idx])
        if end < len(lines):
            body.append("\n⋮", style="dim")
        widget.update(body)

    def _refresh_all(self) -> None:
        try:
            self._refresh_search_bar()
            self._refresh_catalog()
            self._refresh_ticket()
            self._refresh_notice()
            self._refresh_dashboard_bar()
        except NoMatches:
            return

    def _refresh_search_bar(self) -> None:
        bar = self.query_one("#search-bar", Static)
        text = Text()
        text.append(f" {STATIONS[self.station]} ", style="bold reverse")
        text.append(
            f" filter={FILTER_OPTIONS[self.filter_name]} sort={SORT_FIELDS[self.sort_field]}"
            f"{' desc' if self.descending else ''}"
        )
        if self.input_state == "search":
            text.append(f"\n/{self.search_text}_")
        elif self.input_state == "edit":
            text.append(f"\nEditing ({self.edit_style}). Enter/Esc done, Tab next, Ctrl+T keypad/text.")
        else:
            shown = f" [{self.search_text}]" if self.search_text else ""
            text.append(f"\nF1-F4 station, / search{shown}, Enter add/edit, +/- adjust, f/o/r view, Ctrl+S save, Ctrl+R reload.")
        bar.update(text)

    def _refresh_catalog(self) -> None:
        widget = self.query_one("#catalog-list", Static)
        if not self.session.loaded:
            widget.update("Loading...")
            return
        rows = self._current_rows()
        if not rows:
            widget.update("No results")
            return
        if self.selected_index >= len(rows):
            self.selected_index = 0
        if self.is_cart_station:
            lines = [format_catalog_row(row) for row in rows]
        else:
            current = self.session.sheets[self._sheet_mode()]
            lines = [format_sheet_row(row, current) for row in rows]
        selected = self.selected_index if self.active_pane == "catalog" or not self.is_cart_station else None
        self._render_window(widget, lines, selected)

    def _refresh_ticket(self) -> None:
        title = self.query_one("#ticket-title", Static)
        widget = self.query_one("#ticket-list", Static)
        totals = self.query_one("#ticket-totals", Static)

        if self.is_cart_station:
            cart = self.session.carts[self.station]
            title.update("Order Cart" if self.station == "pos" else "Cook Queue")
            if not cart.entries:
                widget.update("(no items yet)")
                totals.update("")
                return
            if self.entry_index >= len(cart.entries):
                self.entry_index = len(cart.entries) - 1
            lines = [format_cart_line(cart, idx) for idx in range(len(cart.entries))]
            selected = self.entry_index if self.active_pane == "ticket" else None
            self._render_window(widget, lines, selected)
            totals.update(format_cart_totals(cart))
            return

        current = self.session.sheets[self._sheet_mode()]
        title.update("Unsaved Changes")
        dirty = current.dirty_records()
        if not dirty:
            widget.update("(nothing to save)")
        else:
            self._render_window(widget, [format_dirty_record(record) for record in dirty], None)
        totals.update(f"{len(dirty)} pending")

    def _refresh_notice(self) -> None:
        try:
            bar = self.query_one("#notice-bar", Static)
        except NoMatches:
            return
        bar.update(format_notice(self.notice))

    def _refresh_dashboard_bar(self) -> None:
        try:
            bar = self.query_one("#dashboard-bar", Static)
        except NoMatches:
            return
        bar.update(f"Today: {self.session.dashboard.summary()}")
