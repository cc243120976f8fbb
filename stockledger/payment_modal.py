"""Checkout modal: payment method and cash keypad."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Container
from textual.events import Key
from textual.screen import ModalScreen
from textual.widgets import Static

from stockledger.constant import BACKSPACE_KEY, CLEAR_KEY, DECIMAL_KEY, DIGIT_KEYS, DOUBLE_ZERO_KEY, PAYMENT_METHODS
from stockledger.engine import Blur, FocusCash, PressKey
from stockledger.errors import InvalidQuantityInput
from stockledger.quantity import ZERO, format_money, parse_quantity
from stockledger.session import TerminalSession


class PaymentModal(ModalScreen[str | None]):
    """Pick a payment method and key in the cash tendered before checkout."""

    CSS = """
    PaymentModal {
        align: center middle;
        background: $background 60%;
    }

    #payment-dialog {
        width: 56;
        height: auto;
        border: round $secondary;
        background: $panel;
        padding: 1 2;
    }

    #payment-title {
        text-style: bold;
        margin-bottom: 1;
        color: white;
    }

    #payment-methods {
        color: white;
        margin-bottom: 1;
    }

    #payment-value {
        border: heavy $secondary;
        padding: 0 1;
        color: white;
        margin-bottom: 1;
    }

    #payment-error {
        color: #ffb3b3;
        margin-bottom: 1;
    }

    #payment-help {
        color: #dddddd;
    }
    """

    def __init__(self, session: TerminalSession) -> None:
        super().__init__()
        self.session = session
        self.methods = list(PAYMENT_METHODS)
        self.method_index = 0
        self.error = ""

    @property
    def method(self) -> str:
        return self.methods[self.method_index]

    def compose(self) -> ComposeResult:
        with Container(id="payment-dialog"):
            yield Static("Checkout", id="payment-title")
            yield Static(id="payment-methods")
            yield Static(id="payment-value")
            yield Static(id="payment-error")
            yield Static(
                "Tab method. Digits/. amount, z = 00. Backspace delete, Delete clear. Enter pay. Esc cancel.",
                id="payment-help",
            )

    def on_mount(self) -> None:
        self._press(FocusCash())
        self._refresh_content()

    def on_key(self, event: Key) -> None:
        if event.key in {"escape", "ctrl+c"}:
            self._press(Blur())
            self.dismiss(None)
            event.stop()
            return

        if event.key == "enter":
            self._confirm()
            event.stop()
            return

        if event.key in {"tab", "right", "down"}:
            self.method_index = (self.method_index + 1) % len(self.methods)
        elif event.key in {"shift+tab", "left", "up"}:
            self.method_index = (self.method_index - 1) % len(self.methods)
        elif event.key == "backspace":
            self._press(PressKey(BACKSPACE_KEY))
        elif event.key == "delete":
            self._press(PressKey(CLEAR_KEY))
        elif event.character == "z":
            self._press(PressKey(DOUBLE_ZERO_KEY))
        elif event.character == DECIMAL_KEY or (event.character and event.character in DIGIT_KEYS):
            self._press(PressKey(event.character))
        else:
            return
        self._refresh_content()
        event.stop()

    def _press(self, event: object) -> None:
        notice = self.session.apply("pos", event)
        self.error = notice.message if notice is not None else ""

    def _tendered(self) -> str:
        return self.session.carts["pos"].payment_buffer

    def _confirm(self) -> None:
        total = self.session.order_total()
        if self.method == "cash":
            try:
                amount = parse_quantity(self._tendered()) or ZERO
            except InvalidQuantityInput:
                amount = ZERO
            if amount < total:
                self.error = f"Cash {format_money(amount)} is less than total {format_money(total)}."
                self._refresh_content()
                return
        self._press(Blur())
        self.dismiss(self.method)

    def _refresh_content(self) -> None:
        methods_widget = self.query_one("#payment-methods", Static)
        value_widget = self.query_one("#payment-value", Static)
        error_widget = self.query_one("#payment-error", Static)

        total = self.session.order_total()
        lines = [f"Total: {format_money(total)}"]
        for idx, name in enumerate(self.methods):
            pointer = "➤ " if idx == self.method_index else "  "
            lines.append(f"{pointer}{PAYMENT_METHODS[name]}")
        methods_widget.update("\n".join(lines))

        tendered = self._tendered()
        if self.method == "cash":
            try:
                amount = parse_quantity(tendered) or ZERO
            except InvalidQuantityInput:
                amount = ZERO
            change = max(ZERO, amount - total)
            value_widget.update(f"Cash: {tendered or '0'}   Change: {format_money(change)}")
        else:
            value_widget.update(f"{PAYMENT_METHODS[self.method]} settles {format_money(total)}")
        error_widget.update(self.error or "")
