"""Confirmation modal listing what a save is about to send."""

from __future__ import annotations

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Container
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Static


class ConfirmModal(ModalScreen[bool]):
    """Centered modal to review pending lines before they are committed."""

    BINDINGS = [
        ("escape", "cancel", "Cancel"),
        ("n", "cancel", "Cancel"),
        ("ctrl+c", "cancel", "Cancel"),
        ("j", "move_cursor(1)", "Next"),
        ("k", "move_cursor(-1)", "Previous"),
        ("up", "move_cursor(-1)", "Previous"),
        ("down", "move_cursor(1)", "Next"),
        ("enter", "confirm", "Save"),
        ("y", "confirm", "Save"),
    ]

    CSS = """
    ConfirmModal {
        align: center middle;
        background: $background 60%;
    }

    #confirm-dialog {
        width: 76;
        height: auto;
        max-height: 80%;
        border: heavy $warning;
        background: $panel;
        padding: 1 2;
    }

    #confirm-title {
        text-style: bold reverse;
        padding: 0 1;
    }

    #confirm-body {
        max-height: 20;
        overflow-y: auto;
        margin: 1 0;
    }

    #confirm-count {
        text-style: italic;
    }

    #confirm-help {
        color: $text-muted;
    }
    """

    cursor_index = reactive(0)

    def __init__(self, title: str, lines: list[Text]) -> None:
        super().__init__()
        self.title_text = title
        self.lines = lines

    def compose(self) -> ComposeResult:
        with Container(id="confirm-dialog"):
            yield Static(self.title_text, id="confirm-title")
            yield Static(id="confirm-body")
            yield Static(self._count_label(), id="confirm-count")
            yield Static("Save these changes? y/Enter yes, n/Esc no. j/k scroll.", id="confirm-help")

    def _count_label(self) -> str:
        noun = "line" if len(self.lines) == 1 else "lines"
        return f"{len(self.lines)} {noun} will be saved"

    def on_mount(self) -> None:
        self._refresh_content()

    def action_cancel(self) -> None:
        self.dismiss(False)

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_move_cursor(self, delta: int) -> None:
        if not self.lines:
            return
        self.cursor_index = (self.cursor_index + delta) % len(self.lines)
        self._refresh_content()

    def _refresh_content(self) -> None:
        body = self.query_one("#confirm-body", Static)
        if not self.lines:
            body.update("(nothing to save)")
            return
        content = Text()
        for idx, line in enumerate(self.lines):
            if idx > 0:
                content.append("\n")
            content.append("➤ " if idx == self.cursor_index else "  ")
            content.append_text(line)
        body.update(content)
