"""Append-only debug log shared by the terminal and its commit path."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from stockledger.config import DEBUG_LOG_PATH


class DebugLog:
    """Writes timestamped ``event key=value`` lines to a local file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path if path is not None else DEBUG_LOG_PATH)

    def write(self, message: str) -> None:
        try:
            ts = datetime.now(timezone.utc).isoformat()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(f"{ts} {message}\n")
        except OSError:
            # Logging must never interfere with app flow.
            return
