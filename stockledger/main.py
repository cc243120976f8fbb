"""Entry point for the stock ledger Textual app."""

from __future__ import annotations

from stockledger.backend import HttpBackend, StockBackend
from stockledger.config import API_BASE_URL, API_TIMEOUT_SECONDS, DB_PATH
from stockledger.debuglog import DebugLog
from stockledger.persistence import SqliteBackend, seed_demo_catalog
from stockledger.session import TerminalSession
from stockledger.terminal_app import StockLedgerApp


def build_backend(api_base_url: str = API_BASE_URL) -> StockBackend:
    """Use the back-office service when configured, else the local SQLite store."""
    if api_base_url:
        return HttpBackend(api_base_url, timeout=API_TIMEOUT_SECONDS)
    backend = SqliteBackend(DB_PATH)
    seed_demo_catalog(DB_PATH)
    return backend


def main() -> None:
    """Run the Textual application."""
    log = DebugLog()
    backend = build_backend()
    log.write(f"main backend={type(backend).__name__}")
    StockLedgerApp(TerminalSession(backend, log)).run()


if __name__ == "__main__":
    main()
