"""Runtime configuration defaults for persistence, networking and the terminal UI."""

from __future__ import annotations

import os
from decimal import Decimal

DB_PATH = os.getenv("STOCKLEDGER_DB_PATH", "data/stockledger.db")

# Empty means the terminal runs against the local SQLite store.
API_BASE_URL = os.getenv("STOCKLEDGER_API_URL", "")
API_TIMEOUT_SECONDS = float(os.getenv("STOCKLEDGER_API_TIMEOUT", "10"))

DEBUG_LOG_PATH = os.getenv("STOCKLEDGER_DEBUG_LOG", "/tmp/stockledger-debug.log")

WARNING_DISMISS_SECONDS = 3.0
SUCCESS_DISMISS_SECONDS = 2.0
DASHBOARD_POLL_SECONDS = 30.0

LOW_STOCK_THRESHOLD = 10

# The cook station only lists this product category; empty lists everything.
COOK_CATEGORY = os.getenv("STOCKLEDGER_COOK_CATEGORY", "Grilled")

DEFAULT_TAX_RATE = Decimal("0")
