"""Editable static tables for stations, filters, keypads and messages."""

from __future__ import annotations

KINDS: tuple[str, ...] = ("product", "inventory")

PAYMENT_METHODS: dict[str, str] = {
    "cash": "Cash",
    "gcash": "GCash",
    "grabfood": "GrabFood",
    "foodpanda": "Foodpanda",
}

STATIONS: dict[str, str] = {
    "pos": "POS",
    "cook": "Cook Station",
    "delivery": "Delivery",
    "usage": "Inventory Usage",
}

# Station -> sheet mode for the record-based stations.
SHEET_BY_STATION: dict[str, str] = {
    "delivery": "delivery",
    "usage": "usage",
}

FILTER_OPTIONS: dict[str, str] = {
    "all": "All Items",
    "products": "Products",
    "inventory": "Inventory",
    "available": "Available",
    "lowstock": "Low Stock",
    "outofstock": "Out of Stock",
}

SORT_FIELDS: dict[str, str] = {
    "id": "ID",
    "name": "Name",
    "quantity": "Quantity",
    "beginning": "Beginning",
    "delta": "Delta",
    "ending": "Ending",
}

# (minimum quantity, label), checked top to bottom. Zero is handled separately.
STOCK_STATUS_LEVELS: list[tuple[int, str]] = [
    (30, "High Stock"),
    (10, "In Stock"),
    (5, "Low Stock"),
]
OUT_OF_STOCK_LABEL = "Out of Stock"
BACKORDER_LABEL = "Backorder"

DIGIT_KEYS: frozenset[str] = frozenset("0123456789")
BACKSPACE_KEY = "backspace"
CLEAR_KEY = "clear"
DECIMAL_KEY = "."
DOUBLE_ZERO_KEY = "00"

MAX_DECIMAL_PLACES = 2

MSG_NO_STOCK = "No stock available for this item."
MSG_NO_MORE_STOCK = "No more stock available for this item."
MSG_OVER_CEILING = "Cannot set quantity to {requested}. Only {ceiling} available in stock."
MSG_BELOW_FLOOR = "Cannot set value below {floor}. This is the minimum required value."
MSG_INVALID_QUANTITY = "Invalid quantity: {text!r}"
MSG_NOTHING_TO_SAVE = "No changes to save"
MSG_COMMIT_IN_FLIGHT = "A save is already in progress"
MSG_STALE_CEILING = "Stock changed on another terminal. Catalog reloaded."

# Seed rows for a fresh local store: (id, name, color).
DEMO_CATEGORIES: list[tuple[int, str, str]] = [
    (1, "Grilled", "#b23a48"),
    (2, "Fried", "#d9822b"),
    (3, "Drinks", "#2f6db5"),
]

# (id, name, price, quantity, category_id)
DEMO_PRODUCTS: list[tuple[int, str, str, str, int]] = [
    (1, "Milkfish", "50", "10", 1),
    (2, "Grilled Pork Belly", "85", "24", 1),
    (3, "Chicken Inasal", "95", "18", 1),
    (4, "Fried Tilapia", "70", "6", 2),
    (5, "Lumpia", "35", "40", 2),
    (6, "Iced Tea", "25", "0", 3),
]

# (id, name, price, quantity)
DEMO_INVENTORY: list[tuple[int, str, str, str]] = [
    (1, "Rice (kg)", "52", "25.5"),
    (2, "Cooking Oil (L)", "110", "8.25"),
    (3, "Charcoal (kg)", "30", "12"),
    (4, "Calamansi (kg)", "80", "2.5"),
]
