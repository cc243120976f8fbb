"""SQLite system of record implementing the same messages as the HTTP backend."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

from stockledger.commit import Batch, OrderTicket
from stockledger.config import DB_PATH, LOW_STOCK_THRESHOLD
from stockledger.constant import DEMO_CATEGORIES, DEMO_INVENTORY, DEMO_PRODUCTS
from stockledger.dashboard import DashboardFigures
from stockledger.errors import CommitFailure, StaleCeiling
from stockledger.models import BaselineRow, BatchLine, CatalogItem, CatalogSnapshot, CommitResult
from stockledger.quantity import ZERO, format_quantity

_STOCK_TABLES: dict[str, tuple[str, str, str]] = {
    # kind -> (table, id column, quantity column)
    "product": ("products", "product_id", "product_qty"),
    "inventory": ("inventory", "inventory_id", "inventory_qty"),
}


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _dec(value: object) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value))


def _connect(db_path: str | Path) -> sqlite3.Connection:
    db_file = Path(db_path)
    db_file.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_file)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def bootstrap_schema(db_path: str | Path = DB_PATH) -> None:
    """Create persistence schema if it does not already exist."""
    with closing(_connect(db_path)) as conn, conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS categories (
                category_id INTEGER PRIMARY KEY,
                category_name TEXT NOT NULL,
                category_color TEXT NOT NULL DEFAULT '#000000'
            );

            CREATE TABLE IF NOT EXISTS products (
                product_id INTEGER PRIMARY KEY,
                product_name TEXT NOT NULL,
                product_image TEXT,
                product_price TEXT NOT NULL,
                product_qty TEXT NOT NULL,
                category_id INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY(category_id) REFERENCES categories(category_id) ON DELETE SET NULL
            );

            CREATE TABLE IF NOT EXISTS inventory (
                inventory_id INTEGER PRIMARY KEY,
                inventory_name TEXT NOT NULL,
                inventory_image TEXT,
                inventory_price TEXT NOT NULL,
                inventory_qty TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS stock_version (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS cooks (
                cook_id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                cook_available TEXT NOT NULL,
                cook_leftover TEXT NOT NULL,
                date TEXT NOT NULL,
                UNIQUE(product_id, date),
                FOREIGN KEY(product_id) REFERENCES products(product_id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS deliveries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TEXT NOT NULL,
                type TEXT NOT NULL CHECK (type IN ('product', 'inventory')),
                item_id INTEGER NOT NULL,
                delivery_beg TEXT NOT NULL,
                delivery_qty TEXT NOT NULL,
                delivery_end TEXT NOT NULL,
                UNIQUE(date, type, item_id)
            );

            CREATE TABLE IF NOT EXISTS inventory_used (
                inventory_used_id INTEGER PRIMARY KEY AUTOINCREMENT,
                inventory_id INTEGER NOT NULL,
                date TEXT NOT NULL,
                inventory_beg TEXT NOT NULL,
                inventory_used TEXT NOT NULL,
                inventory_end TEXT NOT NULL,
                UNIQUE(inventory_id, date),
                FOREIGN KEY(inventory_id) REFERENCES inventory(inventory_id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS orders (
                order_id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                order_subtotal TEXT NOT NULL,
                order_tax TEXT NOT NULL,
                order_discount TEXT NOT NULL,
                order_total TEXT NOT NULL,
                order_payment TEXT NOT NULL,
                order_change TEXT NOT NULL,
                order_payment_method TEXT NOT NULL
                    CHECK (order_payment_method IN ('cash', 'gcash', 'grabfood', 'foodpanda')),
                order_status TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS order_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_id TEXT NOT NULL,
                line_index INTEGER NOT NULL,
                product_id INTEGER NOT NULL,
                product_name TEXT NOT NULL,
                order_quantity TEXT NOT NULL,
                unit_price TEXT NOT NULL,
                FOREIGN KEY(order_id) REFERENCES orders(order_id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS commit_keys (
                idempotency_key TEXT PRIMARY KEY,
                sheet TEXT NOT NULL,
                created_at TEXT NOT NULL,
                message TEXT NOT NULL,
                order_id TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_order_items_order_id_line
                ON order_items(order_id, line_index);

            CREATE INDEX IF NOT EXISTS idx_orders_created_at
                ON orders(created_at);
            """
        )
        conn.execute("INSERT OR IGNORE INTO stock_version (id, version) VALUES (1, 0)")


def seed_demo_catalog(db_path: str | Path = DB_PATH) -> bool:
    """Fill an empty store with the demo catalog. Returns True when rows were added."""
    with closing(_connect(db_path)) as conn, conn:
        if conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]:
            return False
        created_at = _now_iso()
        conn.executemany(
            "INSERT INTO categories (category_id, category_name, category_color) VALUES (?, ?, ?)",
            DEMO_CATEGORIES,
        )
        conn.executemany(
            """
            INSERT INTO products (product_id, product_name, product_price, product_qty, category_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [(*row, created_at) for row in DEMO_PRODUCTS],
        )
        conn.executemany(
            """
            INSERT INTO inventory (inventory_id, inventory_name, inventory_price, inventory_qty, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [(*row, created_at) for row in DEMO_INVENTORY],
        )
    return True


def _current_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("SELECT version FROM stock_version WHERE id = 1").fetchone()[0])


def _bump_version(conn: sqlite3.Connection) -> int:
    conn.execute("UPDATE stock_version SET version = version + 1 WHERE id = 1")
    return _current_version(conn)


def _check_version(conn: sqlite3.Connection, expected: str | None) -> int:
    current = _current_version(conn)
    if expected is not None and expected != str(current):
        raise StaleCeiling("Stock changed on another terminal", status_code=409)
    return current


def _stock_quantity(conn: sqlite3.Connection, kind: str, item_id: int) -> Decimal:
    table, id_column, qty_column = _STOCK_TABLES[kind]
    row = conn.execute(f"SELECT {qty_column} FROM {table} WHERE {id_column} = ?", (item_id,)).fetchone()
    if row is None:
        raise CommitFailure(f"Unknown {kind} ID {item_id}")
    return _dec(row[0])


def _set_stock_quantity(conn: sqlite3.Connection, kind: str, item_id: int, value: Decimal) -> None:
    table, id_column, qty_column = _STOCK_TABLES[kind]
    conn.execute(f"UPDATE {table} SET {qty_column} = ? WHERE {id_column} = ?", (str(value), item_id))


def _apply_delivery_line(conn: sqlite3.Connection, day: str, line: BatchLine) -> None:
    row = conn.execute(
        "SELECT delivery_beg, delivery_qty FROM deliveries WHERE date = ? AND type = ? AND item_id = ?",
        (day, line.kind, line.item_id),
    ).fetchone()
    previous = _dec(row["delivery_qty"]) if row is not None else ZERO
    increment = line.delta_quantity - previous
    if increment < ZERO:
        raise CommitFailure(f"Cannot reduce saved delivery for {line.kind} ID {line.item_id}")

    stock = _stock_quantity(conn, line.kind, line.item_id)
    _set_stock_quantity(conn, line.kind, line.item_id, stock + increment)
    if row is None:
        conn.execute(
            """
            INSERT INTO deliveries (date, type, item_id, delivery_beg, delivery_qty, delivery_end)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (day, line.kind, line.item_id, str(line.beginning_quantity), str(line.delta_quantity), str(line.ending_quantity)),
        )
    else:
        conn.execute(
            "UPDATE deliveries SET delivery_qty = ?, delivery_end = ? WHERE date = ? AND type = ? AND item_id = ?",
            (str(line.delta_quantity), str(line.ending_quantity), day, line.kind, line.item_id),
        )


def _apply_usage_line(conn: sqlite3.Connection, day: str, line: BatchLine) -> None:
    if line.kind != "inventory":
        raise CommitFailure(f"Usage applies to inventory only, got {line.kind} ID {line.item_id}")
    row = conn.execute(
        "SELECT inventory_used FROM inventory_used WHERE inventory_id = ? AND date = ?",
        (line.item_id, day),
    ).fetchone()
    previous = _dec(row["inventory_used"]) if row is not None else ZERO
    increment = line.delta_quantity - previous
    if increment < ZERO:
        raise CommitFailure(f"Cannot reduce saved usage for inventory ID {line.item_id}")

    stock = _stock_quantity(conn, "inventory", line.item_id)
    if stock < increment:
        raise CommitFailure(f"Not enough stock available for inventory ID {line.item_id}")
    _set_stock_quantity(conn, "inventory", line.item_id, stock - increment)
    conn.execute(
        """
        INSERT INTO inventory_used (inventory_id, date, inventory_beg, inventory_used, inventory_end)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(inventory_id, date) DO UPDATE SET
            inventory_used = excluded.inventory_used,
            inventory_end = excluded.inventory_end
        """,
        (line.item_id, day, str(line.beginning_quantity), str(line.delta_quantity), str(line.ending_quantity)),
    )


def _apply_cook_line(conn: sqlite3.Connection, day: str, line: BatchLine) -> None:
    if line.kind != "product":
        raise CommitFailure(f"Only products can be cooked, got {line.kind} ID {line.item_id}")
    stock = _stock_quantity(conn, "product", line.item_id)
    if stock < line.delta_quantity:
        raise CommitFailure(f"Not enough stock available for product ID {line.item_id}")
    _set_stock_quantity(conn, "product", line.item_id, stock - line.delta_quantity)

    row = conn.execute(
        "SELECT cook_available, cook_leftover FROM cooks WHERE product_id = ? AND date = ?",
        (line.item_id, day),
    ).fetchone()
    if row is None:
        conn.execute(
            "INSERT INTO cooks (product_id, cook_available, cook_leftover, date) VALUES (?, ?, ?, ?)",
            (line.item_id, str(line.delta_quantity), str(line.delta_quantity), day),
        )
    else:
        conn.execute(
            "UPDATE cooks SET cook_available = ?, cook_leftover = ? WHERE product_id = ? AND date = ?",
            (
                str(_dec(row["cook_available"]) + line.delta_quantity),
                str(_dec(row["cook_leftover"]) + line.delta_quantity),
                line.item_id,
                day,
            ),
        )


_LINE_APPLIERS = {
    "delivery": _apply_delivery_line,
    "usage": _apply_usage_line,
    "cook": _apply_cook_line,
}

_SAVE_MESSAGES = {
    "delivery": "Delivery data updated successfully",
    "usage": "Inventory usage saved successfully",
    "cook": "Cooked items saved successfully",
}


class SqliteBackend:
    """Local store for running a terminal without the back-office service."""

    def __init__(self, db_path: str | Path = DB_PATH, today: date | None = None) -> None:
        self.db_path = db_path
        self._today = today
        bootstrap_schema(db_path)

    def _day(self) -> str:
        return (self._today or date.today()).isoformat()

    async def fetch_catalog(self, kind: str, date_range: tuple[date, date] | None = None) -> CatalogSnapshot:
        with closing(_connect(self.db_path)) as conn:
            if kind == "product":
                sql = """
                    SELECT p.product_id AS id, p.product_name AS name, p.product_price AS price,
                           p.product_qty AS quantity, p.product_image AS image, p.category_id,
                           c.category_name, p.created_at
                    FROM products p
                    LEFT JOIN categories c ON c.category_id = p.category_id
                """
            elif kind == "inventory":
                sql = """
                    SELECT inventory_id AS id, inventory_name AS name, inventory_price AS price,
                           inventory_qty AS quantity, inventory_image AS image, NULL AS category_id,
                           NULL AS category_name, created_at
                    FROM inventory
                """
            else:
                raise ValueError(f"unknown kind {kind!r}")

            params: tuple[str, ...] = ()
            if date_range is not None:
                sql = f"SELECT * FROM ({sql}) WHERE substr(created_at, 1, 10) BETWEEN ? AND ?"
                params = (date_range[0].isoformat(), date_range[1].isoformat())
            rows = conn.execute(sql + " ORDER BY id", params).fetchall()
            version = _current_version(conn)

        items = tuple(
            CatalogItem(
                kind=kind,
                item_id=int(row["id"]),
                name=row["name"],
                unit_price=_dec(row["price"]),
                quantity=_dec(row["quantity"]),
                image_ref=row["image"],
                category_id=row["category_id"],
                category_name=row["category_name"],
            )
            for row in rows
        )
        return CatalogSnapshot(items=items, version=str(version))

    async def fetch_baseline(self, sheet: str, day: date) -> list[BaselineRow]:
        day_text = day.isoformat()
        with closing(_connect(self.db_path)) as conn:
            if sheet == "delivery":
                rows = conn.execute(
                    """
                    SELECT 'product' AS kind, p.product_id AS id, p.product_name AS name,
                           COALESCE(d.delivery_beg, p.product_qty) AS beginning,
                           COALESCE(d.delivery_qty, '0') AS original
                    FROM products p
                    LEFT JOIN deliveries d ON d.item_id = p.product_id AND d.type = 'product' AND d.date = ?
                    UNION ALL
                    SELECT 'inventory', i.inventory_id, i.inventory_name,
                           COALESCE(d.delivery_beg, i.inventory_qty),
                           COALESCE(d.delivery_qty, '0')
                    FROM inventory i
                    LEFT JOIN deliveries d ON d.item_id = i.inventory_id AND d.type = 'inventory' AND d.date = ?
                    """,
                    (day_text, day_text),
                ).fetchall()
            elif sheet == "cook":
                rows = conn.execute(
                    """
                    SELECT 'product' AS kind, p.product_id AS id, p.product_name AS name,
                           '0' AS beginning, COALESCE(c.cook_available, '0') AS original
                    FROM products p
                    LEFT JOIN cooks c ON c.product_id = p.product_id AND c.date = ?
                    """,
                    (day_text,),
                ).fetchall()
            elif sheet == "usage":
                rows = conn.execute(
                    """
                    SELECT 'inventory' AS kind, i.inventory_id AS id, i.inventory_name AS name,
                           COALESCE(u.inventory_beg, i.inventory_qty) AS beginning,
                           COALESCE(u.inventory_used, '0') AS original
                    FROM inventory i
                    LEFT JOIN inventory_used u ON u.inventory_id = i.inventory_id AND u.date = ?
                    """,
                    (day_text,),
                ).fetchall()
            else:
                raise ValueError(f"unknown sheet {sheet!r}")

        return [
            BaselineRow(
                kind=row["kind"],
                item_id=int(row["id"]),
                name=row["name"],
                beginning_quantity=_dec(row["beginning"]),
                original_delta_quantity=_dec(row["original"]),
            )
            for row in rows
        ]

    async def commit_batch(self, batch: Batch) -> CommitResult:
        applier = _LINE_APPLIERS.get(batch.sheet)
        if applier is None:
            raise CommitFailure(f"Unknown sheet {batch.sheet!r}")
        day = self._day()
        try:
            with closing(_connect(self.db_path)) as conn, conn:
                seen = conn.execute(
                    "SELECT message FROM commit_keys WHERE idempotency_key = ?",
                    (batch.idempotency_key,),
                ).fetchone()
                if seen is not None:
                    return CommitResult(success=True, message=seen["message"], version=str(_current_version(conn)))

                _check_version(conn, batch.catalog_version)
                for line in batch.lines:
                    applier(conn, day, line)
                version = _bump_version(conn)
                message = _SAVE_MESSAGES[batch.sheet]
                conn.execute(
                    "INSERT INTO commit_keys (idempotency_key, sheet, created_at, message) VALUES (?, ?, ?, ?)",
                    (batch.idempotency_key, batch.sheet, _now_iso(), message),
                )
        except sqlite3.Error as exc:
            raise CommitFailure(f"Failed to save items: {exc}") from exc
        return CommitResult(success=True, message=message, version=str(version))

    async def commit_order(self, ticket: OrderTicket) -> CommitResult:
        try:
            with closing(_connect(self.db_path)) as conn, conn:
                seen = conn.execute(
                    "SELECT message, order_id FROM commit_keys WHERE idempotency_key = ?",
                    (ticket.idempotency_key,),
                ).fetchone()
                if seen is not None:
                    return CommitResult(
                        success=True,
                        message=seen["message"],
                        order_id=seen["order_id"],
                        version=str(_current_version(conn)),
                    )

                _check_version(conn, ticket.catalog_version)
                order_id = uuid4().hex
                created_at = _now_iso()
                conn.execute(
                    """
                    INSERT INTO orders (
                        order_id, created_at, order_subtotal, order_tax, order_discount, order_total,
                        order_payment, order_change, order_payment_method, order_status
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'COMPLETED')
                    """,
                    (
                        order_id,
                        created_at,
                        str(ticket.subtotal),
                        str(ticket.tax),
                        str(ticket.discount),
                        str(ticket.total),
                        str(ticket.payment_amount),
                        str(ticket.change),
                        ticket.payment_method,
                    ),
                )
                for idx, entry in enumerate(ticket.lines):
                    kind, item_id = entry.key
                    stock = _stock_quantity(conn, kind, item_id)
                    if stock < entry.quantity:
                        raise CommitFailure(f"Not enough stock available for product ID {item_id}")
                    _set_stock_quantity(conn, kind, item_id, stock - entry.quantity)
                    conn.execute(
                        """
                        INSERT INTO order_items (order_id, line_index, product_id, product_name, order_quantity, unit_price)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (order_id, idx, item_id, entry.name, str(entry.quantity), str(entry.unit_price)),
                    )
                version = _bump_version(conn)
                message = "Order created successfully!"
                conn.execute(
                    """
                    INSERT INTO commit_keys (idempotency_key, sheet, created_at, message, order_id)
                    VALUES (?, 'order', ?, ?, ?)
                    """,
                    (ticket.idempotency_key, created_at, message, order_id),
                )
        except sqlite3.Error as exc:
            raise CommitFailure(f"An unexpected error occurred: {exc}") from exc
        return CommitResult(success=True, message=message, order_id=order_id, version=str(version))

    async def fetch_dashboard(self, day: date) -> DashboardFigures:
        day_text = day.isoformat()
        with closing(_connect(self.db_path)) as conn:
            totals = conn.execute(
                "SELECT order_total FROM orders WHERE substr(created_at, 1, 10) = ?",
                (day_text,),
            ).fetchall()
            sold = conn.execute(
                """
                SELECT oi.order_quantity FROM order_items oi
                JOIN orders o ON o.order_id = oi.order_id
                WHERE substr(o.created_at, 1, 10) = ?
                """,
                (day_text,),
            ).fetchall()
            stock = conn.execute("SELECT product_qty FROM products").fetchall()

        low_stock = [row[0] for row in stock if ZERO < _dec(row[0]) < LOW_STOCK_THRESHOLD]
        return DashboardFigures(
            total_sales=sum((_dec(row[0]) for row in totals), ZERO),
            order_count=len(totals),
            items_sold=sum((_dec(row[0]) for row in sold), ZERO),
            low_stock_count=len(low_stock),
        )

    async def aclose(self) -> None:
        return None


def describe_stock(db_path: str | Path = DB_PATH) -> list[str]:
    """One line per stock row, for quick inspection from a shell."""
    lines: list[str] = []
    with closing(_connect(db_path)) as conn:
        for kind, (table, id_column, qty_column) in _STOCK_TABLES.items():
            name_column = "product_name" if kind == "product" else "inventory_name"
            for row in conn.execute(f"SELECT {id_column}, {name_column}, {qty_column} FROM {table} ORDER BY {id_column}"):
                lines.append(f"{kind} #{row[0]} {row[1]}: {format_quantity(_dec(row[2]))}")
    return lines
