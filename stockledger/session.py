"""Terminal session: one set of carts and sheets bound to a system of record."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from stockledger import engine, sheet
from stockledger.commit import BatchCommitter, build_cook_batch, build_order_ticket, build_sheet_batch, price_cart
from stockledger.config import DEFAULT_TAX_RATE
from stockledger.constant import MSG_NOTHING_TO_SAVE, MSG_STALE_CEILING, SHEET_BY_STATION
from stockledger.dashboard import DashboardFigures
from stockledger.debuglog import DebugLog
from stockledger.engine import CartState
from stockledger.errors import CommitFailure, CommitInFlight, PaymentError, StaleCeiling, UnknownItem
from stockledger.models import CatalogItem, Notice
from stockledger.quantity import ZERO, format_money
from stockledger.sheet import SheetState
from stockledger.stock_pool import StockPool

if TYPE_CHECKING:
    from stockledger.backend import StockBackend

CART_STATIONS = ("pos", "cook")
SHEET_MODES = ("cook", "delivery", "usage")


class TerminalSession:
    """Owns the engine state of every station and routes commits.

    The POS cart and the cook queue reserve from one pool built from the
    product snapshot, so together they never hold more than it reports.
    Other terminals are only detected by the version check on commit.
    """

    def __init__(
        self,
        backend: StockBackend,
        log: DebugLog | None = None,
        today: date | None = None,
        tax_rate: Decimal = DEFAULT_TAX_RATE,
    ) -> None:
        self.backend = backend
        self.log = log or DebugLog()
        self.today = today or date.today()
        self.tax_rate = tax_rate
        self.committer = BatchCommitter(backend, self.log)
        self.products: tuple[CatalogItem, ...] = ()
        self.inventory: tuple[CatalogItem, ...] = ()
        self.pool = StockPool()
        self.carts: dict[str, CartState] = {
            station: CartState.from_snapshot(station, ()) for station in CART_STATIONS
        }
        self.sheets: dict[str, SheetState] = {mode: SheetState(mode=mode) for mode in SHEET_MODES}
        self.version: str | None = None
        self.dashboard = DashboardFigures()
        self.loaded = False

    @property
    def busy(self) -> bool:
        return self.committer.gate.busy

    async def load(self) -> None:
        """Fetch both catalogs and today's sheet baselines, replacing all state."""
        products = await self.backend.fetch_catalog("product")
        inventory = await self.backend.fetch_catalog("inventory")
        self.products = products.items
        self.inventory = inventory.items
        self.version = products.version or inventory.version
        self.carts = {
            station: CartState.from_snapshot(station, products.items) for station in CART_STATIONS
        }
        self._share_pool(StockPool.from_catalog(products.items))
        for mode in SHEET_MODES:
            rows = await self.backend.fetch_baseline(mode, self.today)
            self.sheets[mode] = SheetState.from_baseline(mode, rows)
        self.loaded = True
        self.log.write(
            f"session_loaded products={len(self.products)} inventory={len(self.inventory)} version={self.version}"
        )

    async def reload_catalog(self) -> Notice | None:
        """Refetch stock and re-reserve every cart against it."""
        products = await self.backend.fetch_catalog("product")
        inventory = await self.backend.fetch_catalog("inventory")
        self.products = products.items
        self.inventory = inventory.items
        self.version = products.version or inventory.version
        messages: list[str] = []
        pool = StockPool.from_catalog(products.items)
        for station, cart in list(self.carts.items()):
            transition = engine.rebase(cart, products, pool)
            self.carts[station] = transition.state
            pool = transition.state.pool
            if transition.notice is not None:
                messages.append(transition.notice.message)
        self._share_pool(pool)
        self.log.write(f"catalog_reloaded version={self.version} adjusted={len(messages)}")
        if messages:
            return Notice("warning", " ".join(messages))
        return None

    def apply(self, station: str, event: object) -> Notice | None:
        """Run one UI event through the station's reducer and keep the result."""
        try:
            if station in self.carts:
                transition = engine.reduce(self.carts[station], event)
                self._set_cart(station, transition.state)
            else:
                mode = SHEET_BY_STATION[station]
                transition = sheet.reduce(self.sheets[mode], event)
                self.sheets[mode] = transition.state
        except UnknownItem as exc:
            self.log.write(f"apply_unknown_item station={station} key={exc.key!r}")
            return Notice("warning", str(exc))
        if transition.notice is not None:
            self.log.write(f"apply_notice station={station} level={transition.notice.level} message={transition.notice.message!r}")
        return transition.notice

    def clear_cart(self, station: str) -> None:
        self._set_cart(station, engine.clear_cart(self.carts[station]).state)

    def order_total(self) -> Decimal:
        """Total the payment screen asks for, priced exactly as the order ticket is."""
        return price_cart(self.carts["pos"], self.tax_rate)[3]

    async def checkout(self, method: str, amount: object = None, discount: object = ZERO) -> Notice:
        """Close the POS cart as one order."""
        completed = engine.blur(self.carts["pos"])
        self._set_cart("pos", completed.state)
        cart = completed.state
        if amount is None:
            amount = cart.payment_buffer or ZERO
        try:
            ticket = build_order_ticket(cart, method, amount, self.tax_rate, discount, self.version)
        except PaymentError as exc:
            return Notice("warning", str(exc))

        try:
            ticket, result = await self.committer.submit_order(ticket)
        except CommitInFlight as exc:
            return Notice("warning", str(exc))
        except StaleCeiling as exc:
            return await self._recover(exc)
        except CommitFailure as exc:
            return Notice("error", exc.message)

        self._set_cart("pos", engine.clear_after_checkout(self.carts["pos"], ticket.lines).state)
        self._advance_version(result.version)
        message = result.message or "Order saved"
        if ticket.change > ZERO:
            message = f"{message} Change: {format_money(ticket.change)}"
        return Notice("success", message)

    async def commit_cook(self) -> Notice:
        """Record the cook queue as cooked and consume its product stock."""
        completed = engine.blur(self.carts["cook"])
        self._set_cart("cook", completed.state)
        queue = completed.state
        batch = build_cook_batch(queue, self.sheets["cook"], self.version)
        if batch is None:
            return Notice("info", MSG_NOTHING_TO_SAVE)

        try:
            batch, result = await self.committer.submit(batch)
        except CommitInFlight as exc:
            return Notice("warning", str(exc))
        except StaleCeiling as exc:
            return await self._recover(exc)
        except CommitFailure as exc:
            return Notice("error", exc.message)

        names = {key: entry.name for key, entry in queue.entries.items()}
        self.sheets["cook"] = sheet.absorb(self.sheets["cook"], batch.lines, names)
        self._set_cart("cook", engine.clear_after_checkout(self.carts["cook"], batch.lines).state)
        self._advance_version(result.version)
        return Notice("success", result.message or "Cooked items saved")

    async def commit_sheet(self, mode: str) -> Notice:
        """Save every dirty record of the delivery or usage sheet in one batch."""
        completed = sheet.blur_delta(self.sheets[mode])
        self.sheets[mode] = completed.state
        batch = build_sheet_batch(completed.state, self.version)
        if batch is None:
            return Notice("info", MSG_NOTHING_TO_SAVE)

        try:
            batch, result = await self.committer.submit(batch)
        except CommitInFlight as exc:
            return Notice("warning", str(exc))
        except StaleCeiling as exc:
            return await self._recover(exc)
        except CommitFailure as exc:
            return Notice("error", exc.message)

        self.sheets[mode] = sheet.mark_committed(self.sheets[mode], batch.lines)
        self._advance_version(result.version)
        return Notice("success", result.message or "Saved")

    async def refresh_dashboard(self) -> DashboardFigures:
        try:
            self.dashboard = await self.backend.fetch_dashboard(self.today)
        except CommitFailure as exc:
            self.log.write(f"dashboard_failed error={exc.message!r}")
        return self.dashboard

    def _set_cart(self, station: str, cart: CartState) -> None:
        self.carts[station] = cart
        self._share_pool(cart.pool)

    def _share_pool(self, pool: StockPool) -> None:
        self.pool = pool
        self.carts = {station: replace(cart, pool=pool) for station, cart in self.carts.items()}

    def _advance_version(self, version: str | None) -> None:
        # Pools keep their session ceiling; only the version moves forward.
        if version is not None:
            self.version = version

    async def _recover(self, exc: StaleCeiling) -> Notice:
        self.log.write(f"stale_ceiling status={exc.status_code} message={exc.message!r}")
        try:
            adjusted = await self.reload_catalog()
        except CommitFailure as reload_exc:
            return Notice("error", reload_exc.message)
        message = MSG_STALE_CEILING
        if adjusted is not None:
            message = f"{message} {adjusted.message}"
        return Notice("error", message)

    async def aclose(self) -> None:
        await self.backend.aclose()
