"""Batch commit protocol: dirty records and carts turned into one request each."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Iterator
from uuid import uuid4

from stockledger.config import DEFAULT_TAX_RATE
from stockledger.constant import MSG_COMMIT_IN_FLIGHT, PAYMENT_METHODS
from stockledger.debuglog import DebugLog
from stockledger.engine import CartState
from stockledger.errors import CommitFailure, CommitInFlight, PaymentError
from stockledger.models import BatchLine, CartEntry, CommitResult
from stockledger.quantity import ZERO, format_money, to_quantity
from stockledger.sheet import SheetState

if TYPE_CHECKING:
    from stockledger.backend import StockBackend

_CENTS = Decimal("0.01")


def _new_key() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class Batch:
    """One atomic commit request for a sheet."""

    sheet: str
    lines: tuple[BatchLine, ...]
    catalog_version: str | None = None
    idempotency_key: str = field(default_factory=_new_key)

    def to_payload(self) -> dict[str, object]:
        return {
            "sheet": self.sheet,
            "idempotency_key": self.idempotency_key,
            "version": self.catalog_version,
            "items": [line.to_payload() for line in self.lines],
        }


@dataclass(frozen=True)
class OrderTicket:
    """A checked-out POS cart with its payment details."""

    lines: tuple[CartEntry, ...]
    payment_method: str
    payment_amount: Decimal
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    change: Decimal
    catalog_version: str | None = None
    idempotency_key: str = field(default_factory=_new_key)

    def to_payload(self) -> dict[str, object]:
        return {
            "idempotency_key": self.idempotency_key,
            "version": self.catalog_version,
            "items": [
                {
                    "product_id": entry.key[1],
                    "quantity": str(entry.quantity),
                    "unit_price": str(entry.unit_price),
                }
                for entry in self.lines
            ],
            "payment_method": self.payment_method,
            "payment": str(self.payment_amount),
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "discount": str(self.discount),
            "total": str(self.total),
            "change": str(self.change),
        }


def sheet_lines(sheet: SheetState) -> tuple[BatchLine, ...]:
    return tuple(
        BatchLine(
            kind=record.key[0],
            item_id=record.key[1],
            beginning_quantity=record.beginning_quantity,
            delta_quantity=record.delta_quantity,
            ending_quantity=record.ending_quantity,
        )
        for record in sheet.dirty_records()
    )


def build_sheet_batch(sheet: SheetState, catalog_version: str | None = None) -> Batch | None:
    """Serialize every dirty record of a delivery or usage sheet, or None when nothing changed."""
    lines = sheet_lines(sheet)
    if not lines:
        return None
    return Batch(sheet=sheet.mode, lines=lines, catalog_version=catalog_version)


def build_cook_batch(queue: CartState, cooked: SheetState, catalog_version: str | None = None) -> Batch | None:
    """Serialize the cook queue against what has been cooked so far today."""
    lines: list[BatchLine] = []
    for key, entry in queue.entries.items():
        record = cooked.records.get(key)
        beginning = record.ending_quantity if record is not None else ZERO
        lines.append(
            BatchLine(
                kind=key[0],
                item_id=key[1],
                beginning_quantity=beginning,
                delta_quantity=entry.quantity,
                ending_quantity=beginning + entry.quantity,
            )
        )
    if not lines:
        return None
    return Batch(sheet="cook", lines=tuple(lines), catalog_version=catalog_version)


def price_cart(
    cart: CartState,
    tax_rate: object = DEFAULT_TAX_RATE,
    discount: object = ZERO,
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Subtotal, tax, discount and total of a cart, each rounded to cents."""
    subtotal = cart.subtotal.quantize(_CENTS, rounding=ROUND_HALF_UP)
    tax = (subtotal * to_quantity(tax_rate)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    discount_value = to_quantity(discount).quantize(_CENTS, rounding=ROUND_HALF_UP)
    if discount_value < ZERO:
        raise PaymentError("Discount cannot be negative")
    return subtotal, tax, discount_value, max(ZERO, subtotal + tax - discount_value)


def build_order_ticket(
    cart: CartState,
    payment_method: str,
    payment_amount: object,
    tax_rate: Decimal = DEFAULT_TAX_RATE,
    discount: object = ZERO,
    catalog_version: str | None = None,
) -> OrderTicket:
    """Price the cart and check the payment can close it."""
    if not cart.entries:
        raise PaymentError("Cart is empty")
    if payment_method not in PAYMENT_METHODS:
        raise PaymentError(f"Unknown payment method {payment_method!r}")

    subtotal, tax, discount_value, total = price_cart(cart, tax_rate, discount)

    amount = to_quantity(payment_amount)
    if payment_method == "cash":
        if amount < total:
            raise PaymentError(f"Payment {format_money(amount)} is less than total {format_money(total)}")
    elif amount == ZERO:
        # Delivery platforms and e-wallets settle the exact total.
        amount = total

    return OrderTicket(
        lines=tuple(cart.entries.values()),
        payment_method=payment_method,
        payment_amount=amount,
        subtotal=subtotal,
        tax=tax,
        discount=discount_value,
        total=total,
        change=max(ZERO, amount - total),
        catalog_version=catalog_version,
    )


class CommitGate:
    """Allows a single commit in flight per terminal."""

    def __init__(self) -> None:
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self._busy:
            raise CommitInFlight(MSG_COMMIT_IN_FLIGHT)
        self._busy = True
        try:
            yield
        finally:
            self._busy = False


class BatchCommitter:
    """Submits batches and tickets to the system of record.

    A failed request leaves nothing rolled back; resubmitting the same lines
    reuses the failed request's idempotency key so the server can drop
    duplicates.
    """

    def __init__(self, backend: StockBackend, log: DebugLog | None = None) -> None:
        self.backend = backend
        self.gate = CommitGate()
        self.log = log or DebugLog()
        self._pending_batch: Batch | None = None
        self._pending_ticket: OrderTicket | None = None

    def _reuse_batch(self, batch: Batch) -> Batch:
        pending = self._pending_batch
        if pending is not None and pending.sheet == batch.sheet and pending.lines == batch.lines:
            return Batch(
                sheet=batch.sheet,
                lines=batch.lines,
                catalog_version=batch.catalog_version,
                idempotency_key=pending.idempotency_key,
            )
        return batch

    def _reuse_ticket(self, ticket: OrderTicket) -> OrderTicket:
        pending = self._pending_ticket
        if (
            pending is not None
            and pending.lines == ticket.lines
            and pending.payment_method == ticket.payment_method
            and pending.payment_amount == ticket.payment_amount
        ):
            return replace(pending, catalog_version=ticket.catalog_version)
        return ticket

    async def submit(self, batch: Batch) -> tuple[Batch, CommitResult]:
        batch = self._reuse_batch(batch)
        with self.gate.hold():
            self._pending_batch = batch
            self.log.write(f"commit_start sheet={batch.sheet} key={batch.idempotency_key} lines={len(batch.lines)}")
            try:
                result = await self.backend.commit_batch(batch)
            except CommitFailure as exc:
                self.log.write(f"commit_failed sheet={batch.sheet} key={batch.idempotency_key} error={exc.message!r}")
                raise
            if not result.success:
                self.log.write(f"commit_rejected sheet={batch.sheet} key={batch.idempotency_key} message={result.message!r}")
                raise CommitFailure(result.message or "Save failed")
        self._pending_batch = None
        self.log.write(f"commit_done sheet={batch.sheet} key={batch.idempotency_key}")
        return batch, result

    async def submit_order(self, ticket: OrderTicket) -> tuple[OrderTicket, CommitResult]:
        ticket = self._reuse_ticket(ticket)
        with self.gate.hold():
            self._pending_ticket = ticket
            self.log.write(f"order_start key={ticket.idempotency_key} lines={len(ticket.lines)} total={ticket.total}")
            try:
                result = await self.backend.commit_order(ticket)
            except CommitFailure as exc:
                self.log.write(f"order_failed key={ticket.idempotency_key} error={exc.message!r}")
                raise
            if not result.success:
                self.log.write(f"order_rejected key={ticket.idempotency_key} message={result.message!r}")
                raise CommitFailure(result.message or "Checkout failed")
        self._pending_ticket = None
        self.log.write(f"order_done key={ticket.idempotency_key} order_id={result.order_id}")
        return ticket, result
