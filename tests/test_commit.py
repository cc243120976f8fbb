import asyncio
from decimal import Decimal

import pytest

from stockledger import engine, sheet
from stockledger.commit import (
    BatchCommitter,
    CommitGate,
    build_cook_batch,
    build_order_ticket,
    build_sheet_batch,
)
from stockledger.engine import AddItem, CartState, SetQuantity
from stockledger.errors import CommitFailure, CommitInFlight, PaymentError
from stockledger.models import CommitResult
from stockledger.sheet import SetDelta, SheetState

from tests.conftest import baseline

MILKFISH = ("product", 1)
LUMPIA = ("product", 2)


class FakeBackend:
    def __init__(self, failures=0):
        self.failures = failures
        self.batches = []
        self.tickets = []
        self.release = None

    async def commit_batch(self, batch):
        self.batches.append(batch)
        if self.release is not None:
            await self.release.wait()
        if self.failures:
            self.failures -= 1
            raise CommitFailure("Server unavailable", status_code=503)
        return CommitResult(success=True, message="Saved", version="7")

    async def commit_order(self, ticket):
        self.tickets.append(ticket)
        if self.failures:
            self.failures -= 1
            raise CommitFailure("Server unavailable", status_code=503)
        return CommitResult(success=True, message="Order created successfully!", order_id="abc123", version="8")


def filled_cart(catalog_items, milkfish="2", lumpia="1"):
    state = CartState.from_snapshot("pos", catalog_items)
    for event in (AddItem(MILKFISH), SetQuantity(MILKFISH, milkfish), AddItem(LUMPIA), SetQuantity(LUMPIA, lumpia)):
        state = engine.reduce(state, event).state
    return state


def delivery_with_edit():
    state = SheetState.from_baseline(
        "delivery",
        [
            baseline("product", 2, "Lumpia", "20", "5"),
            baseline("inventory", 1, "Rice (kg)", "25.5", "0"),
        ],
    )
    return sheet.reduce(state, SetDelta(LUMPIA, "8")).state


def test_sheet_batch_contains_only_dirty_records():
    batch = build_sheet_batch(delivery_with_edit(), catalog_version="3")
    assert batch.sheet == "delivery"
    assert batch.catalog_version == "3"
    assert [line.to_payload() for line in batch.lines] == [
        {"kind": "product", "id": 2, "beginning_qty": "20", "delta_qty": "8", "ending_qty": "28"}
    ]
    assert len(batch.idempotency_key) == 32


def test_clean_sheet_builds_no_batch():
    assert build_sheet_batch(SheetState(mode="usage")) is None


def test_cook_batch_starts_from_cooked_so_far(catalog_items):
    queue = filled_cart(catalog_items, milkfish="4")
    cooked = SheetState.from_baseline("cook", [baseline("product", 1, "Milkfish", "0", "3")])
    batch = build_cook_batch(queue, cooked)
    by_key = {line.key: line for line in batch.lines}
    assert by_key[MILKFISH].beginning_quantity == Decimal("3")
    assert by_key[MILKFISH].delta_quantity == Decimal("4")
    assert by_key[MILKFISH].ending_quantity == Decimal("7")
    assert by_key[LUMPIA].beginning_quantity == Decimal("0")


def test_order_ticket_totals_and_change(catalog_items):
    ticket = build_order_ticket(filled_cart(catalog_items), "cash", "200", tax_rate=Decimal("0.12"), discount="5")
    assert ticket.subtotal == Decimal("135.00")
    assert ticket.tax == Decimal("16.20")
    assert ticket.total == Decimal("146.20")
    assert ticket.change == Decimal("53.80")
    assert ticket.to_payload()["payment_method"] == "cash"


def test_cash_below_total_is_rejected(catalog_items):
    with pytest.raises(PaymentError):
        build_order_ticket(filled_cart(catalog_items), "cash", "100")


def test_wallet_payment_settles_exact_total(catalog_items):
    ticket = build_order_ticket(filled_cart(catalog_items), "gcash", "0")
    assert ticket.payment_amount == ticket.total
    assert ticket.change == Decimal("0")


def test_unknown_method_and_empty_cart(catalog_items):
    with pytest.raises(PaymentError):
        build_order_ticket(filled_cart(catalog_items), "bitcoin", "500")
    with pytest.raises(PaymentError):
        build_order_ticket(CartState.from_snapshot("pos", catalog_items), "cash", "500")


def test_commit_gate_refuses_second_holder():
    gate = CommitGate()
    with gate.hold():
        assert gate.busy
        with pytest.raises(CommitInFlight):
            with gate.hold():
                pass
    assert not gate.busy


def test_retry_after_failure_reuses_idempotency_key(debug_log):
    backend = FakeBackend(failures=1)
    committer = BatchCommitter(backend, debug_log)
    batch = build_sheet_batch(delivery_with_edit(), catalog_version="3")

    async def scenario():
        with pytest.raises(CommitFailure):
            await committer.submit(batch)
        retry = build_sheet_batch(delivery_with_edit(), catalog_version="4")
        return await committer.submit(retry)

    sent, result = asyncio.run(scenario())
    assert result.success
    assert backend.batches[0].idempotency_key == backend.batches[1].idempotency_key
    assert sent.catalog_version == "4"
    assert "commit_failed" in debug_log.path.read_text()


def test_order_retry_reuses_key_with_fresh_version(catalog_items, debug_log):
    backend = FakeBackend(failures=1)
    committer = BatchCommitter(backend, debug_log)
    cart = filled_cart(catalog_items)

    async def scenario():
        with pytest.raises(CommitFailure):
            await committer.submit_order(build_order_ticket(cart, "cash", "500", catalog_version="1"))
        return await committer.submit_order(build_order_ticket(cart, "cash", "500", catalog_version="2"))

    ticket, result = asyncio.run(scenario())
    assert result.order_id == "abc123"
    assert backend.tickets[0].idempotency_key == backend.tickets[1].idempotency_key
    assert ticket.catalog_version == "2"


def test_second_commit_while_first_in_flight_is_refused(debug_log):
    backend = FakeBackend()
    committer = BatchCommitter(backend, debug_log)

    async def scenario():
        backend.release = asyncio.Event()
        first = asyncio.create_task(committer.submit(build_sheet_batch(delivery_with_edit())))
        await asyncio.sleep(0)
        with pytest.raises(CommitInFlight):
            await committer.submit(build_sheet_batch(delivery_with_edit()))
        backend.release.set()
        return await first

    _, result = asyncio.run(scenario())
    assert result.success
    assert len(backend.batches) == 1
