import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from stockledger.backend import HttpBackend
from stockledger.commit import Batch
from stockledger.dashboard import DashboardFigures
from stockledger.errors import CommitFailure, StaleCeiling
from stockledger.models import BatchLine
from stockledger.session import TerminalSession

from tests.conftest import TODAY


def make_backend(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://pos.test")
    return HttpBackend(client=client)


def sample_batch(version="4"):
    return Batch(
        sheet="usage",
        lines=(BatchLine("inventory", 1, Decimal("10"), Decimal("2.5"), Decimal("7.5")),),
        catalog_version=version,
        idempotency_key="key-1",
    )


def test_fetch_catalog_parses_items_and_version():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        return httpx.Response(
            200,
            json={
                "version": 12,
                "items": [
                    {"id": 1, "name": "Milkfish", "price": "50.00", "quantity": "10", "category_id": 1, "category_name": "Grilled"},
                    {"id": 2, "name": "Lumpia", "price": 35, "quantity": 0},
                ],
            },
        )

    async def scenario():
        backend = make_backend(handler)
        try:
            return await backend.fetch_catalog("product")
        finally:
            await backend.aclose()

    snapshot = asyncio.run(scenario())
    assert seen["url"] == "http://pos.test/staff/catalog?kind=product"
    assert snapshot.version == "12"
    assert snapshot.items[0].unit_price == Decimal("50.00")
    assert snapshot.items[0].category_name == "Grilled"
    assert snapshot.items[1].quantity == Decimal("0")


def test_fetch_baseline_sends_sheet_and_date():
    def handler(request):
        assert request.url.params["sheet"] == "delivery"
        assert request.url.params["date"] == TODAY.isoformat()
        return httpx.Response(
            200,
            json={"items": [{"kind": "product", "id": 2, "name": "Pork", "beginning_qty": "20", "original_delta_qty": "5"}]},
        )

    rows = asyncio.run(make_backend(handler).fetch_baseline("delivery", TODAY))
    assert rows[0].key == ("product", 2)
    assert rows[0].original_delta_quantity == Decimal("5")


def test_commit_batch_sends_idempotency_and_version_headers():
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "message": "Inventory usage saved successfully", "version": 5})

    result = asyncio.run(make_backend(handler).commit_batch(sample_batch()))
    assert result.success
    assert result.version == "5"
    assert seen["headers"]["Idempotency-Key"] == "key-1"
    assert seen["headers"]["If-Match"] == "4"
    assert seen["body"]["items"][0] == {
        "kind": "inventory",
        "id": 1,
        "beginning_qty": "10",
        "delta_qty": "2.5",
        "ending_qty": "7.5",
    }


@pytest.mark.parametrize("status", [409, 412])
def test_version_conflict_raises_stale_ceiling(status):
    def handler(request):
        return httpx.Response(status, json={"message": "Stock changed"})

    with pytest.raises(StaleCeiling) as exc_info:
        asyncio.run(make_backend(handler).commit_batch(sample_batch()))
    assert exc_info.value.status_code == status
    assert exc_info.value.message == "Stock changed"


def test_server_error_carries_server_message():
    def handler(request):
        return httpx.Response(422, json={"message": "Not enough stock available for product ID 3"})

    with pytest.raises(CommitFailure) as exc_info:
        asyncio.run(make_backend(handler).commit_batch(sample_batch()))
    assert exc_info.value.message == "Not enough stock available for product ID 3"
    assert not isinstance(exc_info.value, StaleCeiling)


def test_transport_error_becomes_commit_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CommitFailure) as exc_info:
        asyncio.run(make_backend(handler).commit_batch(sample_batch()))
    assert "Could not reach server" in exc_info.value.message


def test_non_json_response_is_a_failure():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(CommitFailure):
        asyncio.run(make_backend(handler).commit_batch(sample_batch()))


def test_fetch_dashboard_parses_figures():
    def handler(request):
        assert request.url.path == "/admin/dashboard/today"
        return httpx.Response(200, json={"total_sales": "1234.50", "order_count": 7, "items_sold": 19, "low_stock_count": 2})

    figures = asyncio.run(make_backend(handler).fetch_dashboard(TODAY))
    assert figures.total_sales == Decimal("1234.50")
    assert figures.summary() == "Sales 1,234.50 | Orders 7 | Items 19 | Low stock 2"


def test_maintenance_page_on_catalog_fetch_is_a_failure():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(CommitFailure) as exc_info:
        asyncio.run(make_backend(handler).fetch_catalog("product"))
    assert exc_info.value.message == "GET /staff/catalog returned a non-JSON response"
    assert exc_info.value.status_code == 200


def test_list_payload_on_baseline_fetch_is_a_failure():
    def handler(request):
        return httpx.Response(200, json=[{"id": 1}])

    with pytest.raises(CommitFailure) as exc_info:
        asyncio.run(make_backend(handler).fetch_baseline("delivery", TODAY))
    assert exc_info.value.message == "GET /staff/baseline returned an unexpected payload"


def test_dashboard_refresh_keeps_figures_when_server_sends_html(debug_log):
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    session = TerminalSession(make_backend(handler), debug_log, today=TODAY)
    previous = DashboardFigures(order_count=3)
    session.dashboard = previous

    figures = asyncio.run(session.refresh_dashboard())
    assert figures is previous
    assert "dashboard_failed" in debug_log.path.read_text()
