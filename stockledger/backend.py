"""System-of-record interface and its HTTP+JSON binding."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any, Mapping, Protocol

import httpx

from stockledger.config import API_BASE_URL, API_TIMEOUT_SECONDS
from stockledger.dashboard import DashboardFigures, parse_dashboard
from stockledger.errors import CommitFailure, StaleCeiling
from stockledger.models import BaselineRow, CatalogItem, CatalogSnapshot, CommitResult
from stockledger.quantity import to_quantity

if TYPE_CHECKING:
    from stockledger.commit import Batch, OrderTicket


class StockBackend(Protocol):
    """Messages the terminal exchanges with the system of record."""

    async def fetch_catalog(self, kind: str, date_range: tuple[date, date] | None = None) -> CatalogSnapshot: ...

    async def fetch_baseline(self, sheet: str, day: date) -> list[BaselineRow]: ...

    async def commit_batch(self, batch: Batch) -> CommitResult: ...

    async def commit_order(self, ticket: OrderTicket) -> CommitResult: ...

    async def fetch_dashboard(self, day: date) -> DashboardFigures: ...

    async def aclose(self) -> None: ...


def catalog_item_from_payload(kind: str, row: Mapping[str, Any]) -> CatalogItem:
    category_id = row.get("category_id")
    return CatalogItem(
        kind=kind,
        item_id=int(row["id"]),
        name=str(row.get("name") or ""),
        unit_price=to_quantity(row.get("price") or 0),
        quantity=to_quantity(row.get("quantity") or 0),
        image_ref=row.get("image") or None,
        category_id=int(category_id) if category_id is not None else None,
        category_name=row.get("category_name") or None,
    )


def baseline_row_from_payload(row: Mapping[str, Any]) -> BaselineRow:
    return BaselineRow(
        kind=str(row["kind"]),
        item_id=int(row["id"]),
        name=str(row.get("name") or ""),
        beginning_quantity=to_quantity(row.get("beginning_qty") or 0),
        original_delta_quantity=to_quantity(row.get("original_delta_qty") or 0),
    )


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return fallback


class HttpBackend:
    """Talks JSON over HTTP to the back-office service."""

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        timeout: float = API_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _get(self, path: str, params: Mapping[str, str] | None = None) -> dict[str, Any]:
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CommitFailure(
                _error_message(exc.response, f"GET {path} failed"),
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise CommitFailure(f"GET {path} failed: {exc}") from exc
        try:
            body = resp.json()
        except ValueError as exc:
            raise CommitFailure(f"GET {path} returned a non-JSON response", status_code=resp.status_code) from exc
        if not isinstance(body, dict):
            raise CommitFailure(f"GET {path} returned an unexpected payload", status_code=resp.status_code)
        return body

    async def _post(self, path: str, payload: Mapping[str, Any], headers: Mapping[str, str]) -> dict[str, Any]:
        try:
            resp = await self._client.post(path, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise CommitFailure(f"Could not reach server: {exc}") from exc

        if resp.status_code in (409, 412):
            raise StaleCeiling(_error_message(resp, "Stock changed on another terminal"), status_code=resp.status_code)
        if resp.status_code >= 400:
            raise CommitFailure(_error_message(resp, f"Server returned {resp.status_code}"), status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError as exc:
            raise CommitFailure("Server returned a non-JSON response", status_code=resp.status_code) from exc
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _commit_headers(idempotency_key: str, version: str | None) -> dict[str, str]:
        headers = {"Idempotency-Key": idempotency_key}
        if version:
            headers["If-Match"] = version
        return headers

    async def fetch_catalog(self, kind: str, date_range: tuple[date, date] | None = None) -> CatalogSnapshot:
        params = {"kind": kind}
        if date_range is not None:
            params["start"] = date_range[0].isoformat()
            params["end"] = date_range[1].isoformat()
        body = await self._get("/staff/catalog", params=params)
        items = tuple(catalog_item_from_payload(kind, row) for row in body.get("items", []))
        version = body.get("version")
        return CatalogSnapshot(items=items, version=str(version) if version is not None else None)

    async def fetch_baseline(self, sheet: str, day: date) -> list[BaselineRow]:
        body = await self._get("/staff/baseline", params={"sheet": sheet, "date": day.isoformat()})
        return [baseline_row_from_payload(row) for row in body.get("items", [])]

    async def commit_batch(self, batch: Batch) -> CommitResult:
        body = await self._post(
            "/staff/batches",
            batch.to_payload(),
            self._commit_headers(batch.idempotency_key, batch.catalog_version),
        )
        version = body.get("version")
        return CommitResult(
            success=bool(body.get("success", False)),
            message=str(body.get("message") or ""),
            version=str(version) if version is not None else None,
        )

    async def commit_order(self, ticket: OrderTicket) -> CommitResult:
        body = await self._post(
            "/staff/orders",
            ticket.to_payload(),
            self._commit_headers(ticket.idempotency_key, ticket.catalog_version),
        )
        order_id = body.get("order_id")
        version = body.get("version")
        return CommitResult(
            success=order_id is not None,
            message=str(body.get("message") or ""),
            order_id=str(order_id) if order_id is not None else None,
            version=str(version) if version is not None else None,
        )

    async def fetch_dashboard(self, day: date) -> DashboardFigures:
        body = await self._get("/admin/dashboard/today", params={"date": day.isoformat()})
        return parse_dashboard(body)

    async def aclose(self) -> None:
        await self._client.aclose()
