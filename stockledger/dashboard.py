"""Read-only dashboard figures, refreshed on a timer and never shared with cart state."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from stockledger.quantity import ZERO, format_money, format_quantity, to_quantity


@dataclass(frozen=True)
class DashboardFigures:
    total_sales: Decimal = ZERO
    order_count: int = 0
    items_sold: Decimal = ZERO
    low_stock_count: int = 0

    def summary(self) -> str:
        return (
            f"Sales {format_money(self.total_sales)} | Orders {self.order_count} | "
            f"Items {format_quantity(self.items_sold)} | Low stock {self.low_stock_count}"
        )


def parse_dashboard(payload: Mapping[str, Any]) -> DashboardFigures:
    return DashboardFigures(
        total_sales=to_quantity(payload.get("total_sales") or 0),
        order_count=int(payload.get("order_count") or 0),
        items_sold=to_quantity(payload.get("items_sold") or 0),
        low_stock_count=int(payload.get("low_stock_count") or 0),
    )
