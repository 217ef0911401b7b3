from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from gstpos.domain.errors import ValidationError
from gstpos.domain.models import STATUS_COMPLETED, Invoice, InvoiceLineItem, Product
from gstpos.domain.money import ZERO

_ITEM_BATCH = 50


@dataclass(frozen=True)
class SalesSummary:
    count: int
    subtotal: Decimal
    discount: Decimal
    cgst: Decimal
    sgst: Decimal
    grand_total: Decimal


@dataclass(frozen=True)
class ProductSales:
    key: str
    name: str
    quantity: int
    total: Decimal


@dataclass(frozen=True)
class DashboardStats:
    today_count: int
    today_total: Decimal
    low_stock_count: int
    negative_stock_count: int


def _day(value: date | str) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = (value or "").strip()
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError as e:
        raise ValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD.") from e


class ReportingService:
    def __init__(self, store):
        self.store = store

    def _completed_between(self, date_from: date | str, date_to: date | str) -> list[Invoice]:
        start, end = _day(date_from), _day(date_to)
        if start > end:
            raise ValidationError("Start date must be on or before end date.")
        rows = self.store.list_all(
            "invoices",
            {
                "invoice_date": [(">=", start), ("<=", f"{end} 23:59:59.999Z")],
                "status": STATUS_COMPLETED,
            },
            sort="-invoice_date",
            expand=("customer",),
        )
        return [Invoice.from_record(r) for r in rows]

    def gst_register(self, date_from: date | str, date_to: date | str) -> list[Invoice]:
        return self._completed_between(date_from, date_to)

    def daily_summary(self, date_from: date | str, date_to: date | str) -> SalesSummary:
        invoices = self._completed_between(date_from, date_to)
        return SalesSummary(
            count=len(invoices),
            subtotal=sum((i.subtotal for i in invoices), ZERO),
            discount=sum((i.discount_total for i in invoices), ZERO),
            cgst=sum((i.cgst_total for i in invoices), ZERO),
            sgst=sum((i.sgst_total for i in invoices), ZERO),
            grand_total=sum((i.grand_total for i in invoices), ZERO),
        )

    def _items_for(self, invoice_ids: list[str]) -> list[InvoiceLineItem]:
        items: list[InvoiceLineItem] = []
        for start in range(0, len(invoice_ids), _ITEM_BATCH):
            batch = invoice_ids[start:start + _ITEM_BATCH]
            rows = self.store.list_all("invoice_items", {"invoice": ("in", batch)})
            items.extend(InvoiceLineItem.from_record(r) for r in rows)
        return items

    def product_sales(self, date_from: date | str, date_to: date | str) -> list[ProductSales]:
        invoices = self._completed_between(date_from, date_to)
        totals: dict[str, dict] = {}
        for item in self._items_for([i.id for i in invoices]):
            # quick lines have no product, so they group by name
            key = item.product_id or item.product_name
            row = totals.setdefault(key, {"name": item.product_name, "quantity": 0, "total": ZERO})
            row["quantity"] += item.quantity
            row["total"] += item.total
        result = [ProductSales(key=k, **v) for k, v in totals.items()]
        result.sort(key=lambda p: p.total, reverse=True)
        return result

    def dashboard(self, today: Optional[date] = None) -> DashboardStats:
        today = today or datetime.now(timezone.utc).date()
        invoices = self._completed_between(today, today)

        products = [Product.from_record(r) for r in self.store.list_all("products", {"active": True})]
        low = sum(1 for p in products if p.is_low_stock)
        negative = sum(1 for p in products if p.current_stock < 0)

        return DashboardStats(
            today_count=len(invoices),
            today_total=sum((i.grand_total for i in invoices), ZERO),
            low_stock_count=low,
            negative_stock_count=negative,
        )
