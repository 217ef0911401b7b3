from __future__ import annotations

import logging
from typing import Optional

from gstpos.domain.errors import ValidationError
from gstpos.domain.models import IMPORT_NOTE, MOVEMENT_TYPES, Invoice, InvoiceLineItem, Product, StockMovement
from gstpos.repositories.contracts import Page

log = logging.getLogger("gstpos.stock")

MANUAL_TYPES = MOVEMENT_TYPES - {"sale"}


class StockService:
    """Append-only stock ledger; balances live on the product record."""

    def __init__(self, store):
        self.store = store

    def _move(
        self,
        product_id: str,
        movement_type: str,
        quantity: int,
        reference_type: str = "",
        reference_id: str = "",
        notes: str = "",
    ) -> StockMovement:
        balance = self.store.increment_field("products", product_id, "current_stock", quantity)
        rec = self.store.create(
            "stock_movements",
            {
                "product": product_id,
                "type": movement_type,
                "quantity": quantity,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "balance_after": balance,
                "notes": notes,
            },
        )
        log.info(
            "stock_moved product=%s type=%s qty=%s balance=%s ref=%s",
            product_id, movement_type, quantity, balance, reference_id,
        )
        return StockMovement.from_record(rec)

    @staticmethod
    def _tracked(invoice: Invoice, line: InvoiceLineItem) -> bool:
        return bool(line.product_id) and line.quantity > 0 and invoice.notes != IMPORT_NOTE

    def record_sale(self, invoice: Invoice, line: InvoiceLineItem) -> Optional[StockMovement]:
        if not self._tracked(invoice, line):
            return None
        return self._move(line.product_id, "sale", -line.quantity, "invoice", invoice.id)

    def record_return(self, invoice: Invoice, line: InvoiceLineItem) -> Optional[StockMovement]:
        if not self._tracked(invoice, line):
            return None
        return self._move(line.product_id, "return", line.quantity, "invoice", invoice.id, notes="revised")

    def adjust(self, product_id: str, movement_type: str, quantity: int, notes: Optional[str] = None) -> StockMovement:
        if movement_type not in MANUAL_TYPES:
            raise ValidationError(f"Movement type must be one of {', '.join(sorted(MANUAL_TYPES))}.")
        quantity = int(quantity)
        if quantity == 0:
            raise ValidationError("Quantity must not be 0.")
        return self._move(product_id, movement_type, quantity, "manual", notes=(notes or "").strip())

    def movements(
        self, product_id: Optional[str] = None, page: int = 1, per_page: int = 50
    ) -> tuple[list[StockMovement], Page]:
        filters = {"product": product_id} if product_id else None
        result = self.store.list("stock_movements", filters, sort="-created", page=page, per_page=per_page)
        return [StockMovement.from_record(r) for r in result.items], result

    def low_stock(self) -> list[Product]:
        rows = self.store.list_all("products", {"active": True}, sort="current_stock")
        products = [Product.from_record(r) for r in rows]
        return [p for p in products if p.is_low_stock]

    def negative_stock(self) -> list[Product]:
        rows = self.store.list_all("products", {"active": True, "current_stock": ("<", 0)}, sort="current_stock")
        return [Product.from_record(r) for r in rows]
