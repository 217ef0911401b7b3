from __future__ import annotations

import logging
from typing import Optional

from gstpos.domain.errors import ConflictError, ValidationError
from gstpos.domain.models import CASH_CUSTOMER_MOBILE, Customer, Supplier
from gstpos.repositories.contracts import Page, Search

log = logging.getLogger("gstpos.customers")


def _clean_mobile(mobile: str) -> str:
    return "".join(ch for ch in (mobile or "") if ch.isdigit())


class CustomerService:
    def __init__(self, store, settings):
        self.store = store
        self.settings = settings

    # ---------- Customers ----------
    def by_mobile(self, mobile: str) -> Optional[Customer]:
        mobile = _clean_mobile(mobile)
        if not mobile:
            return None
        rec = self.store.first("customers", {"mobile": mobile})
        return Customer.from_record(rec) if rec else None

    def search(self, query: str = "", page: int = 1, per_page: int = 50) -> tuple[list[Customer], Page]:
        query = (query or "").strip()
        search = Search(("name", "mobile"), query) if query else None
        result = self.store.list("customers", search=search, sort="name", page=page, per_page=per_page)
        return [Customer.from_record(r) for r in result.items], result

    def create(self, name: str, mobile: str, **extra) -> Customer:
        name = (name or "").strip()
        mobile = _clean_mobile(mobile)
        if not name or not mobile:
            raise ValidationError("Customer name and mobile are required.")
        fields = {"name": name, "mobile": mobile, **extra}
        fields.setdefault("state", self.settings.default_state())
        rec = self.store.create("customers", fields)
        log.info("customer_created id=%s", rec["id"])
        return Customer.from_record(rec)

    def update(self, customer_id: str, fields: dict) -> Customer:
        data = dict(fields)
        if "mobile" in data:
            data["mobile"] = _clean_mobile(data["mobile"])
        return Customer.from_record(self.store.update("customers", customer_id, data))

    def upsert_by_mobile(self, name: str, mobile: str, **extra) -> Customer:
        try:
            return self.create(name, mobile, **extra)
        except ConflictError:
            existing = self.by_mobile(mobile)
            if existing is None:
                raise
            log.info("customer_conflict_fallback id=%s", existing.id)
            return self.update(existing.id, {"name": (name or "").strip() or existing.name, **extra})

    def cash_customer(self) -> Customer:
        existing = self.by_mobile(CASH_CUSTOMER_MOBILE)
        if existing:
            return existing
        try:
            return self.create("Cash", CASH_CUSTOMER_MOBILE)
        except ConflictError:
            # created by another terminal in the meantime
            existing = self.by_mobile(CASH_CUSTOMER_MOBILE)
            if existing is None:
                raise
            return existing

    def resolve_for_checkout(self, mobile: str = "", name: str = "", current: Optional[Customer] = None) -> Customer:
        """
        Pick the customer an invoice is billed to.

        A usable mobile (10+ digits, not the cash placeholder) selects or
        creates that customer. Otherwise the customer already bound to the
        cart is kept, falling back to the shared cash customer.
        """
        mobile = _clean_mobile(mobile)
        if len(mobile) >= 10 and mobile != CASH_CUSTOMER_MOBILE:
            existing = self.by_mobile(mobile)
            if existing:
                return existing
            return self.upsert_by_mobile((name or "").strip() or "Customer", mobile)
        if current is not None:
            return current
        return self.cash_customer()

    # ---------- Suppliers ----------
    def search_suppliers(self, query: str = "", page: int = 1, per_page: int = 50) -> tuple[list[Supplier], Page]:
        query = (query or "").strip()
        search = Search(("name", "gstin", "mobile"), query) if query else None
        result = self.store.list("suppliers", search=search, sort="name", page=page, per_page=per_page)
        return [Supplier.from_record(r) for r in result.items], result

    def create_supplier(self, supplier_code: str, name: str, **extra) -> Supplier:
        supplier_code = (supplier_code or "").strip()
        name = (name or "").strip()
        if not supplier_code or not name:
            raise ValidationError("Supplier code and name are required.")
        fields = {"supplier_code": supplier_code, "name": name, "active": True, **extra}
        try:
            rec = self.store.create("suppliers", fields)
        except ConflictError:
            existing = self.store.first("suppliers", {"supplier_code": supplier_code})
            if existing is None:
                raise
            log.info("supplier_conflict_fallback id=%s", existing["id"])
            rec = self.store.update("suppliers", existing["id"], fields)
        return Supplier.from_record(rec)

    def update_supplier(self, supplier_id: str, fields: dict) -> Supplier:
        return Supplier.from_record(self.store.update("suppliers", supplier_id, fields))
