from __future__ import annotations

import logging
import re
from typing import Optional

from gstpos.domain.errors import ConflictError, ValidationError
from gstpos.domain.models import Product
from gstpos.domain.money import to_money
from gstpos.repositories.contracts import Page, Search

log = logging.getLogger("gstpos.catalog")

CODE_PREFIX = "QA-"
FIRST_CODE = 7001
AUTO_NAME = re.compile(r"^Saree-np-(\d+)$")
QUICK_ADD_ATTEMPTS = 3


class CatalogService:
    def __init__(self, store, settings):
        self.store = store
        self.settings = settings

    def search(self, query: str = "", page: int = 1, per_page: int = 50) -> tuple[list[Product], Page]:
        query = (query or "").strip()
        search = Search(("name", "product_code", "barcode"), query) if query else None
        result = self.store.list("products", search=search, sort="name", page=page, per_page=per_page)
        return [Product.from_record(r) for r in result.items], result

    def by_barcode(self, barcode: str) -> Optional[Product]:
        barcode = (barcode or "").strip()
        if not barcode:
            return None
        rec = self.store.first("products", {"barcode": barcode})
        return Product.from_record(rec) if rec else None

    def by_code(self, product_code: str) -> Optional[Product]:
        rec = self.store.first("products", {"product_code": product_code})
        return Product.from_record(rec) if rec else None

    def get(self, product_id: str) -> Product:
        return Product.from_record(self.store.get("products", product_id))

    def next_product_code(self) -> str:
        highest = FIRST_CODE - 1
        # codes are text, so a text sort would put QA-999 after QA-7001
        for rec in self.store.list_all("products", {"product_code": ("~", CODE_PREFIX)}):
            tail = str(rec["product_code"])[len(CODE_PREFIX):]
            if str(rec["product_code"]).startswith(CODE_PREFIX) and tail.isdigit():
                highest = max(highest, int(tail))
        return f"{CODE_PREFIX}{highest + 1}"

    def _next_auto_name(self) -> str:
        highest = 0
        for rec in self.store.list_all("products", {"name": ("~", "Saree-np-")}):
            m = AUTO_NAME.match(str(rec["name"]))
            if m:
                highest = max(highest, int(m.group(1)))
        return f"Saree-np-{highest + 1}"

    def _defaults(self, fields: dict) -> dict:
        data = dict(fields)
        data["name"] = (data.get("name") or "").strip() or self._next_auto_name()
        data["product_code"] = (data.get("product_code") or "").strip() or self.next_product_code()

        retail = to_money(data.get("retail_price"))
        mrp = to_money(data.get("mrp"))
        if retail < 0 or mrp < 0:
            raise ValidationError("Prices must be >= 0.")
        data["retail_price"] = retail
        data["mrp"] = mrp if mrp > 0 else retail

        if not data.get("cgst_pct"):
            data["cgst_pct"] = self.settings.default_cgst()
        if not data.get("sgst_pct"):
            data["sgst_pct"] = self.settings.default_sgst()
        data.setdefault("unit", "PCS")
        data.setdefault("current_stock", 0)
        data.setdefault("min_stock", 5)
        data.setdefault("active", True)
        return data

    def create_product(self, fields: dict) -> Product:
        data = self._defaults(fields)
        rec = self.store.create("products", data)
        log.info("product_created id=%s code=%s", rec["id"], rec["product_code"])
        return Product.from_record(rec)

    def update_product(self, product_id: str, fields: dict) -> Product:
        data = dict(fields)
        for key in ("retail_price", "mrp", "purchase_price"):
            if key in data:
                data[key] = to_money(data[key])
                if data[key] < 0:
                    raise ValidationError("Prices must be >= 0.")
        return Product.from_record(self.store.update("products", product_id, data))

    def quick_add(self, name: str, price, barcode: str = "") -> Product:
        """
        Create a sellable product from the checkout screen.

        A barcode that is already on file is the same item, so that product
        is re-priced instead. A product code taken by another terminal is
        retried with a fresh code.
        """
        price = to_money(price)
        if price <= 0:
            raise ValidationError("Price must be > 0.")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        barcode = (barcode or "").strip()

        existing = self.by_barcode(barcode)
        if existing is not None:
            log.info("product_quick_add_reprice id=%s barcode=%s price=%s", existing.id, barcode, price)
            return self.update_product(existing.id, {"retail_price": price, "mrp": price})

        fields = {"name": name, "barcode": barcode, "retail_price": price, "mrp": price}
        for attempt in range(1, QUICK_ADD_ATTEMPTS + 1):
            data = self._defaults(fields)
            try:
                rec = self.store.create("products", data)
            except ConflictError:
                log.warning("product_code_taken code=%s attempt=%s", data["product_code"], attempt)
                continue
            log.info("product_quick_added id=%s code=%s", rec["id"], rec["product_code"])
            return Product.from_record(rec)
        raise ConflictError(f"Could not allocate a free product code after {QUICK_ADD_ATTEMPTS} attempts.")
