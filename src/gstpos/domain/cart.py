from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from gstpos.domain.discount import clamp_discount, next_discount, prev_discount
from gstpos.domain.errors import ValidationError
from gstpos.domain.gst import DEFAULT_CGST_PCT, DEFAULT_SGST_PCT, extract_tax
from gstpos.domain.models import PAYMENT_METHODS, Customer, Invoice, InvoiceLineItem, Product
from gstpos.domain.money import ZERO, round2, to_decimal, to_money

QUICK_PREFIX = "quick_"
QUICK_NAME = re.compile(r"^Saree - (\d+)$")


class CartState(Enum):
    EMPTY = "empty"
    POPULATED = "populated"


def _quick_id() -> str:
    return QUICK_PREFIX + uuid.uuid4().hex[:12]


@dataclass
class CartLineItem:
    product_id: str
    product_code: str
    name: str
    unit_price: Decimal
    quantity: int = 1
    hsn_code: str = ""
    barcode: str = ""
    mrp: Decimal = ZERO
    cgst_pct: Decimal = DEFAULT_CGST_PCT
    sgst_pct: Decimal = DEFAULT_SGST_PCT
    unit: str = "PCS"
    line_total: Decimal = ZERO
    taxable: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    sgst_amount: Decimal = ZERO

    @property
    def is_quick(self) -> bool:
        return self.product_id.startswith(QUICK_PREFIX)

    def recalc(self) -> None:
        gross = round2(self.unit_price * self.quantity)
        gst = extract_tax(gross, self.cgst_pct, self.sgst_pct)
        self.line_total = gross
        self.taxable = gst.taxable
        self.cgst_amount = gst.cgst
        self.sgst_amount = gst.sgst

    def to_snapshot(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_code": self.product_code,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "hsn_code": self.hsn_code,
            "barcode": self.barcode,
            "mrp": str(self.mrp),
            "cgst_pct": str(self.cgst_pct),
            "sgst_pct": str(self.sgst_pct),
            "unit": self.unit,
        }

    @classmethod
    def from_snapshot(cls, data: dict) -> "CartLineItem":
        item = cls(
            product_id=str(data["product_id"]),
            product_code=str(data.get("product_code", "")),
            name=str(data["name"]),
            unit_price=to_money(data.get("unit_price")),
            quantity=max(1, int(data.get("quantity", 1))),
            hsn_code=str(data.get("hsn_code", "")),
            barcode=str(data.get("barcode", "")),
            mrp=to_money(data.get("mrp")),
            cgst_pct=to_decimal(data.get("cgst_pct", DEFAULT_CGST_PCT)),
            sgst_pct=to_decimal(data.get("sgst_pct", DEFAULT_SGST_PCT)),
            unit=str(data.get("unit", "PCS")),
        )
        item.recalc()
        return item


class Cart:
    """
    Checkout cart for one session.

    Lines keep insertion order and are keyed by product id. Totals are folds
    over the current lines and are never cached. The discount is re-clamped
    into [0, subtotal] after every mutation.
    """

    def __init__(self):
        self.items: list[CartLineItem] = []
        self.customer: Optional[Customer] = None
        self.customer_mobile = ""
        self.customer_name = ""
        self.discount_amount: Decimal = ZERO
        self.payment_method = "cash"
        self.step = "products"
        self.editing_invoice_id: Optional[str] = None
        self.editing_invoice_number: Optional[str] = None

    # ---------- State ----------
    @property
    def state(self) -> CartState:
        return CartState.POPULATED if self.items else CartState.EMPTY

    @property
    def is_editing(self) -> bool:
        return bool(self.editing_invoice_id)

    def _line(self, index: int) -> CartLineItem:
        if not 0 <= index < len(self.items):
            raise IndexError(f"Cart line {index} does not exist.")
        return self.items[index]

    def _changed(self) -> None:
        self.discount_amount = clamp_discount(self.discount_amount, self.subtotal)

    # ---------- Lines ----------
    def add_item(self, product: Product) -> CartLineItem:
        for existing in self.items:
            if existing.product_id == product.id:
                existing.quantity += 1
                existing.recalc()
                self._changed()
                return existing

        price = product.retail_price if product.retail_price > 0 else product.mrp
        item = CartLineItem(
            product_id=product.id,
            product_code=product.product_code,
            name=product.name,
            unit_price=to_money(price),
            quantity=1,
            hsn_code=product.hsn_code,
            barcode=product.barcode,
            mrp=product.mrp,
            cgst_pct=product.cgst_pct or DEFAULT_CGST_PCT,
            sgst_pct=product.sgst_pct or DEFAULT_SGST_PCT,
            unit=product.unit or "PCS",
        )
        item.recalc()
        self.items.append(item)
        self._changed()
        return item

    def add_quick_lines(self, count: int = 3) -> None:
        """Append unpriced placeholder lines for items sold without a catalog entry."""
        highest = 0
        for item in self.items:
            m = QUICK_NAME.match(item.name)
            if m:
                highest = max(highest, int(m.group(1)))
        for i in range(1, count + 1):
            item = CartLineItem(product_id=_quick_id(), product_code="", name=f"Saree - {highest + i}", unit_price=ZERO)
            item.recalc()
            self.items.append(item)
        self._changed()

    def remove_item(self, index: int) -> None:
        self._line(index)
        del self.items[index]
        self._changed()

    def update_quantity(self, index: int, qty: int) -> None:
        item = self._line(index)
        item.quantity = max(1, int(qty))
        item.recalc()
        self._changed()

    def update_price(self, index: int, price) -> None:
        item = self._line(index)
        item.unit_price = to_money(price)
        item.recalc()
        self._changed()

    @property
    def zero_priced_count(self) -> int:
        return sum(1 for i in self.items if i.unit_price <= 0)

    # ---------- Totals ----------
    @property
    def subtotal(self) -> Decimal:
        return sum((i.line_total for i in self.items), ZERO)

    @property
    def taxable_total(self) -> Decimal:
        return sum((i.taxable for i in self.items), ZERO)

    @property
    def cgst_total(self) -> Decimal:
        return sum((i.cgst_amount for i in self.items), ZERO)

    @property
    def sgst_total(self) -> Decimal:
        return sum((i.sgst_amount for i in self.items), ZERO)

    @property
    def grand_total(self) -> Decimal:
        return self.subtotal - self.discount_amount

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.items)

    # ---------- Discount ----------
    def discount_up(self) -> Decimal:
        self.discount_amount = next_discount(self.subtotal, self.discount_amount)
        self._changed()
        return self.discount_amount

    def discount_down(self) -> Decimal:
        self.discount_amount = prev_discount(self.subtotal, self.discount_amount)
        self._changed()
        return self.discount_amount

    def set_discount(self, amount) -> Decimal:
        self.discount_amount = clamp_discount(to_money(amount), self.subtotal)
        return self.discount_amount

    # ---------- Checkout fields ----------
    def set_payment_method(self, method: str) -> None:
        method = (method or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method '{method}'.")
        self.payment_method = method

    def set_customer(self, customer: Optional[Customer]) -> None:
        self.customer = customer
        self.customer_mobile = customer.mobile if customer else ""
        self.customer_name = customer.name if customer else ""

    # ---------- Edit / reset ----------
    def load_for_edit(self, invoice: Invoice, items: Iterable[InvoiceLineItem]) -> None:
        self.editing_invoice_id = invoice.id
        self.editing_invoice_number = invoice.invoice_number
        self.set_customer(invoice.customer)
        self.payment_method = invoice.payment_method or "cash"
        self.discount_amount = invoice.discount_total
        self.step = "products"

        self.items = []
        for li in items:
            # rates may have changed since the sale; tax is recomputed, never copied
            item = CartLineItem(
                product_id=li.product_id or _quick_id(),
                product_code=li.product_code,
                name=li.product_name,
                unit_price=li.unit_price,
                quantity=max(1, li.quantity),
                hsn_code=li.hsn_code,
                barcode=li.barcode,
                mrp=li.mrp,
                cgst_pct=li.cgst_pct or DEFAULT_CGST_PCT,
                sgst_pct=li.sgst_pct or DEFAULT_SGST_PCT,
                unit=li.unit or "PCS",
            )
            item.recalc()
            self.items.append(item)
        self._changed()

    def clear(self, keep_customer: bool = False) -> None:
        self.items = []
        self.discount_amount = ZERO
        self.step = "products"
        self.editing_invoice_id = None
        self.editing_invoice_number = None
        if not keep_customer:
            self.set_customer(None)
            self.payment_method = "cash"

    # ---------- Snapshot ----------
    def to_snapshot(self) -> dict:
        return {
            "items": [i.to_snapshot() for i in self.items],
            "customer": self.customer.to_fields() if self.customer else None,
            "customer_mobile": self.customer_mobile,
            "customer_name": self.customer_name,
            "discount_amount": str(self.discount_amount),
            "payment_method": self.payment_method,
            "step": self.step,
            "editing_invoice_id": self.editing_invoice_id,
            "editing_invoice_number": self.editing_invoice_number,
        }

    @classmethod
    def from_snapshot(cls, data: dict) -> "Cart":
        cart = cls()
        cart.items = [CartLineItem.from_snapshot(d) for d in data.get("items") or []]
        customer = data.get("customer")
        cart.customer = Customer.from_record(customer) if customer else None
        cart.customer_mobile = str(data.get("customer_mobile") or "")
        cart.customer_name = str(data.get("customer_name") or "")
        cart.discount_amount = to_money(data.get("discount_amount"))
        cart.payment_method = str(data.get("payment_method") or "cash")
        cart.step = str(data.get("step") or "products")
        cart.editing_invoice_id = data.get("editing_invoice_id") or None
        cart.editing_invoice_number = data.get("editing_invoice_number") or None
        cart._changed()
        return cart
