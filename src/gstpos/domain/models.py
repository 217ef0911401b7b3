from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from gstpos.domain.errors import ValidationError
from gstpos.domain.money import to_decimal, to_money

STATUS_DRAFT = "draft"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_REVISED = "revised"
INVOICE_STATUSES = {STATUS_DRAFT, STATUS_COMPLETED, STATUS_CANCELLED, STATUS_REVISED}

PAYMENT_METHODS = ("cash", "upi", "card", "credit")

MOVEMENT_TYPES = {"sale", "purchase", "adjustment", "opening", "return"}

CASH_CUSTOMER_MOBILE = "0000000000"
IMPORT_NOTE = "__import__"


def _text(record: dict, key: str) -> str:
    v = record.get(key)
    return "" if v is None else str(v)


def _int(record: dict, key: str) -> int:
    v = record.get(key)
    if v is None or v == "":
        return 0
    return int(float(v))


def _rate(record: dict, key: str) -> Optional[Decimal]:
    # number fields read back as 0 when never set, so 0 counts as omitted
    v = record.get(key)
    if v is None or v == "" or to_decimal(v) == 0:
        return None
    return to_decimal(v)


def _require(record: dict, *keys: str) -> None:
    for k in keys:
        if record.get(k) in (None, ""):
            raise ValidationError(f"Record is missing required field '{k}'.")


@dataclass(frozen=True)
class Product:
    id: str
    product_code: str
    name: str
    retail_price: Decimal
    mrp: Decimal
    cgst_pct: Optional[Decimal] = None
    sgst_pct: Optional[Decimal] = None
    hsn_code: str = ""
    barcode: str = ""
    unit: str = "PCS"
    purchase_price: Decimal = Decimal("0.00")
    current_stock: int = 0
    min_stock: int = 0
    active: bool = True

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock < self.min_stock

    @classmethod
    def from_record(cls, r: dict) -> "Product":
        _require(r, "id", "product_code", "name")
        return cls(
            id=str(r["id"]),
            product_code=str(r["product_code"]),
            name=str(r["name"]),
            retail_price=to_money(r.get("retail_price")),
            mrp=to_money(r.get("mrp")),
            cgst_pct=_rate(r, "cgst_pct"),
            sgst_pct=_rate(r, "sgst_pct"),
            hsn_code=_text(r, "hsn_code"),
            barcode=_text(r, "barcode"),
            unit=_text(r, "unit") or "PCS",
            purchase_price=to_money(r.get("purchase_price")),
            current_stock=_int(r, "current_stock"),
            min_stock=_int(r, "min_stock"),
            active=bool(r.get("active", True)),
        )


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    mobile: str
    email: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    gstin: str = ""

    @property
    def is_cash(self) -> bool:
        return self.mobile == CASH_CUSTOMER_MOBILE

    @classmethod
    def from_record(cls, r: dict) -> "Customer":
        _require(r, "id", "name", "mobile")
        return cls(
            id=str(r["id"]),
            name=str(r["name"]),
            mobile=str(r["mobile"]),
            email=_text(r, "email"),
            address=_text(r, "address"),
            city=_text(r, "city"),
            state=_text(r, "state"),
            gstin=_text(r, "gstin"),
        )

    def to_fields(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mobile": self.mobile,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "gstin": self.gstin,
        }


@dataclass(frozen=True)
class Supplier:
    id: str
    supplier_code: str
    name: str
    mobile: str = ""
    gstin: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    active: bool = True

    @classmethod
    def from_record(cls, r: dict) -> "Supplier":
        _require(r, "id", "supplier_code", "name")
        return cls(
            id=str(r["id"]),
            supplier_code=str(r["supplier_code"]),
            name=str(r["name"]),
            mobile=_text(r, "mobile"),
            gstin=_text(r, "gstin"),
            address=_text(r, "address"),
            city=_text(r, "city"),
            state=_text(r, "state"),
            active=bool(r.get("active", True)),
        )


@dataclass(frozen=True)
class Invoice:
    id: str
    invoice_number: str
    invoice_date: str
    customer_id: str
    subtotal: Decimal
    discount_total: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    grand_total: Decimal
    amount_paid: Decimal
    payment_method: str
    status: str
    adjustment: Decimal = Decimal("0.00")
    tax_type: str = "GST"
    notes: str = ""
    created_by: str = ""
    customer: Optional[Customer] = None

    @property
    def is_revised(self) -> bool:
        return self.status == STATUS_REVISED

    @property
    def adjustment_base(self) -> Decimal:
        """Amount the post-sale adjustment is stepped against."""
        return self.subtotal - self.discount_total

    @classmethod
    def from_record(cls, r: dict) -> "Invoice":
        _require(r, "id", "invoice_number", "invoice_date", "customer", "status")
        status = str(r["status"])
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"Unknown invoice status '{status}'.")
        expanded = (r.get("expand") or {}).get("customer")
        return cls(
            id=str(r["id"]),
            invoice_number=str(r["invoice_number"]),
            invoice_date=str(r["invoice_date"]),
            customer_id=str(r["customer"]),
            subtotal=to_money(r.get("subtotal")),
            discount_total=to_money(r.get("discount_total")),
            cgst_total=to_money(r.get("cgst_total")),
            sgst_total=to_money(r.get("sgst_total")),
            grand_total=to_money(r.get("grand_total")),
            amount_paid=to_money(r.get("amount_paid")),
            payment_method=_text(r, "payment_method") or "cash",
            status=status,
            adjustment=to_money(r.get("adjustment")),
            tax_type=_text(r, "tax_type") or "GST",
            notes=_text(r, "notes"),
            created_by=_text(r, "created_by"),
            customer=Customer.from_record(expanded) if expanded else None,
        )


@dataclass(frozen=True)
class InvoiceLineItem:
    id: str
    invoice_id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    taxable_amount: Decimal
    total: Decimal
    product_code: str = ""
    hsn_code: str = ""
    barcode: str = ""
    unit: str = "PCS"
    mrp: Decimal = Decimal("0.00")
    cgst_pct: Optional[Decimal] = None
    cgst_amount: Decimal = Decimal("0.00")
    sgst_pct: Optional[Decimal] = None
    sgst_amount: Decimal = Decimal("0.00")

    @classmethod
    def from_record(cls, r: dict) -> "InvoiceLineItem":
        _require(r, "id", "invoice", "product_name")
        return cls(
            id=str(r["id"]),
            invoice_id=str(r["invoice"]),
            product_id=_text(r, "product"),
            product_name=str(r["product_name"]),
            quantity=_int(r, "quantity"),
            unit_price=to_money(r.get("unit_price")),
            taxable_amount=to_money(r.get("taxable_amount")),
            total=to_money(r.get("total")),
            product_code=_text(r, "product_code"),
            hsn_code=_text(r, "hsn_code"),
            barcode=_text(r, "barcode"),
            unit=_text(r, "unit") or "PCS",
            mrp=to_money(r.get("mrp")),
            cgst_pct=_rate(r, "cgst_pct"),
            cgst_amount=to_money(r.get("cgst_amount")),
            sgst_pct=_rate(r, "sgst_pct"),
            sgst_amount=to_money(r.get("sgst_amount")),
        )


@dataclass(frozen=True)
class StockMovement:
    id: str
    product_id: str
    type: str
    quantity: int
    balance_after: int
    reference_type: str = ""
    reference_id: str = ""
    notes: str = ""

    @classmethod
    def from_record(cls, r: dict) -> "StockMovement":
        _require(r, "id", "product", "type")
        return cls(
            id=str(r["id"]),
            product_id=str(r["product"]),
            type=str(r["type"]),
            quantity=_int(r, "quantity"),
            balance_after=_int(r, "balance_after"),
            reference_type=_text(r, "reference_type"),
            reference_id=_text(r, "reference_id"),
            notes=_text(r, "notes"),
        )


@dataclass(frozen=True)
class InvoiceNumber:
    number: str
    counter: int
