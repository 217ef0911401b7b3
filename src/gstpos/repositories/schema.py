from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Field:
    name: str
    type: str = "text"  # text | number | bool | date | relation | select
    required: bool = False
    collection: Optional[str] = None  # relation target
    values: tuple[str, ...] = ()  # select options


@dataclass(frozen=True)
class Collection:
    name: str
    fields: tuple[Field, ...]
    unique: tuple[str, ...] = ()
    indexes: tuple[str, ...] = ()
    by_name: dict[str, Field] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "by_name", {f.name: f for f in self.fields})

    def get_field(self, name: str) -> Optional[Field]:
        return self.by_name.get(name)


def _text(name: str, required: bool = False) -> Field:
    return Field(name, "text", required)


def _num(name: str, required: bool = False) -> Field:
    return Field(name, "number", required)


PRODUCTS = Collection(
    "products",
    fields=(
        _text("product_code", True),
        _text("name", True),
        _text("description"),
        _text("hsn_code"),
        _num("purchase_price"),
        _num("retail_price", True),
        _num("mrp", True),
        _num("wholesale_price"),
        _num("discount_pct"),
        _num("cgst_pct"),
        _num("sgst_pct"),
        _text("unit"),
        _text("barcode"),
        _num("min_stock"),
        _num("current_stock"),
        Field("active", "bool"),
    ),
    unique=("product_code",),
    indexes=("barcode", "name"),
)

SUPPLIERS = Collection(
    "suppliers",
    fields=(
        _text("supplier_code", True),
        _text("name", True),
        _text("mobile"),
        _text("email"),
        _text("gstin"),
        _text("address"),
        _text("city"),
        _text("state"),
        _text("postal_code"),
        Field("active", "bool"),
    ),
    unique=("supplier_code",),
)

CUSTOMERS = Collection(
    "customers",
    fields=(
        _text("name", True),
        _text("mobile", True),
        _text("email"),
        _text("address"),
        _text("city"),
        _text("state"),
        _text("gstin"),
        _text("notes"),
    ),
    unique=("mobile",),
    indexes=("name",),
)

INVOICES = Collection(
    "invoices",
    fields=(
        # not unique: revisions share the number
        _text("invoice_number", True),
        Field("invoice_date", "date", True),
        Field("customer", "relation", True, collection="customers"),
        _text("tax_type"),
        _num("subtotal", True),
        _num("discount_total"),
        _num("cgst_total"),
        _num("sgst_total"),
        _num("grand_total", True),
        _num("amount_paid"),
        _num("adjustment"),
        Field("payment_method", "select", values=("cash", "upi", "card", "credit")),
        Field("status", "select", True, values=("draft", "completed", "cancelled", "revised")),
        _text("notes"),
        _text("created_by"),
    ),
    indexes=("invoice_number", "invoice_date", "customer"),
)

INVOICE_ITEMS = Collection(
    "invoice_items",
    fields=(
        Field("invoice", "relation", True, collection="invoices"),
        Field("product", "relation", collection="products"),
        _text("product_name", True),
        _text("product_code"),
        _text("hsn_code"),
        _text("barcode"),
        _num("quantity", True),
        _text("unit"),
        _num("unit_price", True),
        _num("mrp"),
        _num("taxable_amount", True),
        _num("cgst_pct"),
        _num("cgst_amount"),
        _num("sgst_pct"),
        _num("sgst_amount"),
        _num("total", True),
    ),
    indexes=("invoice", "product"),
)

STOCK_MOVEMENTS = Collection(
    "stock_movements",
    fields=(
        Field("product", "relation", True, collection="products"),
        Field("type", "select", True, values=("sale", "purchase", "adjustment", "opening", "return")),
        _num("quantity", True),
        _text("reference_type"),
        _text("reference_id"),
        _num("balance_after"),
        _text("notes"),
    ),
    indexes=("product", "type"),
)

SETTINGS = Collection(
    "settings",
    fields=(
        _text("key", True),
        _text("value", True),
        _text("category"),
    ),
    unique=("key",),
)

COLLECTIONS: dict[str, Collection] = {
    c.name: c
    for c in (PRODUCTS, SUPPLIERS, CUSTOMERS, INVOICES, INVOICE_ITEMS, STOCK_MOVEMENTS, SETTINGS)
}

DEFAULT_SETTINGS: tuple[tuple[str, str, str], ...] = (
    ("shop_name", "-", "shop"),
    ("shop_address", "Harda, Madhya Pradesh", "shop"),
    ("shop_phone", "-", "shop"),
    ("shop_gstin", "-", "shop"),
    ("invoice_prefix", "GST", "invoice"),
    ("invoice_counter", "0", "invoice"),
    ("financial_year", "2025/26", "invoice"),
    ("default_cgst", "2.5", "tax"),
    ("default_sgst", "2.5", "tax"),
    ("default_state", "Madhya Pradesh", "tax"),
    ("upi_id", "-", "payment"),
    ("bank_details", "-", "payment"),
)
