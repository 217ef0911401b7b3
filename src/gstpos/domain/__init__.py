from .models import Product, Customer, Supplier, Invoice, InvoiceLineItem, StockMovement, InvoiceNumber
from .errors import ValidationError, ConflictError, NotFoundError, StoreError, PartialFinalizeError, StockPostingError
from .cart import Cart, CartLineItem, CartState
from .gst import TaxBreakdown, extract_tax
from .discount import next_discount, prev_discount, clamp_discount

__all__ = [
    "Product",
    "Customer",
    "Supplier",
    "Invoice",
    "InvoiceLineItem",
    "StockMovement",
    "InvoiceNumber",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "StoreError",
    "PartialFinalizeError",
    "StockPostingError",
    "Cart",
    "CartLineItem",
    "CartState",
    "TaxBreakdown",
    "extract_tax",
    "next_discount",
    "prev_discount",
    "clamp_discount",
]
