from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from gstpos.domain.cart import Cart, CartLineItem
from gstpos.domain.discount import clamp_discount, next_discount, prev_discount
from gstpos.domain.errors import (
    AppError,
    NotFoundError,
    PartialFinalizeError,
    StockPostingError,
    ValidationError,
)
from gstpos.domain.gst import extract_tax
from gstpos.domain.models import (
    STATUS_COMPLETED,
    STATUS_REVISED,
    Customer,
    Invoice,
    InvoiceLineItem,
    InvoiceNumber,
)
from gstpos.domain.money import round2, to_money
from gstpos.repositories.contracts import Page

log = logging.getLogger("gstpos.invoices")


def format_invoice_number(prefix: str, counter: int, financial_year: str) -> str:
    return f"{prefix}-{counter:04d}-{financial_year}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _store_datetime(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3] + "Z"


class InvoiceService:
    """
    Invoice numbering, finalize/revise and post-sale adjustment.

    With ``atomic_counter`` (the default) a number is reserved through the
    store's increment-and-fetch before the header is written, so concurrent
    terminals never share a number; a header that then fails to save leaves
    a gap in the sequence. Without it the counter is peeked, the header
    created, and only then advanced, which two terminals can race.

    Stock is posted line by line as each item is saved. A failed posting
    never undoes the sale: it is logged and reported through
    ``StockPostingError`` once the cart has been cleared.
    """

    def __init__(
        self,
        store,
        settings,
        customers,
        stock,
        atomic_counter: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.settings = settings
        self.customers = customers
        self.stock = stock
        self.atomic_counter = atomic_counter
        self.clock = clock or _utc_now

    # ---------- Numbering ----------
    def peek_number(self) -> InvoiceNumber:
        self.settings.invalidate()
        counter = self.settings.invoice_counter() + 1
        number = format_invoice_number(self.settings.invoice_prefix(), counter, self.settings.financial_year())
        return InvoiceNumber(number=number, counter=counter)

    def advance_counter(self, counter: int) -> None:
        self.settings.update("invoice_counter", int(counter))

    def reserve_number(self) -> InvoiceNumber:
        counter = self.store.increment_setting("invoice_counter")
        self.settings.invalidate()
        number = format_invoice_number(self.settings.invoice_prefix(), counter, self.settings.financial_year())
        return InvoiceNumber(number=number, counter=counter)

    # ---------- Finalize ----------
    def _header_fields(self, cart: Cart, customer: Customer, actor_user_id: Optional[str]) -> dict:
        grand = round2(cart.grand_total)
        tax = extract_tax(grand, self.settings.default_cgst(), self.settings.default_sgst())
        return {
            "invoice_date": _store_datetime(self.clock()),
            "customer": customer.id,
            "tax_type": "GST",
            "subtotal": round2(cart.subtotal),
            "discount_total": round2(cart.discount_amount),
            "cgst_total": tax.cgst,
            "sgst_total": tax.sgst,
            "grand_total": grand,
            "amount_paid": grand,
            "adjustment": Decimal("0.00"),
            "payment_method": cart.payment_method,
            "status": STATUS_COMPLETED,
            "created_by": actor_user_id or "",
        }

    @staticmethod
    def _line_fields(invoice_id: str, item: CartLineItem) -> dict:
        return {
            "invoice": invoice_id,
            "product": "" if item.is_quick else item.product_id,
            "product_name": item.name,
            "product_code": item.product_code,
            "hsn_code": item.hsn_code,
            "barcode": item.barcode,
            "quantity": item.quantity,
            "unit": item.unit,
            "unit_price": item.unit_price,
            "mrp": item.mrp,
            "taxable_amount": item.taxable,
            "cgst_pct": item.cgst_pct,
            "cgst_amount": item.cgst_amount,
            "sgst_pct": item.sgst_pct,
            "sgst_amount": item.sgst_amount,
            "total": item.line_total,
        }

    def _create_header(self, fields: dict) -> dict:
        if not self.atomic_counter:
            number = self.peek_number()
            rec = self.store.create("invoices", {**fields, "invoice_number": number.number})
            self.advance_counter(number.counter)
            return rec

        number = self.reserve_number()
        try:
            return self.store.create("invoices", {**fields, "invoice_number": number.number})
        except AppError:
            log.warning("invoice_number_gap number=%s counter=%s", number.number, number.counter)
            raise

    def _revise_header(self, old: Invoice, fields: dict) -> dict:
        self.store.update("invoices", old.id, {"status": STATUS_REVISED})
        try:
            return self.store.create("invoices", {**fields, "invoice_number": old.invoice_number})
        except AppError:
            self.store.update("invoices", old.id, {"status": STATUS_COMPLETED})
            log.error("invoice_revision_failed old_id=%s number=%s restored=1", old.id, old.invoice_number)
            raise

    def _post_stock(self, post, invoice: Invoice, line: InvoiceLineItem, unposted: list[str]) -> None:
        try:
            post(invoice, line)
        except AppError as e:
            log.error(
                "stock_post_failed invoice=%s line=%s product=%s qty=%s error=%s",
                invoice.id, line.id, line.product_id, line.quantity, e,
            )
            unposted.append(line.id)

    def _save_lines(self, invoice: Invoice, items: list[CartLineItem], unposted: list[str]) -> list[InvoiceLineItem]:
        saved: list[InvoiceLineItem] = []
        for item in items:
            try:
                rec = self.store.create("invoice_items", self._line_fields(invoice.id, item))
            except AppError as e:
                log.error(
                    "invoice_partial id=%s number=%s saved=%s expected=%s error=%s",
                    invoice.id, invoice.invoice_number, len(saved), len(items), e,
                )
                raise PartialFinalizeError(invoice.id, len(saved), len(items), unposted) from e
            line = InvoiceLineItem.from_record(rec)
            saved.append(line)
            self._post_stock(self.stock.record_sale, invoice, line, unposted)
        return saved

    def finalize(self, cart: Cart, actor_user_id: Optional[str] = None) -> Invoice:
        if not cart.items:
            raise ValidationError("Cart is empty.")
        missing = cart.zero_priced_count
        if missing:
            raise ValidationError(f"{missing} item(s) missing price")

        customer = self.customers.resolve_for_checkout(cart.customer_mobile, cart.customer_name, cart.customer)
        fields = self._header_fields(cart, customer, actor_user_id)

        unposted: list[str] = []
        old: Optional[Invoice] = None
        if cart.is_editing:
            old = self.get_invoice(cart.editing_invoice_id)
            if old.is_revised:
                raise ValidationError(f"Invoice {old.invoice_number} has already been revised.")
            old_lines = self.invoice_items(old.id)
            # imported history stays out of the ledger across revisions
            rec = self._revise_header(old, {**fields, "notes": old.notes})
            for line in old_lines:
                self._post_stock(self.stock.record_return, old, line, unposted)
        else:
            rec = self._create_header(fields)

        invoice = Invoice.from_record(rec)
        lines = self._save_lines(invoice, list(cart.items), unposted)

        cart.clear(keep_customer=True)
        log.info(
            "invoice_created id=%s number=%s total=%s items=%s revised_from=%s actor=%s",
            invoice.id, invoice.invoice_number, invoice.grand_total, len(lines),
            old.id if old else "", actor_user_id,
        )
        if unposted:
            raise StockPostingError(invoice.id, unposted)
        return invoice

    # ---------- Reads ----------
    def get_invoice(self, invoice_id: str) -> Invoice:
        return Invoice.from_record(self.store.get("invoices", invoice_id, expand=("customer",)))

    def invoice_items(self, invoice_id: str) -> list[InvoiceLineItem]:
        rows = self.store.list_all("invoice_items", {"invoice": invoice_id}, sort="created")
        return [InvoiceLineItem.from_record(r) for r in rows]

    def list_invoices(
        self, page: int = 1, per_page: int = 20, status: Optional[str] = None
    ) -> tuple[list[Invoice], Page]:
        filters = {"status": status} if status else None
        result = self.store.list(
            "invoices", filters, sort="-invoice_date", page=page, per_page=per_page, expand=("customer",)
        )
        return [Invoice.from_record(r) for r in result.items], result

    def revisions(self, invoice_number: str) -> list[Invoice]:
        rows = self.store.list_all("invoices", {"invoice_number": invoice_number}, sort="-created")
        return [Invoice.from_record(r) for r in rows]

    def current_revision(self, invoice_number: str) -> Invoice:
        for inv in self.revisions(invoice_number):
            if not inv.is_revised:
                return inv
        raise NotFoundError(f"No current revision for invoice {invoice_number}.")

    def load_for_edit(self, invoice_id: str, cart: Cart) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.is_revised:
            raise ValidationError(f"Invoice {invoice.invoice_number} has been revised; edit the current revision.")
        cart.load_for_edit(invoice, self.invoice_items(invoice.id))
        return invoice

    # ---------- Post-sale adjustment ----------
    def _apply_adjustment(self, invoice: Invoice, amount) -> Invoice:
        base = invoice.adjustment_base
        adjustment = round2(clamp_discount(to_money(amount), base))
        grand = round2(base - adjustment)
        tax = extract_tax(grand, self.settings.default_cgst(), self.settings.default_sgst())
        self.store.update(
            "invoices",
            invoice.id,
            {
                "adjustment": adjustment,
                "grand_total": grand,
                "cgst_total": tax.cgst,
                "sgst_total": tax.sgst,
                "amount_paid": grand,
            },
        )
        log.info("invoice_adjusted id=%s adjustment=%s total=%s", invoice.id, adjustment, grand)
        return self.get_invoice(invoice.id)

    def _adjustable(self, invoice_id: str) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice.status != STATUS_COMPLETED:
            raise ValidationError(f"Only completed invoices can be adjusted (status: {invoice.status}).")
        return invoice

    def adjustment_up(self, invoice_id: str) -> Invoice:
        invoice = self._adjustable(invoice_id)
        return self._apply_adjustment(invoice, next_discount(invoice.adjustment_base, invoice.adjustment))

    def adjustment_down(self, invoice_id: str) -> Invoice:
        invoice = self._adjustable(invoice_id)
        return self._apply_adjustment(invoice, prev_discount(invoice.adjustment_base, invoice.adjustment))

    def set_adjustment(self, invoice_id: str, amount) -> Invoice:
        return self._apply_adjustment(self._adjustable(invoice_id), amount)

