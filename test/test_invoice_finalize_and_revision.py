from decimal import Decimal
from pathlib import Path

import pytest
from conftest import add_product

from gstpos.application.container import build_container
from gstpos.domain.cart import Cart
from gstpos.domain.errors import PartialFinalizeError, StockPostingError, StoreError, ValidationError
from gstpos.domain.models import IMPORT_NOTE
from gstpos.repositories.sqlite_store import SqliteRecordStore
from gstpos.services.invoice_service import InvoiceService
from gstpos.services.stock_service import StockService


def _setup(tmp_path: Path):
    c = build_container(tmp_path / "billing.db", sessions_dir=tmp_path / "sessions")
    product = add_product(c.store, "QA-7001", "Banarasi Silk", 1500, mrp=1600, stock=10)
    return c, product


def test_end_to_end_discounted_sale(tmp_path: Path):
    c, product = _setup(tmp_path)
    cart = Cart()
    cart.add_item(product)
    cart.add_item(product)
    assert cart.subtotal == Decimal("3000.00")
    assert cart.discount_up() == Decimal("25")

    inv = c.invoices.finalize(cart, actor_user_id="user-1")

    assert inv.grand_total == Decimal("2975.00")
    assert inv.subtotal == Decimal("3000.00")
    assert inv.discount_total == Decimal("25.00")
    assert inv.cgst_total == Decimal("70.83")
    assert inv.sgst_total == Decimal("70.83")
    assert inv.amount_paid == Decimal("2975.00")
    assert inv.status == "completed"
    assert inv.created_by == "user-1"

    items = c.invoices.invoice_items(inv.id)
    assert len(items) == 1
    assert items[0].quantity == 2
    assert items[0].total == Decimal("3000.00")
    assert items[0].taxable_amount == Decimal("2857.14")
    assert items[0].product_code == "QA-7001"

    stored = c.invoices.get_invoice(inv.id)
    assert stored.customer is not None
    assert stored.customer.is_cash
    assert cart.items == []


def test_finalize_blocks_unpriced_lines_without_writing(tmp_path: Path):
    c, product = _setup(tmp_path)
    cart = Cart()
    cart.add_item(product)
    cart.add_quick_lines()

    with pytest.raises(ValidationError, match=r"3 item\(s\) missing price"):
        c.invoices.finalize(cart)

    assert c.store.list_all("invoices") == []
    assert c.settings.invoice_counter() == 0
    assert len(cart.items) == 4


def test_finalize_rejects_empty_cart(tmp_path: Path):
    c, _product = _setup(tmp_path)

    with pytest.raises(ValidationError, match="Cart is empty"):
        c.invoices.finalize(Cart())


def test_quick_lines_persist_without_product(tmp_path: Path):
    c, _product = _setup(tmp_path)
    cart = Cart()
    cart.add_quick_lines(1)
    cart.update_price(0, 1050)

    inv = c.invoices.finalize(cart)
    items = c.invoices.invoice_items(inv.id)

    assert items[0].product_id == ""
    assert items[0].product_name == "Saree - 1"
    assert items[0].cgst_amount == Decimal("25.00")
    assert c.store.list_all("stock_movements") == []


def test_checkout_mobile_creates_customer_and_customer_is_kept(tmp_path: Path):
    c, product = _setup(tmp_path)
    cart = Cart()
    cart.add_item(product)
    cart.customer_mobile = "9876543210"
    cart.customer_name = "Ravi"

    inv = c.invoices.finalize(cart)

    customer = c.customers.by_mobile("9876543210")
    assert customer is not None
    assert customer.name == "Ravi"
    assert customer.state == "Madhya Pradesh"
    assert inv.customer_id == customer.id
    assert cart.customer_mobile == "9876543210"


def test_edit_creates_revision_with_same_number(tmp_path: Path):
    c, product = _setup(tmp_path)
    cart = Cart()
    cart.add_item(product)
    cart.add_item(product)
    original = c.invoices.finalize(cart)

    c.invoices.load_for_edit(original.id, cart)
    assert cart.is_editing
    cart.update_quantity(0, 1)
    revised = c.invoices.finalize(cart)

    assert revised.id != original.id
    assert revised.invoice_number == original.invoice_number
    assert revised.grand_total == Decimal("1500.00")

    rows = c.invoices.revisions(original.invoice_number)
    assert len(rows) == 2
    assert {r.status for r in rows} == {"completed", "revised"}
    assert c.invoices.current_revision(original.invoice_number).id == revised.id
    assert c.settings.invoice_counter() == 1
    assert not cart.is_editing


def test_revising_returns_old_stock_before_new_sale(tmp_path: Path):
    c, product = _setup(tmp_path)
    cart = Cart()
    cart.add_item(product)
    cart.add_item(product)
    original = c.invoices.finalize(cart)
    assert c.catalog.get(product.id).current_stock == 8

    c.invoices.load_for_edit(original.id, cart)
    cart.update_quantity(0, 1)
    c.invoices.finalize(cart)

    assert c.catalog.get(product.id).current_stock == 9
    movements, _page = c.stock.movements(product.id)
    assert [m.type for m in reversed(movements)] == ["sale", "return", "sale"]
    assert [m.balance_after for m in reversed(movements)] == [8, 10, 9]


def test_revised_invoice_cannot_be_edited_again(tmp_path: Path):
    c, product = _setup(tmp_path)
    cart = Cart()
    cart.add_item(product)
    original = c.invoices.finalize(cart)
    c.invoices.load_for_edit(original.id, cart)
    c.invoices.finalize(cart)

    with pytest.raises(ValidationError, match="revised"):
        c.invoices.load_for_edit(original.id, Cart())


def test_failed_revision_restores_original(tmp_path: Path):
    class FailingStore(SqliteRecordStore):
        armed = False

        def create(self, collection, fields):
            if self.armed and collection == "invoices":
                raise StoreError("forced header failure")
            return super().create(collection, fields)

    db = tmp_path / "restore.db"
    c = build_container(db, sessions_dir=tmp_path / "sessions")
    store = FailingStore(db)
    invoices = InvoiceService(store, c.settings, c.customers, c.stock)
    cart = Cart()
    cart.add_item(add_product(store, "QA-1", "Chiffon", 900))
    original = invoices.finalize(cart)

    invoices.load_for_edit(original.id, cart)
    store.armed = True
    with pytest.raises(StoreError):
        invoices.finalize(cart)

    assert invoices.get_invoice(original.id).status == "completed"
    assert cart.is_editing
    assert len(cart.items) == 1


def test_line_failure_raises_partial_finalize(tmp_path: Path):
    class FlakyItemsStore(SqliteRecordStore):
        item_calls = 0

        def create(self, collection, fields):
            if collection == "invoice_items":
                self.item_calls += 1
                if self.item_calls == 2:
                    raise StoreError("connection reset")
            return super().create(collection, fields)

    db = tmp_path / "partial.db"
    c = build_container(db, sessions_dir=tmp_path / "sessions")
    store = FlakyItemsStore(db)
    invoices = InvoiceService(store, c.settings, c.customers, c.stock)
    cart = Cart()
    chiffon = add_product(store, "QA-1", "Chiffon", 900)
    georgette = add_product(store, "QA-2", "Georgette", 1100)
    cart.add_item(chiffon)
    cart.add_item(georgette)

    with pytest.raises(PartialFinalizeError, match="saved with 1 of 2 items") as exc:
        invoices.finalize(cart)

    assert exc.value.saved == 1
    assert exc.value.expected == 2
    assert isinstance(exc.value.__cause__, StoreError)
    assert len(invoices.invoice_items(exc.value.invoice_id)) == 1
    assert len(cart.items) == 2
    assert exc.value.unposted == []
    # the saved line's stock was posted, the unsaved one was not
    assert store.get("products", chiffon.id)["current_stock"] == 9
    assert store.get("products", georgette.id)["current_stock"] == 10
    movements = store.list_all("stock_movements")
    assert [(m["product"], m["quantity"]) for m in movements] == [(chiffon.id, -1)]


class StockDownStore(SqliteRecordStore):
    def increment_field(self, collection, record_id, field, delta):
        raise StoreError("ledger unavailable")


def test_stock_failure_after_save_clears_cart_and_reports_invoice(tmp_path: Path):
    db = tmp_path / "stockdown.db"
    c = build_container(db, sessions_dir=tmp_path / "sessions")
    store = StockDownStore(db)
    invoices = InvoiceService(store, c.settings, c.customers, StockService(store))
    cart = Cart()
    cart.add_item(add_product(store, "QA-1", "Chiffon", 900))
    cart.add_item(add_product(store, "QA-2", "Georgette", 1100))

    with pytest.raises(StockPostingError, match="stock not posted for 2 line") as exc:
        invoices.finalize(cart)

    saved = store.list_all("invoices")
    assert [r["id"] for r in saved] == [exc.value.invoice_id]
    items = invoices.invoice_items(exc.value.invoice_id)
    assert sorted(exc.value.line_ids) == sorted(i.id for i in items)
    assert cart.items == []

    with pytest.raises(ValidationError, match="Cart is empty"):
        invoices.finalize(cart)
    assert len(store.list_all("invoices")) == 1


def test_revising_imported_invoice_stays_out_of_ledger(tmp_path: Path):
    c, product = _setup(tmp_path)
    cart = Cart()
    cart.add_item(product)
    original = c.invoices.finalize(cart)
    c.store.update("invoices", original.id, {"notes": IMPORT_NOTE})
    before = c.catalog.get(product.id).current_stock

    c.invoices.load_for_edit(original.id, cart)
    cart.update_quantity(0, 3)
    revised = c.invoices.finalize(cart)

    assert revised.notes == IMPORT_NOTE
    assert c.catalog.get(product.id).current_stock == before
    _movements, page = c.stock.movements(product.id)
    assert page.total_items == 1
