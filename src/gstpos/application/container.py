from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from gstpos.repositories.sqlite_store import SqliteRecordStore
from gstpos.services.catalog_service import CatalogService
from gstpos.services.customer_service import CustomerService
from gstpos.services.invoice_service import InvoiceService
from gstpos.services.reporting_service import ReportingService
from gstpos.services.session_store import CartSessionStore
from gstpos.services.settings_service import SettingsService
from gstpos.services.stock_service import StockService


@dataclass(frozen=True)
class AppContainer:
    store: SqliteRecordStore
    settings: SettingsService
    catalog: CatalogService
    customers: CustomerService
    stock: StockService
    invoices: InvoiceService
    reporting: ReportingService
    sessions: CartSessionStore


def build_container(db_path: Path | str, sessions_dir: Path | str | None = None) -> AppContainer:
    store = SqliteRecordStore(db_path)
    store.init_db()

    settings = SettingsService(store)
    catalog = CatalogService(store, settings)
    customers = CustomerService(store, settings)
    stock = StockService(store)
    invoices = InvoiceService(store, settings, customers, stock)
    reporting = ReportingService(store)
    sessions = CartSessionStore(sessions_dir or Path(db_path).parent / "sessions")

    return AppContainer(
        store=store,
        settings=settings,
        catalog=catalog,
        customers=customers,
        stock=stock,
        invoices=invoices,
        reporting=reporting,
        sessions=sessions,
    )
