from .settings_service import SettingsService
from .catalog_service import CatalogService
from .customer_service import CustomerService
from .stock_service import StockService
from .invoice_service import InvoiceService
from .reporting_service import ReportingService
from .session_store import CartSessionStore

__all__ = [
    "SettingsService",
    "CatalogService",
    "CustomerService",
    "StockService",
    "InvoiceService",
    "ReportingService",
    "CartSessionStore",
]
