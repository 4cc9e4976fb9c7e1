from .customers import Customer
from .invoices import Invoice, InvoiceLine, InvoiceReturn, InvoiceReturnLine
from .ledger import LedgerEntry
from .inventory import Product
from .settings import LedgerSettings
from .sync import SyncAction
from .backups import LedgerBackup

__all__ = [
    'Customer',
    'Invoice', 'InvoiceLine', 'InvoiceReturn', 'InvoiceReturnLine',
    'LedgerEntry',
    'Product',
    'LedgerSettings',
    'SyncAction',
    'LedgerBackup',
]
