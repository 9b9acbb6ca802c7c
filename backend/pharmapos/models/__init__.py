from .auth import User
from .catalog import Product, Supplier, Company
from .inventory import StockLedgerEntry
from .sales import Transaction, TransactionLine
from .purchasing import PurchaseOrder, PurchaseOrderLine

__all__ = [
    'User',
    'Product', 'Supplier', 'Company',
    'StockLedgerEntry',
    'Transaction', 'TransactionLine',
    'PurchaseOrder', 'PurchaseOrderLine',
]
