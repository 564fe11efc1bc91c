from .tenancy import Organization
from .catalog import Item, Customer, Supplier
from .inventory import InventoryLocation, InventoryPosition, StockMovement
from .orders import PurchaseOrder, PurchaseOrderLine, SalesOrder, SalesOrderLine
from .invoices import SalesInvoice, PurchaseInvoice
from .payments import Payment, PaymentAllocation
from .documents import DocumentSequence

__all__ = [
    'Organization',
    'Item', 'Customer', 'Supplier',
    'InventoryLocation', 'InventoryPosition', 'StockMovement',
    'PurchaseOrder', 'PurchaseOrderLine', 'SalesOrder', 'SalesOrderLine',
    'SalesInvoice', 'PurchaseInvoice',
    'Payment', 'PaymentAllocation',
    'DocumentSequence',
]
