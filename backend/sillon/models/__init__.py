from .catalog import Supplier, Product
from .inventory import StockMovement
from .orders import Order, OrderItem
from .payouts import SupplierPayout
from .documents import DocumentSequence, LedgerEvent

__all__ = [
    'Supplier', 'Product',
    'StockMovement',
    'Order', 'OrderItem',
    'SupplierPayout',
    'DocumentSequence', 'LedgerEvent',
]
