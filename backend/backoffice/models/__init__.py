from .tenancy import Store
from .customers import Customer
from .inventory import Product, InventoryMovement
from .orders import Order
from .returns import Return

__all__ = [
    'Store',
    'Customer',
    'Product', 'InventoryMovement',
    'Order',
    'Return',
]
