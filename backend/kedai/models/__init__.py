from .auth import User, SessionToken
from .catalog import Product, Variant
from .customers import Customer
from .shifts import Shift
from .orders import Order, OrderItem
from .inventory import StockMovement

__all__ = [
    'User', 'SessionToken',
    'Product', 'Variant',
    'Customer',
    'Shift',
    'Order', 'OrderItem',
    'StockMovement',
]
