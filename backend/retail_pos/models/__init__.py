from .catalog import Category, Product
from .customers import Customer
from .staff import User
from .orders import Order, OrderLine, ORDER_STATUSES
from .sequences import ProductCodeSequence

__all__ = [
    'Category', 'Product',
    'Customer',
    'User',
    'Order', 'OrderLine', 'ORDER_STATUSES',
    'ProductCodeSequence',
]
