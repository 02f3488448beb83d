from .auth import User, SessionToken
from .inventory import Category, Product, StockTransition, LedgerImmutableError, TRANSACTION_TYPES
from .directory import Customer, Supplier, Staff, Discount
from .sales import Order, OrderLine, Return, ORDER_TYPES, RETURN_TYPES

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'StockTransition', 'LedgerImmutableError', 'TRANSACTION_TYPES',
    'Customer', 'Supplier', 'Staff', 'Discount',
    'Order', 'OrderLine', 'Return', 'ORDER_TYPES', 'RETURN_TYPES',
]
