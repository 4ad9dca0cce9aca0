from .stores import Store, store_managers, store_viewers
from .auth import User, RolePermissionRule, SessionToken, user_allowed_stores
from .inventory import Product, Batch, StockTransaction, TransactionType

__all__ = [
    'Store', 'store_managers', 'store_viewers',
    'User', 'RolePermissionRule', 'SessionToken', 'user_allowed_stores',
    'Product', 'Batch', 'StockTransaction', 'TransactionType',
]
