from .auth import User, SessionToken
from .parties import Customer, Vehicle, Mechanic
from .catalog import Product, Service, Package, PackageItem
from .sales import Transaction, TransactionItem, Payment
from .inventory import InventoryLog
from .audit import AuditLog

__all__ = [
    'User', 'SessionToken',
    'Customer', 'Vehicle', 'Mechanic',
    'Product', 'Service', 'Package', 'PackageItem',
    'Transaction', 'TransactionItem', 'Payment',
    'InventoryLog',
    'AuditLog',
]
