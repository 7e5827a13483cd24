from .auth import User, SessionToken
from .catalog import Product
from .inventory import InventoryMovement
from .orders import Order, OrderItem, DocumentSequence
from .customers import Customer, Debt, DebtPayment
from .notifications import Notification

__all__ = [
    'User', 'SessionToken',
    'Product', 'InventoryMovement',
    'Order', 'OrderItem', 'DocumentSequence',
    'Customer', 'Debt', 'DebtPayment',
    'Notification',
]
