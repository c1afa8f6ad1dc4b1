from .tenancy import Vendor, Location
from .auth import VendorUser, SessionToken
from .inventory import Product, InventoryRecord, InventoryTransaction
from .payments import PaymentProcessor, PaymentTransaction
from .registers import Register, POSSession

__all__ = [
    'Vendor', 'Location',
    'VendorUser', 'SessionToken',
    'Product', 'InventoryRecord', 'InventoryTransaction',
    'PaymentProcessor', 'PaymentTransaction',
    'Register', 'POSSession',
]
