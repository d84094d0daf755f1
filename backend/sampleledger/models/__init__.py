from .tenancy import Brand, Store
from .customers import Customer, SampleHistory
from .partnerships import BrandPartnership, CreditTransaction
from .conversions import Conversion, WebhookLog
from .inventory import Product, StoreInventory, InventoryTransaction
from .wholesale import WholesaleOrder, WholesaleOrderItem, WholesaleOrderSequence, PendingFulfillment

__all__ = [
    'Brand', 'Store',
    'Customer', 'SampleHistory',
    'BrandPartnership', 'CreditTransaction',
    'Conversion', 'WebhookLog',
    'Product', 'StoreInventory', 'InventoryTransaction',
    'WholesaleOrder', 'WholesaleOrderItem', 'WholesaleOrderSequence', 'PendingFulfillment',
]
