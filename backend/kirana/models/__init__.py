from .counters import Counter
from .customers import Customer
from .catalog import Product, ProductVariant, PriceTier
from .orders import Order, OrderLine
from .ledger import LedgerEntry
from .legacy import LegacyCreditEntry, LegacyPayment
from .milk import MilkSubscription, MilkLog, MilkPayment
from .settings import StoreSetting

__all__ = [
    'Counter',
    'Customer',
    'Product', 'ProductVariant', 'PriceTier',
    'Order', 'OrderLine',
    'LedgerEntry',
    'LegacyCreditEntry', 'LegacyPayment',
    'MilkSubscription', 'MilkLog', 'MilkPayment',
    'StoreSetting',
]
