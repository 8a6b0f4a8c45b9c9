from .catalog import Platform, DigitalProduct, PRODUCT_CATEGORIES, DURATION_TYPES
from .ledger import StockMovement, PlatformCreditMovement, STOCK_MOVEMENT_TYPES, CREDIT_MOVEMENT_TYPES
from .sales import (
    StockSale,
    StockPurchase,
    PaymentRecord,
    PAYMENT_STATUSES,
    PAYMENT_METHODS,
    PAYMENT_TYPES,
    SALE_STATUSES,
)

__all__ = [
    'Platform', 'DigitalProduct',
    'StockMovement', 'PlatformCreditMovement',
    'StockSale', 'StockPurchase', 'PaymentRecord',
    'PRODUCT_CATEGORIES', 'DURATION_TYPES',
    'STOCK_MOVEMENT_TYPES', 'CREDIT_MOVEMENT_TYPES',
    'PAYMENT_STATUSES', 'PAYMENT_METHODS', 'PAYMENT_TYPES', 'SALE_STATUSES',
]
