from .inventory import Product, ProductVariant, StockReservation, StockMovement
from .customers import Customer
from .sales import Sale, SaleLine, Installment, InstallmentPayment

__all__ = [
    'Product', 'ProductVariant', 'StockReservation', 'StockMovement',
    'Customer',
    'Sale', 'SaleLine', 'Installment', 'InstallmentPayment',
]
