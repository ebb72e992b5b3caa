from .inventory import Product, Lot
from .customers import Customer, CreditPayment
from .documents import (
    Quotation, QuotationLine, Credit, CreditLine,
    Sale, SaleLine, SalePayment, DocumentSequence,
    StockWithdrawal, StockWithdrawalLine,
)
from .ledger import LotMovement

__all__ = [
    'Product', 'Lot',
    'Customer', 'CreditPayment',
    'Quotation', 'QuotationLine', 'Credit', 'CreditLine',
    'Sale', 'SaleLine', 'SalePayment', 'DocumentSequence',
    'StockWithdrawal', 'StockWithdrawalLine',
    'LotMovement',
]
