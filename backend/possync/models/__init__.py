from .catalog import Shop, Product
from .stock import StockRow
from .sales import Sale, SaleLineItem
from .auth import Seller, SessionToken

__all__ = [
    'Shop', 'Product',
    'StockRow',
    'Sale', 'SaleLineItem',
    'Seller', 'SessionToken',
]
