"""SQLAlchemy models for the splitpay settlement service."""

from splitpay.models.credential import MerchantCredential
from splitpay.models.ownership import ProductOwnership
from splitpay.models.sale import Sale
from splitpay.models.storefront import CartItem, CatalogProduct, Order, OrderLine
from splitpay.models.merchant_ledger import MerchantOrder

__all__ = [
    "MerchantCredential",
    "ProductOwnership",
    "Sale",
    "Order",
    "OrderLine",
    "CatalogProduct",
    "CartItem",
    "MerchantOrder",
]
