from .product import Product
from .flash_sales import (
    FlashSale,
    FlashSaleAnalytics,
    FlashSaleItem,
    FlashSaleItemPurchase,
    FlashSaleItemView,
)


__all__ = [
    "Product",
    "FlashSale",
    "FlashSaleItem",
    "FlashSaleItemView",
    "FlashSaleItemPurchase",
    "FlashSaleAnalytics",
]
