from .base import FieldError, PriceBreakdown, PricingTable, ProductVariant
from .registry import get_product, has_product, list_products, register_product

__all__ = [
    "FieldError",
    "PriceBreakdown",
    "PricingTable",
    "ProductVariant",
    "get_product",
    "has_product",
    "list_products",
    "register_product",
]
