"""
Product registry: maps productType tags to variant classes.

New products register here; nothing else in the pipeline changes.
"""

from .base import ProductVariant
from .dumpster_gate import DumpsterGateProduct
from .steel_embed import SteelPlateEmbedProduct

PRODUCT_REGISTRY: dict[str, type] = {
    "steel-plate-embeds": SteelPlateEmbedProduct,
    "dumpster-gate": DumpsterGateProduct,
}


def get_product(product_type: str) -> ProductVariant:
    """Returns an instance of the variant for a product type, or raises ValueError."""
    if product_type not in PRODUCT_REGISTRY:
        raise ValueError(
            f"Unknown product type: {product_type}. "
            f"Available: {list(PRODUCT_REGISTRY.keys())}"
        )
    return PRODUCT_REGISTRY[product_type]()


def has_product(product_type: str) -> bool:
    return product_type in PRODUCT_REGISTRY


def list_products() -> list[str]:
    return list(PRODUCT_REGISTRY.keys())


def register_product(variant_cls: type) -> type:
    """Register a ProductVariant subclass under its product_type. Usable as a decorator."""
    if not variant_cls.product_type:
        raise ValueError(f"{variant_cls.__name__} has no product_type")
    PRODUCT_REGISTRY[variant_cls.product_type] = variant_cls
    return variant_cls
