"""
Quote assembly.

Validates every cart line, then composes shipping and tax into one Quote.
Pure math: same items, address and tables always give the same quote. The
quote total is the only amount ever charged.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from .exceptions import ConfigValidationError, EmptyCart
from .money import round2
from .schemas import Address, CartItem, NormalizedLine, Quote, ShippingMethod
from .shipping import ShippingEngine
from .tax import TaxEngine
from .validator import ConfigValidator

logger = logging.getLogger(__name__)


class PriceQuoteBuilder:
    """
    Composes ConfigValidator, ShippingEngine and TaxEngine.
    """

    def __init__(self, validator: Optional[ConfigValidator] = None,
                 shipping: Optional[ShippingEngine] = None,
                 tax: Optional[TaxEngine] = None):
        self.validator = validator or ConfigValidator()
        self.shipping = shipping or ShippingEngine()
        self.tax = tax or TaxEngine()

    def build_quote(self, items: List[CartItem], address: Address, is_exempt: bool = False,
                    preferred_shipping_method: Optional[ShippingMethod] = None,
                    is_custom_fabrication: Optional[bool] = None) -> Quote:
        """
        Server-side quote for a cart.

        Args:
            items: cart entries; client prices are ignored
            address: shipping address (zip and state required)
            is_exempt: customer holds a tax exemption
            preferred_shipping_method: honoured when offered
            is_custom_fabrication: tax policy input; defaults to "any line is custom"

        Raises:
            EmptyCart, ConfigValidationError (field prefixed with items[i].),
            MissingAddressFields
        """
        if not items:
            raise EmptyCart()

        lines = self.validate_lines(items)
        subtotal = round2(sum((line.price for line in lines), Decimal(0)))

        shipping = self.shipping.calculate_shipping(lines, address, preferred_shipping_method)

        if is_custom_fabrication is None:
            is_custom_fabrication = any(line.is_custom_fabrication for line in lines)
        tax = self.tax.calculate_tax(
            subtotal, address, is_exempt=is_exempt, is_custom_fabrication=is_custom_fabrication,
        )

        total = round2(subtotal + tax.tax_amount + shipping.selected_cost)

        return Quote(lines=lines, subtotal=subtotal, tax=tax, shipping=shipping, total=total)

    def validate_lines(self, items: List[CartItem]) -> List[NormalizedLine]:
        """Fail fast on the first invalid line."""
        lines = []
        for i, item in enumerate(items):
            try:
                lines.append(self.validator.validate(item.raw_config(), item_id=item.id))
            except ConfigValidationError as e:
                logger.info("Rejected cart item %d (%s): %s", i, item.product_type, e.message)
                raise ConfigValidationError(e.errors, prefix=f"items[{i}].") from e
        return lines
