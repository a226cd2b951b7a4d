"""
ConfigValidator: raw product configuration in, validated priced line out.

The raw config is a flat dict tagged with `productType`. Structural problems
(missing or mistyped fields, unknown product) and business-rule problems
(zero dimensions, studs off the plate, quantity < 1) are both reported as
FieldErrors naming the offending field. Nothing invalid reaches pricing.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigValidationError
from .products import FieldError, PricingTable, get_product, has_product, list_products
from .schemas import NormalizedLine

logger = logging.getLogger(__name__)


class ConfigValidator:
    """Pure: same raw config and pricing table always give the same line."""

    def __init__(self, pricing: Optional[PricingTable] = None):
        self.pricing = pricing or PricingTable()

    def check(self, raw: dict) -> List[FieldError]:
        """All problems with a raw config, without raising. Empty list means valid."""
        _, _, errors = self._parse(raw)
        return errors

    def validate(self, raw: dict, item_id: Optional[str] = None) -> NormalizedLine:
        """
        Validate and price one configuration.

        Raises:
            ConfigValidationError: naming the first offending field (all errors attached)
        """
        variant, config, errors = self._parse(raw)
        if errors:
            raise ConfigValidationError(errors)

        breakdown = variant.price(config, self.pricing)
        quantity = config.quantity

        return NormalizedLine(
            item_id=item_id,
            product_type=variant.product_type,
            configuration=config.model_dump(by_alias=True, mode="json", exclude_none=True),
            description=variant.describe(config),
            quantity=quantity,
            unit_price=breakdown.unit_price,
            price=breakdown.unit_price * quantity,
            is_custom_fabrication=config.is_custom_fabrication,
            lead_time=config.lead_time,
            lead_time_note=breakdown.lead_time_note,
            confidence=breakdown.confidence,
            breakdown=breakdown.lines,
            spec_sheet=variant.spec_sheet(config),
            shipping=variant.shipping_profile(config),
        )

    def _parse(self, raw):
        if not isinstance(raw, dict):
            return None, None, [FieldError("configuration", "Configuration must be an object")]

        product_type = raw.get("productType", raw.get("product_type"))
        if not product_type:
            return None, None, [FieldError("productType", "productType is required")]
        if not has_product(product_type):
            return None, None, [FieldError(
                "productType",
                f"Unknown product type '{product_type}'. Available: {', '.join(list_products())}",
            )]

        variant = get_product(product_type)
        try:
            config = variant.parse(raw)
        except PydanticValidationError as e:
            return variant, None, [_field_error(err) for err in e.errors()]

        return variant, config, variant.validate(config)


def _field_error(err: dict) -> FieldError:
    field = _loc_to_path(err.get("loc", ()))
    if err.get("type") == "missing":
        return FieldError(field, f"{field} is required")
    return FieldError(field, f"{field}: {err.get('msg', 'invalid value')}")


def _loc_to_path(loc) -> str:
    """('studs', 'positions', 0, 'x') -> 'studs.positions[0].x'"""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "configuration"
