"""
Abstract base class for all product variants.

A variant owns one configuration model (tagged by productType) and the four
capabilities the pipeline needs: validate, price, describe and ship. Adding a
product means adding a variant and registering it; the validator, quote
builder, shipping engine and PDF renderer never branch on product type.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional

from pydantic import BaseModel

from ..money import round2
from ..schemas import CamelModel, PriceLine, ShippingProfile

logger = logging.getLogger(__name__)


class FieldError(NamedTuple):
    field: str
    message: str


class PriceBreakdown(CamelModel):
    unit_price: Decimal
    lines: List[PriceLine]
    confidence: str = "high"
    lead_time_note: str = ""


class PricingTable(CamelModel):
    """
    Business pricing data, injected into the validator.

    Defaults are the shop's current published rates. Deployments and tests
    swap the table instead of editing variant code.
    """

    # Steel plate embeds
    material_cost_per_lb: Dict[str, Decimal] = {
        "A36": Decimal("0.50"),
        "A572": Decimal("0.60"),
        "A588": Decimal("0.70"),
        "A992": Decimal("0.65"),
    }
    cutting_rate_per_inch: Decimal = Decimal("0.15")     # $/in of perimeter
    stud_welding_rate: Decimal = Decimal("5.00")         # $ per stud
    finish_rate_per_sqin: Dict[str, Decimal] = {
        "none": Decimal("0"),
        "primer": Decimal("0.25"),
        "galv": Decimal("0.75"),
    }
    finish_min_charge: Dict[str, Decimal] = {
        "none": Decimal("0"),
        "primer": Decimal("25.00"),
        "galv": Decimal("50.00"),
    }
    margin_multiplier: Decimal = Decimal("1.15")

    # Dumpster gates
    gate_base_prices: Dict[str, Decimal] = {
        "10x6": Decimal("1200"),
        "12x6": Decimal("1400"),
        "14x6": Decimal("1600"),
        "16x6": Decimal("1800"),
        "18x6": Decimal("2000"),
    }
    gate_rate_per_foot: Decimal = Decimal("145")          # custom sizes, per ft of width
    gate_custom_surcharge: Decimal = Decimal("150")
    gate_finish_adders: Dict[str, Decimal] = {
        "raw-steel": Decimal("0"),
        "prime-painted": Decimal("150"),
        "powder-coat-black": Decimal("300"),
        "galvanized": Decimal("500"),
    }
    gate_post_cost: Decimal = Decimal("400")

    # Shared
    lead_time_multipliers: Dict[str, Decimal] = {
        "standard": Decimal("1"),
        "rush": Decimal("1.5"),
    }

    def lead_time_multiplier(self, lead_time: str) -> Decimal:
        return Decimal(self.lead_time_multipliers.get(lead_time, Decimal("1")))


class ProductVariant(ABC):
    """All storefront products inherit from this."""

    product_type: str = ""
    config_model: type = BaseModel
    is_custom_fabrication: bool = True

    def parse(self, raw: dict):
        """Build the typed config. Raises pydantic.ValidationError on missing/mistyped fields."""
        return self.config_model.model_validate(raw)

    @abstractmethod
    def validate(self, config) -> List[FieldError]:
        """Business-rule checks on a parsed config. Empty list means valid."""

    @abstractmethod
    def price(self, config, table: PricingTable) -> PriceBreakdown:
        """Unit price for one piece, lead-time multiplier included."""

    @abstractmethod
    def describe(self, config) -> str:
        """One-line plain-language description for carts, emails and PDFs."""

    @abstractmethod
    def shipping_profile(self, config) -> ShippingProfile:
        """Per-unit weight and packing footprint."""

    def spec_sheet(self, config) -> List[List[str]]:
        """[label, value] rows for the shop packet. Variants override for detail."""
        return [["Description", self.describe(config)], ["Quantity", str(config.quantity)]]

    # --- Helper methods for all variants ---

    def apply_lead_time(self, subtotal: Decimal, lead_time: str, table: PricingTable,
                        lines: list) -> Decimal:
        """Apply the lead-time multiplier and record the surcharge line."""
        multiplier = table.lead_time_multiplier(lead_time)
        if multiplier != 1:
            surcharge = subtotal * (multiplier - 1)
            pct = (multiplier - 1) * 100
            lines.append(PriceLine(
                label=f"{lead_time.title()} surcharge ({pct.normalize():f}%)",
                amount=round2(surcharge),
            ))
        return subtotal * multiplier

    def check_range(self, errors: list, field: str, value, low, high, unit: str = "") -> None:
        if value is None:
            return
        if value < low or value > high:
            errors.append(FieldError(field, f"{_label(field)} must be between {low}{unit} and {high}{unit}"))

    def check_positive(self, errors: list, field: str, value, unit: str = "") -> bool:
        if value is None or value <= 0:
            errors.append(FieldError(field, f"{_label(field)} must be greater than 0{unit}"))
            return False
        return True

    def make_line(self, label: str, amount, quantity: Optional[int] = None) -> PriceLine:
        return PriceLine(label=label, amount=round2(amount), quantity=quantity)


def _label(field: str) -> str:
    leaf = field.split(".")[-1]
    leaf = leaf.split("[")[0]
    words = []
    for ch in leaf:
        if ch.isupper():
            words.append(" ")
        words.append(ch.lower())
    return "".join(words).strip().capitalize()
