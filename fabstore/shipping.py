"""
Shipping estimator for validated cart lines.

Weight-based per-zone rates with a per-method minimum. Heavy or bulky
shipments switch to LTL freight. Zones come from the destination ZIP prefix;
the longest configured prefix wins.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field

from .exceptions import EmptyCart, MissingAddressFields
from .money import round2
from .schemas import (
    Address,
    CamelModel,
    NormalizedLine,
    PackageDimensions,
    ShippingMethod,
    ShippingOption,
    ShippingResult,
)
from .weights import ceil_lbs, volume_cuft

logger = logging.getLogger(__name__)

DEFAULT_ZONE = 3

# ZIP prefix -> zone
SHIPPING_ZONES = {
    # Zone 1: Local/Regional (UT, ID, WY, CO, NV, AZ, NM)
    "80": 1, "81": 1, "82": 1, "83": 1, "84": 1, "85": 1, "87": 1, "89": 1,
    # Zone 2: West Coast
    "90": 2, "91": 2, "92": 2, "93": 2, "94": 2, "95": 2, "96": 2, "97": 2, "98": 2, "99": 2,
    # Zone 4: East Coast
    "0": 4, "1": 4, "2": 4,
    # Zone 5: Hawaii / Alaska
    "967": 5, "968": 5, "995": 5, "996": 5, "997": 5, "998": 5, "999": 5,
    # Everything else falls to zone 3 (Midwest)
}

# $/lb by zone and method
BASE_RATES = {
    1: {"standard": Decimal("0.50"), "expedited": Decimal("0.75"), "freight": Decimal("0.40")},
    2: {"standard": Decimal("0.65"), "expedited": Decimal("0.90"), "freight": Decimal("0.55")},
    3: {"standard": Decimal("0.80"), "expedited": Decimal("1.10"), "freight": Decimal("0.70")},
    4: {"standard": Decimal("0.95"), "expedited": Decimal("1.30"), "freight": Decimal("0.85")},
    5: {"standard": Decimal("1.50"), "expedited": Decimal("2.00"), "freight": Decimal("1.20")},
}

MINIMUM_SHIPPING = {
    "standard": Decimal("25.00"),
    "expedited": Decimal("45.00"),
    "freight": Decimal("50.00"),
}

DELIVERY_DAYS = {
    "standard": "7-14 business days",
    "expedited": "3-5 business days",
    "freight": "5-10 business days",
    "pickup": "Ready when fabrication completes",
}

METHOD_NAMES = {
    "standard": ("Standard Shipping", "Ground shipping via standard carrier"),
    "expedited": ("Expedited Shipping", "Faster delivery for urgent orders"),
    "freight": ("Freight Shipping", "LTL freight for large/heavy items"),
    "pickup": ("Will Call Pickup", "Pick up at our shop"),
}


class ShippingTable(CamelModel):
    zones: Dict[str, int] = dict(SHIPPING_ZONES)
    default_zone: int = DEFAULT_ZONE
    rates: Dict[int, Dict[str, Decimal]] = Field(default_factory=lambda: {
        zone: dict(rates) for zone, rates in BASE_RATES.items()
    })
    minimums: Dict[str, Decimal] = dict(MINIMUM_SHIPPING)
    transit_days: Dict[str, str] = dict(DELIVERY_DAYS)
    pickup_zones: List[int] = [1]

    # Freight thresholds
    freight_weight_lbs: int = 500
    freight_max_dimension_in: Decimal = Decimal("96")
    freight_volume_cuft: Decimal = Decimal("50")

    # Method availability
    expedited_max_weight_lbs: int = 200
    freight_offer_weight_lbs: int = 300

    # Minimum package
    min_length_in: Decimal = Decimal("12")
    min_width_in: Decimal = Decimal("12")
    min_height_in: Decimal = Decimal("6")

    def zone_for_zip(self, zip_code: str) -> int:
        digits = (zip_code or "").strip()
        for size in range(len(digits), 0, -1):
            zone = self.zones.get(digits[:size])
            if zone is not None:
                return zone
        return self.default_zone

    def rate(self, zone: int, method: str) -> Decimal:
        rates = self.rates.get(zone) or self.rates[self.default_zone]
        return rates[method]


class ShippingEngine:

    def __init__(self, table: Optional[ShippingTable] = None):
        self.table = table or ShippingTable()

    def calculate_shipping(self, lines: List[NormalizedLine], address: Address,
                           preferred_method: Optional[ShippingMethod] = None) -> ShippingResult:
        """
        Shipping options and the selected method for a set of validated lines.

        Raises:
            EmptyCart: no lines
            MissingAddressFields: zip or state missing
        """
        if not lines:
            raise EmptyCart()
        missing = address.missing_jurisdiction_fields()
        if missing:
            raise MissingAddressFields(missing)

        weight = self.total_weight(lines)
        dimensions = self.total_dimensions(lines)
        zone = self.table.zone_for_zip(address.zip)
        needs_freight = self.requires_freight(weight, dimensions)

        options = self._options(weight, zone, needs_freight)
        selected = self._select(options, needs_freight, preferred_method)

        logger.debug(
            "Shipping %s lbs to zone %s: %s (freight required: %s)",
            weight, zone, selected.method.value, needs_freight,
        )

        return ShippingResult(
            options=options,
            selected_method=selected.method,
            selected_cost=selected.cost,
            total_weight=weight,
            total_dimensions=dimensions,
            zone=zone,
            requires_freight=needs_freight,
        )

    def total_weight(self, lines: List[NormalizedLine]) -> int:
        """Sum of unit weight × quantity, rounded up to the pound."""
        total = sum((line.shipping.unit_weight_lbs * line.quantity for line in lines), Decimal(0))
        return ceil_lbs(total)

    def total_dimensions(self, lines: List[NormalizedLine]) -> PackageDimensions:
        # Flat-packed items set the footprint; everything stacks
        length = width = height = Decimal(0)
        for line in lines:
            profile = line.shipping
            length = max(length, profile.footprint_length_in)
            width = max(width, profile.footprint_width_in)
            height += profile.stack_height_in * line.quantity

        return PackageDimensions(
            length=max(length, self.table.min_length_in),
            width=max(width, self.table.min_width_in),
            height=max(height, self.table.min_height_in),
        )

    def requires_freight(self, weight: int, dimensions: PackageDimensions) -> bool:
        t = self.table
        return (
            weight > t.freight_weight_lbs
            or max(dimensions.length, dimensions.width, dimensions.height) > t.freight_max_dimension_in
            or volume_cuft(dimensions.length, dimensions.width, dimensions.height) > t.freight_volume_cuft
        )

    def _options(self, weight: int, zone: int, needs_freight: bool) -> List[ShippingOption]:
        t = self.table
        options = []

        if not needs_freight:
            options.append(self._priced_option(ShippingMethod.STANDARD, weight, zone))
        if weight < t.expedited_max_weight_lbs and not needs_freight:
            options.append(self._priced_option(ShippingMethod.EXPEDITED, weight, zone))
        if needs_freight or weight > t.freight_offer_weight_lbs:
            options.append(self._priced_option(ShippingMethod.FREIGHT, weight, zone))
        if zone in t.pickup_zones:
            options.append(self._option(ShippingMethod.PICKUP, Decimal(0)))

        return options

    def _priced_option(self, method: ShippingMethod, weight: int, zone: int) -> ShippingOption:
        cost = max(weight * self.table.rate(zone, method.value), self.table.minimums[method.value])
        return self._option(method, round2(cost))

    def _option(self, method: ShippingMethod, cost: Decimal) -> ShippingOption:
        name, description = METHOD_NAMES[method.value]
        return ShippingOption(
            method=method,
            name=name,
            description=description,
            estimated_days=self.table.transit_days.get(method.value, ""),
            cost=cost,
        )

    def _select(self, options: List[ShippingOption], needs_freight: bool,
                preferred: Optional[ShippingMethod]) -> ShippingOption:
        by_method = {opt.method: opt for opt in options}

        if preferred is not None and preferred in by_method:
            return by_method[preferred]
        if needs_freight and ShippingMethod.FREIGHT in by_method:
            return by_method[ShippingMethod.FREIGHT]
        if ShippingMethod.STANDARD in by_method:
            return by_method[ShippingMethod.STANDARD]

        # Options are built in declaration order, so min() keeps the first on ties
        carriers = [opt for opt in options if opt.method != ShippingMethod.PICKUP]
        return min(carriers, key=lambda opt: opt.cost)
