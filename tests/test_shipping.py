"""
Shipping: weights, zones, method availability and selection.
"""

from decimal import Decimal

import pytest

from fabstore.exceptions import EmptyCart, MissingAddressFields
from fabstore.schemas import Address, ShippingMethod
from fabstore.shipping import ShippingEngine, ShippingTable
from fabstore.validator import ConfigValidator


def _lines(*configs):
    validator = ConfigValidator()
    return [validator.validate(c) for c in configs]


def _methods(result):
    return [o.method for o in result.options]


def _cost(result, method):
    return next(o.cost for o in result.options if o.method == method)


def test_embed_cart_to_utah(embed_config, utah_address):
    """10 embeds at 16.084 lbs = 160.84 -> 161 lbs, zone 1."""
    result = ShippingEngine().calculate_shipping(_lines(embed_config), utah_address)
    assert result.total_weight == 161
    assert result.zone == 1
    assert result.requires_freight is False
    assert _methods(result) == [ShippingMethod.STANDARD, ShippingMethod.EXPEDITED, ShippingMethod.PICKUP]
    assert _cost(result, ShippingMethod.STANDARD) == Decimal("80.50")
    assert _cost(result, ShippingMethod.EXPEDITED) == Decimal("120.75")
    assert _cost(result, ShippingMethod.PICKUP) == Decimal("0")
    assert result.selected_method == ShippingMethod.STANDARD
    assert result.selected_cost == Decimal("80.50")


def test_embed_package_dimensions(embed_config, utah_address):
    result = ShippingEngine().calculate_shipping(_lines(embed_config), utah_address)
    dims = result.total_dimensions
    assert (dims.length, dims.width, dims.height) == (12, 12, 20)


def test_preferred_method_honoured(embed_config, utah_address):
    engine = ShippingEngine()
    lines = _lines(embed_config)
    expedited = engine.calculate_shipping(lines, utah_address, ShippingMethod.EXPEDITED)
    assert expedited.selected_method == ShippingMethod.EXPEDITED
    assert expedited.selected_cost == Decimal("120.75")

    pickup = engine.calculate_shipping(lines, utah_address, ShippingMethod.PICKUP)
    assert pickup.selected_cost == Decimal("0")


def test_minimum_charge_applies(embed_config, utah_address):
    embed_config["quantity"] = 1
    result = ShippingEngine().calculate_shipping(_lines(embed_config), utah_address)
    assert result.total_weight == 17
    assert _cost(result, ShippingMethod.STANDARD) == Decimal("25.00")
    assert _cost(result, ShippingMethod.EXPEDITED) == Decimal("45.00")


def test_gate_requires_freight(gate_config, utah_address):
    """12x6 gate: 150 + 72 sq ft x 5 = 510 lbs, 144 in long."""
    result = ShippingEngine().calculate_shipping(_lines(gate_config), utah_address)
    assert result.total_weight == 510
    assert result.requires_freight is True
    assert _methods(result) == [ShippingMethod.FREIGHT, ShippingMethod.PICKUP]
    assert result.selected_method == ShippingMethod.FREIGHT
    assert result.selected_cost == Decimal("204.00")


def test_freight_required_ignores_unavailable_preference(gate_config):
    chicago = Address(state="IL", zip="60601")
    result = ShippingEngine().calculate_shipping(_lines(gate_config), chicago, ShippingMethod.STANDARD)
    assert result.zone == 3
    assert _methods(result) == [ShippingMethod.FREIGHT]
    assert result.selected_method == ShippingMethod.FREIGHT
    assert result.selected_cost == Decimal("357.00")


def test_heavy_cart_offers_freight_but_defaults_to_standard(embed_config, utah_address):
    """20 embeds = 322 lbs: freight offered (> 300), expedited withdrawn (>= 200)."""
    embed_config["quantity"] = 20
    result = ShippingEngine().calculate_shipping(_lines(embed_config), utah_address)
    assert result.total_weight == 322
    assert _methods(result) == [ShippingMethod.STANDARD, ShippingMethod.FREIGHT, ShippingMethod.PICKUP]
    assert result.selected_method == ShippingMethod.STANDARD


@pytest.mark.parametrize("zip_code,zone", [
    ("84101", 1),
    ("83702", 1),
    ("90210", 2),
    ("96801", 5),
    ("99501", 5),
    ("98101", 2),
    ("10001", 4),
    ("60601", 3),
])
def test_zone_by_longest_prefix(zip_code, zone):
    assert ShippingTable().zone_for_zip(zip_code) == zone


def test_empty_cart_rejected(utah_address):
    with pytest.raises(EmptyCart):
        ShippingEngine().calculate_shipping([], utah_address)


def test_missing_zip_rejected(embed_config):
    with pytest.raises(MissingAddressFields) as exc:
        ShippingEngine().calculate_shipping(_lines(embed_config), Address(state="UT"))
    assert exc.value.missing == ["zip"]
    assert exc.value.field == "address.zip"


def test_missing_zip_and_state_rejected(embed_config):
    with pytest.raises(MissingAddressFields) as exc:
        ShippingEngine().calculate_shipping(_lines(embed_config), Address(city="Ogden"))
    assert exc.value.missing == ["zip", "state"]


def test_same_cart_same_result(embed_config, gate_config, utah_address):
    engine = ShippingEngine()
    lines = _lines(embed_config, gate_config)
    assert engine.calculate_shipping(lines, utah_address) == engine.calculate_shipping(lines, utah_address)


def test_custom_table_without_pickup(embed_config, utah_address):
    engine = ShippingEngine(ShippingTable(pickup_zones=[]))
    result = engine.calculate_shipping(_lines(embed_config), utah_address)
    assert ShippingMethod.PICKUP not in _methods(result)
