# Steel weight constants used for pricing and shipping proxies.
# Density per AISC; gate weights are the shop's per-leaf estimates.

import math
from decimal import Decimal

# Densities (lb/in³) by plate grade; carbon/HSLA grades are all ~0.283
DENSITIES = {
    "A36": Decimal("0.283"),
    "A572": Decimal("0.283"),
    "A588": Decimal("0.283"),
    "A992": Decimal("0.283"),
}
STEEL_DENSITY = Decimal("0.283")

EMBED_BASE_WEIGHT = Decimal("0.5")   # handling/packaging per embed
STUD_WEIGHT = Decimal("0.5")         # per headed stud

GATE_BASE_WEIGHT = Decimal("150")    # per gate, frame + hardware
GATE_WEIGHT_PER_SQFT = Decimal("5")  # infill sheet


def weight_from_dimensions(length_in, width_in, thickness_in, material: str = "A36") -> Decimal:
    """
    Weight in lbs of a solid rectangular plate (inches).
    """
    density = DENSITIES.get(material, STEEL_DENSITY)
    return Decimal(length_in) * Decimal(width_in) * Decimal(thickness_in) * density


def embed_weight(length_in, width_in, thickness_in, stud_count: int, material: str = "A36") -> Decimal:
    """Shipping weight of one embed: plate + handling + studs."""
    plate = weight_from_dimensions(length_in, width_in, thickness_in, material)
    return plate + EMBED_BASE_WEIGHT + STUD_WEIGHT * stud_count


def gate_weight(width_ft, height_ft) -> Decimal:
    """Shipping weight of one gate."""
    return GATE_BASE_WEIGHT + Decimal(width_ft) * Decimal(height_ft) * GATE_WEIGHT_PER_SQFT


def sqin_from_dimensions(length_in, width_in) -> Decimal:
    """Face area in square inches. Used for finish pricing."""
    return Decimal(length_in) * Decimal(width_in)


def volume_cuft(length_in, width_in, height_in) -> Decimal:
    return Decimal(length_in) * Decimal(width_in) * Decimal(height_in) / Decimal(1728)


def ceil_lbs(weight) -> int:
    """Round a weight up to the next whole pound."""
    return int(math.ceil(Decimal(weight)))
