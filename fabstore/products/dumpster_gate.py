"""
Dumpster enclosure gate variant.

Named sizes price from the base table; custom sizes price per foot of width
plus a flat custom-fabrication surcharge. Finish and posts are flat adders.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import List, Literal, Optional

from ..schemas import CamelModel, ShippingProfile
from ..money import round2
from ..weights import gate_weight
from .base import FieldError, PriceBreakdown, PricingTable, ProductVariant

MIN_WIDTH_FT = Decimal("8")
MAX_WIDTH_FT = Decimal("20")
MIN_HEIGHT_FT = Decimal("5")
MAX_HEIGHT_FT = Decimal("8")
MAX_SINGLE_SWING_WIDTH_FT = Decimal("14")

GATE_DIMENSIONS = {
    "10x6": (Decimal("10"), Decimal("6")),
    "12x6": (Decimal("12"), Decimal("6")),
    "14x6": (Decimal("14"), Decimal("6")),
    "16x6": (Decimal("16"), Decimal("6")),
    "18x6": (Decimal("18"), Decimal("6")),
}

FINISH_NAMES = {
    "raw-steel": "Raw steel",
    "prime-painted": "Prime painted",
    "powder-coat-black": "Powder coat (black)",
    "galvanized": "Galvanized",
}

STYLE_NAMES = {
    "double-swing": "double swing",
    "single-swing-left": "single swing (left)",
    "single-swing-right": "single swing (right)",
}


class DumpsterGateConfig(CamelModel):
    product_type: Literal["dumpster-gate"] = "dumpster-gate"
    size: Literal["10x6", "12x6", "14x6", "16x6", "18x6", "custom"]
    width_ft: Optional[Decimal] = None
    height_ft: Optional[Decimal] = None
    style: Literal["double-swing", "single-swing-left", "single-swing-right"]
    finish: Literal["raw-steel", "prime-painted", "powder-coat-black", "galvanized"]
    mounting: Literal["with-posts", "gate-only"]
    quantity: int
    lead_time: Literal["standard", "rush"] = "standard"
    is_custom_fabrication: bool = True

    @property
    def is_custom(self) -> bool:
        return self.size == "custom"

    def dimensions(self):
        """(width_ft, height_ft). Named sizes win over any explicit values."""
        if self.size in GATE_DIMENSIONS:
            return GATE_DIMENSIONS[self.size]
        return self.width_ft, self.height_ft


class DumpsterGateProduct(ProductVariant):

    product_type = "dumpster-gate"
    config_model = DumpsterGateConfig

    def validate(self, config: DumpsterGateConfig) -> List[FieldError]:
        errors = []
        width, height = config.dimensions()

        if config.is_custom:
            if width is None:
                errors.append(FieldError("widthFt", "Width is required for custom gate sizes"))
            if height is None:
                errors.append(FieldError("heightFt", "Height is required for custom gate sizes"))

        if width is not None and self.check_positive(errors, "widthFt", width):
            if width < MIN_WIDTH_FT:
                errors.append(FieldError("widthFt", f"Minimum width is {MIN_WIDTH_FT}'"))
            elif width > MAX_WIDTH_FT:
                errors.append(FieldError("widthFt", f"Maximum width is {MAX_WIDTH_FT}'"))
            elif config.style != "double-swing" and width > MAX_SINGLE_SWING_WIDTH_FT:
                errors.append(FieldError(
                    "style",
                    f"Maximum single swing width is {MAX_SINGLE_SWING_WIDTH_FT}'. Use a double swing gate.",
                ))

        if height is not None and self.check_positive(errors, "heightFt", height):
            if height < MIN_HEIGHT_FT:
                errors.append(FieldError("heightFt", f"Minimum height is {MIN_HEIGHT_FT}'"))
            elif height > MAX_HEIGHT_FT:
                errors.append(FieldError("heightFt", f"Maximum height is {MAX_HEIGHT_FT}'"))

        if config.quantity < 1:
            errors.append(FieldError("quantity", "Quantity must be at least 1"))

        return errors

    def price(self, config: DumpsterGateConfig, table: PricingTable) -> PriceBreakdown:
        lines = []
        width, height = config.dimensions()

        if config.is_custom:
            base = table.gate_rate_per_foot * width
            lines.append(self.make_line(
                f"Base ({width:.1f} ft @ ${table.gate_rate_per_foot}/ft)", base,
            ))
            lines.append(self.make_line("Custom Fabrication Surcharge", table.gate_custom_surcharge))
            base += table.gate_custom_surcharge
        else:
            base = table.gate_base_prices[config.size]
            lines.append(self.make_line(f"Base gate ({_ft(width)} x {_ft(height)})", base))

        finish_adder = table.gate_finish_adders.get(config.finish, Decimal(0))
        if finish_adder > 0:
            lines.append(self.make_line(FINISH_NAMES[config.finish], finish_adder))

        posts = Decimal(0)
        if config.mounting == "with-posts":
            posts = table.gate_post_cost
            lines.append(self.make_line("Steel posts included", posts))

        unit_price = self.apply_lead_time(base + finish_adder + posts, config.lead_time, table, lines)

        return PriceBreakdown(
            unit_price=round2(unit_price),
            lines=lines,
            confidence="high",
            lead_time_note=self.lead_time_note(config.finish),
        )

    def lead_time_note(self, finish: str) -> str:
        if finish == "powder-coat-black":
            return "2-3 weeks + 3-5 business days"
        if finish == "galvanized":
            return "Extended lead time"
        return "2-3 weeks"

    def describe(self, config: DumpsterGateConfig) -> str:
        width, height = config.dimensions()
        text = f"{_ft(width)} x {_ft(height)} {STYLE_NAMES[config.style]} dumpster gate"
        text += f", {FINISH_NAMES[config.finish].lower()}"
        text += ", with posts" if config.mounting == "with-posts" else ", gate only"
        if config.lead_time == "rush":
            text += ", rush"
        return text

    def shipping_profile(self, config: DumpsterGateConfig) -> ShippingProfile:
        # Gates ship flat-packed: footprint is the gate face, ~2" per gate stacked
        width, height = config.dimensions()
        return ShippingProfile(
            unit_weight_lbs=gate_weight(width, height),
            footprint_length_in=width * 12,
            footprint_width_in=height * 12,
            stack_height_in=Decimal("2"),
        )

    def spec_sheet(self, config: DumpsterGateConfig) -> List[List[str]]:
        width, height = config.dimensions()
        return [
            ["Size", f"{_ft(width)} W x {_ft(height)} H" + (" (custom)" if config.is_custom else "")],
            ["Style", STYLE_NAMES[config.style]],
            ["Finish", FINISH_NAMES[config.finish]],
            ["Mounting", "Steel posts included" if config.mounting == "with-posts" else "Gate only"],
            ["Leaf width", _ft(width / 2 if config.style == "double-swing" else width)],
            ["Ground clearance", '2"'],
            ["Lead time", config.lead_time],
            ["Quantity", str(config.quantity)],
        ]


def _ft(feet: Decimal) -> str:
    """Decimal feet as 15' 6"."""
    whole = int(feet)
    inches = int(((feet - whole) * 12).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if inches == 12:
        whole, inches = whole + 1, 0
    if inches == 0:
        return f"{whole}'"
    return f"{whole}' {inches}\""
