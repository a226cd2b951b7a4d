"""
Steel plate embed variant.

Pricing: material weight × $/lb + perimeter cutting + stud welding + finish
(area rate with a minimum charge), then the lead-time multiplier, then the
margin buffer. Stud coordinates are measured from the plate centre.
"""

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field

from ..money import round2
from ..schemas import CamelModel, ShippingProfile
from ..weights import embed_weight, sqin_from_dimensions, weight_from_dimensions
from .base import FieldError, PriceBreakdown, PricingTable, ProductVariant

# Validation constraints (inches)
PLATE_LENGTH = (Decimal("2"), Decimal("96"))
PLATE_WIDTH = (Decimal("2"), Decimal("96"))
PLATE_THICKNESS = (Decimal("0.25"), Decimal("2.0"))
STUD_DIAMETER = (Decimal("0.25"), Decimal("2.0"))
MAX_STUDS = 40

# Above this stud count the shop reviews the quote by hand
REVIEW_STUD_COUNT = 20


class Plate(CamelModel):
    length: Decimal
    width: Decimal
    thickness: Decimal
    material: Literal["A36", "A572", "A588", "A992"]


class StudPosition(CamelModel):
    x: Decimal = Decimal("0")
    y: Decimal = Decimal("0")
    diameter: Decimal
    length: Decimal  # protrusion
    grade: Literal["A307", "A325"] = "A307"


class StudLayout(CamelModel):
    positions: List[StudPosition] = []


class ContactInfo(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None


class SteelPlateEmbedConfig(CamelModel):
    product_type: Literal["steel-plate-embeds"] = "steel-plate-embeds"
    plate: Plate
    studs: Optional[StudLayout] = None
    finish: Literal["none", "primer", "galv"] = "none"
    tolerance: Literal["standard", "tight"] = "standard"
    quantity: int
    lead_time: Literal["standard", "rush"] = "standard"
    is_custom_fabrication: bool = True
    project_name: Optional[str] = None
    project_number: Optional[str] = None
    contact_info: Optional[ContactInfo] = None
    special_instructions: Optional[str] = Field(default=None, max_length=2000)

    @property
    def stud_positions(self) -> List[StudPosition]:
        return self.studs.positions if self.studs else []


FINISH_NAMES = {"none": "no finish", "primer": "primer", "galv": "hot-dip galvanized"}


class SteelPlateEmbedProduct(ProductVariant):

    product_type = "steel-plate-embeds"
    config_model = SteelPlateEmbedConfig

    def validate(self, config: SteelPlateEmbedConfig) -> List[FieldError]:
        errors = []
        plate = config.plate

        dims_ok = True
        for name, value, bounds in (
            ("length", plate.length, PLATE_LENGTH),
            ("width", plate.width, PLATE_WIDTH),
            ("thickness", plate.thickness, PLATE_THICKNESS),
        ):
            field = f"plate.{name}"
            if self.check_positive(errors, field, value):
                self.check_range(errors, field, value, bounds[0], bounds[1], '"')
            else:
                dims_ok = False

        studs = config.stud_positions
        if len(studs) > MAX_STUDS:
            errors.append(FieldError("studs.positions", f"Stud count must not exceed {MAX_STUDS}"))

        half_length = plate.length / 2
        half_width = plate.width / 2
        for i, stud in enumerate(studs):
            prefix = f"studs.positions[{i}]"
            self.check_range(errors, f"{prefix}.diameter", stud.diameter, *STUD_DIAMETER, '"')
            self.check_positive(errors, f"{prefix}.length", stud.length)
            if dims_ok:
                if abs(stud.x) > half_length:
                    errors.append(FieldError(
                        f"{prefix}.x",
                        f"Stud {i + 1} x offset {stud.x}\" is outside the plate (±{half_length}\")",
                    ))
                if abs(stud.y) > half_width:
                    errors.append(FieldError(
                        f"{prefix}.y",
                        f"Stud {i + 1} y offset {stud.y}\" is outside the plate (±{half_width}\")",
                    ))

        if config.quantity < 1:
            errors.append(FieldError("quantity", "Quantity must be at least 1"))

        return errors

    def price(self, config: SteelPlateEmbedConfig, table: PricingTable) -> PriceBreakdown:
        """Part-level price for one embed. No per-order setup fee."""
        plate = config.plate
        lines = []

        weight = weight_from_dimensions(plate.length, plate.width, plate.thickness, plate.material)
        rate = table.material_cost_per_lb.get(plate.material, table.material_cost_per_lb["A36"])
        material_cost = weight * rate
        lines.append(self.make_line(f"Material ({plate.material}, {weight:.2f} lbs)", material_cost))

        perimeter = 2 * (plate.length + plate.width)
        cutting_cost = perimeter * table.cutting_rate_per_inch
        lines.append(self.make_line(f"Cutting ({perimeter:.1f}\" perimeter)", cutting_cost))

        studs = config.stud_positions
        stud_cost = Decimal(0)
        if studs:
            stud_cost = len(studs) * table.stud_welding_rate
            lines.append(self.make_line(
                f"Stud welding ({len(studs)} studs, {studs[0].grade})", stud_cost, quantity=len(studs),
            ))

        finish_cost = Decimal(0)
        if config.finish != "none":
            area = sqin_from_dimensions(plate.length, plate.width)
            finish_cost = max(
                area * table.finish_rate_per_sqin.get(config.finish, Decimal(0)),
                table.finish_min_charge.get(config.finish, Decimal(0)),
            )
            lines.append(self.make_line(f"Finish ({config.finish})", finish_cost))

        unit_price = material_cost + cutting_cost + stud_cost + finish_cost
        unit_price = self.apply_lead_time(unit_price, config.lead_time, table, lines)

        margin = unit_price * (table.margin_multiplier - 1)
        unit_price = unit_price * table.margin_multiplier
        lines.append(self.make_line("Margin", margin))

        return PriceBreakdown(
            unit_price=round2(unit_price),
            lines=lines,
            confidence=self.confidence(config),
            lead_time_note="Rush" if config.lead_time == "rush" else "Standard",
        )

    def confidence(self, config: SteelPlateEmbedConfig) -> str:
        """'high' when the part is routine; anything unusual goes to manual review."""
        plate = config.plate
        aspect = plate.length / plate.width
        routine = (
            Decimal("0.5") <= aspect <= Decimal("2.0")
            and PLATE_THICKNESS[0] <= plate.thickness <= PLATE_THICKNESS[1]
            and len(config.stud_positions) < REVIEW_STUD_COUNT
            and config.finish in ("none", "primer")
            and config.tolerance == "standard"
        )
        return "high" if routine else "review"

    def describe(self, config: SteelPlateEmbedConfig) -> str:
        plate = config.plate
        parts = [
            f'Steel plate embed {_num(plate.length)}" x {_num(plate.width)}" x {_num(plate.thickness)}" {plate.material}',
        ]
        count = len(config.stud_positions)
        if count:
            parts.append(f"{count} stud{'s' if count != 1 else ''}")
        parts.append(FINISH_NAMES[config.finish])
        if config.lead_time == "rush":
            parts.append("rush")
        return ", ".join(parts)

    def shipping_profile(self, config: SteelPlateEmbedConfig) -> ShippingProfile:
        plate = config.plate
        return ShippingProfile(
            unit_weight_lbs=embed_weight(
                plate.length, plate.width, plate.thickness, len(config.stud_positions), plate.material,
            ),
            stack_height_in=Decimal("2"),
        )

    def spec_sheet(self, config: SteelPlateEmbedConfig) -> List[List[str]]:
        plate = config.plate
        rows = [
            ["Plate", f'{_num(plate.length)}" L x {_num(plate.width)}" W x {_num(plate.thickness)}" T'],
            ["Material", plate.material],
            ["Finish", FINISH_NAMES[config.finish]],
            ["Tolerance", config.tolerance],
            ["Lead time", config.lead_time],
            ["Quantity", str(config.quantity)],
        ]
        if config.project_name:
            rows.insert(0, ["Project", config.project_name])
        if config.project_number:
            rows.insert(1, ["Project #", config.project_number])
        for i, stud in enumerate(config.stud_positions, start=1):
            rows.append([
                f"Stud {i}",
                f'{_num(stud.diameter)}" dia x {_num(stud.length)}" {stud.grade} @ ({_num(stud.x)}, {_num(stud.y)})',
            ])
        if config.special_instructions:
            rows.append(["Notes", config.special_instructions])
        return rows


def _num(value: Decimal) -> str:
    """Render 12.500 as 12.5 and 12.0 as 12."""
    return f"{Decimal(value).normalize():f}"
