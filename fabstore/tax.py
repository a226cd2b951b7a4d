"""
Sales tax engine.

State base rates only; local/county add-ons are not collected. Unknown
jurisdictions fail open at 0% (under-collection is preferred to blocking
checkout); that is a policy choice, so the lookup is logged and the table is
swappable per deployment.
"""

import enum
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from .exceptions import MissingAddressFields
from .money import ZERO, D, round2
from .schemas import Address, CamelModel, TaxResult

logger = logging.getLogger(__name__)


class CustomFabricationPolicy(str, enum.Enum):
    """What a custom-fabrication order in a manufacturing-exempt state gets."""
    CHARGE = "charge"                    # charge the normal rate
    FLAG_FOR_REVIEW = "flag_for_review"  # charge, but flag for exemption-certificate review
    EXEMPT = "exempt"                    # zero the rate


# State sales tax rates (2024 state base rates)
STATE_TAX_RATES = {
    # No state sales tax
    "AK": Decimal("0"),
    "DE": Decimal("0"),
    "MT": Decimal("0"),
    "NH": Decimal("0"),
    "OR": Decimal("0"),
    # State base rate (+ local, not collected)
    "AL": Decimal("0.04"),
    "AR": Decimal("0.065"),
    "AZ": Decimal("0.056"),
    "CA": Decimal("0.0725"),
    "CO": Decimal("0.029"),
    "CT": Decimal("0.0635"),
    "FL": Decimal("0.06"),
    "GA": Decimal("0.04"),
    "HI": Decimal("0.04"),
    "IA": Decimal("0.06"),
    "ID": Decimal("0.06"),
    "IL": Decimal("0.0625"),
    "IN": Decimal("0.07"),
    "KS": Decimal("0.065"),
    "KY": Decimal("0.06"),
    "LA": Decimal("0.0445"),
    "MA": Decimal("0.0625"),
    "MD": Decimal("0.06"),
    "ME": Decimal("0.055"),
    "MI": Decimal("0.06"),
    "MN": Decimal("0.06875"),
    "MO": Decimal("0.04225"),
    "MS": Decimal("0.07"),
    "NC": Decimal("0.0475"),
    "ND": Decimal("0.05"),
    "NE": Decimal("0.055"),
    "NJ": Decimal("0.06625"),
    "NM": Decimal("0.05125"),
    "NV": Decimal("0.0685"),
    "NY": Decimal("0.04"),
    "OH": Decimal("0.0575"),
    "OK": Decimal("0.045"),
    "PA": Decimal("0.06"),
    "RI": Decimal("0.07"),
    "SC": Decimal("0.06"),
    "SD": Decimal("0.045"),
    "TN": Decimal("0.07"),
    "TX": Decimal("0.0625"),
    "UT": Decimal("0.061"),
    "VA": Decimal("0.053"),
    "VT": Decimal("0.06"),
    "WA": Decimal("0.065"),
    "WI": Decimal("0.05"),
    "WV": Decimal("0.06"),
    "WY": Decimal("0.04"),
    "DC": Decimal("0.06"),
}

# Manufacturing equipment / custom fabrication may qualify for exemption here
MANUFACTURING_EXEMPT_STATES = ["UT", "TX", "CA"]


class TaxTable(CamelModel):
    rates: Dict[str, Decimal] = dict(STATE_TAX_RATES)
    manufacturing_exempt_states: List[str] = list(MANUFACTURING_EXEMPT_STATES)
    custom_fabrication_policy: CustomFabricationPolicy = CustomFabricationPolicy.CHARGE


class TaxEngine:

    def __init__(self, table: Optional[TaxTable] = None):
        self.table = table or TaxTable()

    def calculate_tax(self, subtotal, address: Address, is_exempt: bool = False,
                      is_custom_fabrication: bool = False) -> TaxResult:
        """
        Tax on the order subtotal (shipping is never taxed here).

        Exempt customers short-circuit to zero regardless of jurisdiction.

        Raises:
            MissingAddressFields: no state on a non-exempt request
        """
        subtotal = D(subtotal)
        if is_exempt:
            return TaxResult(
                tax_rate=Decimal("0"),
                tax_amount=ZERO,
                taxable_amount=round2(subtotal),
                is_exempt=True,
            )

        state = _state_code(address)
        if not state:
            raise MissingAddressFields(["state"])
        rate = self.rate_for_state(state)
        exemption_review = False

        if is_custom_fabrication and state in self.table.manufacturing_exempt_states:
            policy = self.table.custom_fabrication_policy
            if policy == CustomFabricationPolicy.EXEMPT:
                logger.info("Custom fabrication exemption applied for %s", state)
                rate = Decimal("0")
            elif policy == CustomFabricationPolicy.FLAG_FOR_REVIEW:
                exemption_review = True

        return TaxResult(
            tax_rate=rate,
            tax_amount=round2(subtotal * rate),
            taxable_amount=round2(subtotal),
            is_exempt=False,
            exemption_review=exemption_review,
        )

    def rate_for_state(self, state: Optional[str]) -> Decimal:
        """Rate for a state code. Unknown codes are 0 (fail-open)."""
        code = (state or "").strip().upper()
        if code not in self.table.rates:
            logger.warning("No tax rate for jurisdiction %r, charging 0%%", code)
            return Decimal("0")
        return D(self.table.rates[code])

    def state_has_sales_tax(self, state: Optional[str]) -> bool:
        code = (state or "").strip().upper()
        return self.table.rates.get(code, Decimal("0")) > 0


def _state_code(address: Address) -> str:
    return (address.state or "").strip().upper()
