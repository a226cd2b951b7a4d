"""
Domain models shared across the pipeline.

JSON field names are camelCase (storefront client contract); Python attributes
are snake_case. Both spellings are accepted on input.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .money import ZERO, Money


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class OrderStatus(str, enum.Enum):
    CREATED = "created"                    # unpaid
    AWAITING_PAYMENT = "awaiting_payment"  # payment intent exists
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class FulfillmentStatus(str, enum.Enum):
    """Shop-floor progress of a paid order, independent of payment status."""
    PENDING = "pending"
    IN_REVIEW = "in_review"
    IN_PRODUCTION = "in_production"
    READY = "ready"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class DocumentType(str, enum.Enum):
    SHOP_PACKET = "shop_packet"
    QUOTE = "quote"

    @classmethod
    def parse(cls, value: str) -> "DocumentType":
        """Accepts 'shop-packet' as well as 'shop_packet'."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower().replace("-", "_"))


class ShippingMethod(str, enum.Enum):
    # Declaration order is the tie-break order for option selection
    STANDARD = "standard"
    EXPEDITED = "expedited"
    FREIGHT = "freight"
    PICKUP = "pickup"


# --- Addresses / customers ---

class Address(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = "US"

    def missing_jurisdiction_fields(self) -> list:
        return [f for f in ("zip", "state") if not (getattr(self, f) or "").strip()]


class CustomerInfo(CamelModel):
    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    special_instructions: Optional[str] = None


# --- Cart / line items ---

class CartItem(CamelModel):
    """One cart entry as the client sends it. `price` is informational only."""
    id: Optional[str] = None
    product_type: str
    configuration: dict
    price: Optional[Decimal] = None
    is_custom_fabrication: Optional[bool] = None

    def raw_config(self) -> dict:
        raw = dict(self.configuration)
        raw["productType"] = self.product_type
        if self.is_custom_fabrication is not None:
            raw["isCustomFabrication"] = self.is_custom_fabrication
        return raw


class PriceLine(CamelModel):
    label: str
    amount: Money
    quantity: Optional[int] = None


class ShippingProfile(CamelModel):
    """Per-unit weight and packing footprint of one validated config."""
    unit_weight_lbs: Decimal
    footprint_length_in: Decimal = ZERO  # flat-packed items only
    footprint_width_in: Decimal = ZERO
    stack_height_in: Decimal = Decimal("2")


class NormalizedLine(CamelModel):
    """A validated, priced line item. unit_price includes any rush surcharge."""
    item_id: Optional[str] = None
    product_type: str
    configuration: dict
    description: str
    quantity: int
    unit_price: Money
    price: Money
    is_custom_fabrication: bool = True
    lead_time: str
    lead_time_note: str = ""
    confidence: str = "high"  # 'high' | 'review'
    breakdown: List[PriceLine] = []
    spec_sheet: List[List[str]] = []
    shipping: ShippingProfile


# --- Tax / shipping / quote results ---

class TaxResult(CamelModel):
    tax_rate: Decimal
    tax_amount: Money
    taxable_amount: Money
    is_exempt: bool = False
    exemption_review: bool = False


class ShippingOption(CamelModel):
    method: ShippingMethod
    name: str
    description: str
    estimated_days: str
    cost: Money


class PackageDimensions(CamelModel):
    length: Decimal
    width: Decimal
    height: Decimal


class ShippingResult(CamelModel):
    options: List[ShippingOption]
    selected_method: ShippingMethod
    selected_cost: Money
    total_weight: int
    total_dimensions: PackageDimensions
    zone: int
    requires_freight: bool = False


class Quote(CamelModel):
    lines: List[NormalizedLine]
    subtotal: Money
    tax: TaxResult
    shipping: ShippingResult
    total: Money


# --- Order aggregate ---

class Order(CamelModel):
    job_id: str
    lines: List[NormalizedLine]
    customer: Optional[CustomerInfo] = None
    shipping_address: Address

    subtotal: Money
    shipping_cost: Money
    shipping_method: ShippingMethod
    tax_amount: Money
    tax_rate: Decimal
    is_tax_exempt: bool = False
    total: Money

    status: OrderStatus = OrderStatus.CREATED
    payment_intent_id: Optional[str] = None
    charge_id: Optional[str] = None
    documents: Dict[str, str] = Field(default_factory=dict)
    quote_expires_at: Optional[datetime] = None
    processed_events: List[str] = Field(default_factory=list)
    retry_of: Optional[str] = None

    fulfillment_status: FulfillmentStatus = FulfillmentStatus.PENDING
    estimated_delivery_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    notes: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    paid_at: Optional[datetime] = None
