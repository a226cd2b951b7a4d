"""
Server-side quoting.

POST /api/quote: validate the cart and return the authoritative quote
(subtotal, tax, shipping, total). Client-side prices are never trusted.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ..dependencies import Services, get_services
from ..schemas import Address, CamelModel, CartItem, ShippingMethod

router = APIRouter(tags=["quotes"])


class QuoteRequest(CamelModel):
    items: List[CartItem] = []
    address: Address = Field(default_factory=Address)
    preferred_shipping_method: Optional[ShippingMethod] = None
    is_tax_exempt: bool = False
    is_custom_fabrication: Optional[bool] = None


@router.post("/quote")
def create_quote(request: QuoteRequest, services: Services = Depends(get_services)):
    quote = services.quote_builder.build_quote(
        request.items,
        request.address,
        is_exempt=request.is_tax_exempt,
        preferred_shipping_method=request.preferred_shipping_method,
        is_custom_fabrication=request.is_custom_fabrication,
    )
    return {"success": True, **quote.to_json_dict()}
