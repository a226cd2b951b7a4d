from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ..dependencies import Services, get_services
from ..exceptions import EmptyCart
from ..schemas import Address, CamelModel, CartItem, ShippingMethod

router = APIRouter(prefix="/shipping", tags=["shipping"])


class ShippingRequest(CamelModel):
    items: List[CartItem] = []
    address: Address = Field(default_factory=Address)
    preferred_method: Optional[ShippingMethod] = None


@router.post("/calculate")
def calculate_shipping(request: ShippingRequest, services: Services = Depends(get_services)):
    """Shipping options for a cart. Items are validated first; weights come from the validated configs."""
    if not request.items:
        raise EmptyCart()
    lines = services.quote_builder.validate_lines(request.items)
    result = services.shipping.calculate_shipping(lines, request.address, request.preferred_method)
    return {"success": True, **result.to_json_dict()}
