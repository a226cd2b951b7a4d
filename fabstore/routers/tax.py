from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ..dependencies import Services, get_services
from ..schemas import Address, CamelModel

router = APIRouter(prefix="/tax", tags=["tax"])


class TaxRequest(CamelModel):
    subtotal: Decimal = Field(ge=0)
    address: Address = Field(default_factory=Address)
    is_tax_exempt: bool = False
    is_custom_fabrication: bool = False


@router.post("/calculate")
def calculate_tax(request: TaxRequest, services: Services = Depends(get_services)):
    result = services.tax.calculate_tax(
        request.subtotal,
        request.address,
        is_exempt=request.is_tax_exempt,
        is_custom_fabrication=request.is_custom_fabrication,
    )
    return {"success": True, **result.to_json_dict()}
