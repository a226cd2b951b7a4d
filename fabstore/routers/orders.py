"""
Checkout, order lookup, payment retry, fulfillment and order documents.

POST /api/checkout                            quote the cart, create the order, open a payment intent
GET  /api/orders/{job_id}                     order status
POST /api/orders/{job_id}/retry-payment       new order + intent for a failed one
POST /api/orders/{job_id}/status              fulfillment status, tracking number, notes
GET  /api/orders/{job_id}/documents?type=     shop packet or quote PDF URL (rendered once)
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import AliasChoices, Field

from ..dependencies import Services, get_services
from ..orders import CheckoutResult
from ..schemas import Address, CamelModel, CartItem, CustomerInfo, DocumentType, FulfillmentStatus, ShippingMethod

router = APIRouter(tags=["orders"])


class CheckoutRequest(CamelModel):
    items: List[CartItem] = []
    address: Address = Field(
        default_factory=Address,
        validation_alias=AliasChoices("address", "shippingAddress", "shipping_address"),
    )
    customer_info: Optional[CustomerInfo] = None
    preferred_shipping_method: Optional[ShippingMethod] = None
    is_tax_exempt: bool = False
    job_id: Optional[str] = None


class FulfillmentUpdate(CamelModel):
    status: FulfillmentStatus
    tracking_number: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    note: Optional[str] = None


def _checkout_response(result: CheckoutResult) -> dict:
    order = result.order
    return {
        "success": True,
        "jobId": order.job_id,
        "clientSecret": result.client_secret,
        "paymentIntentId": order.payment_intent_id,
        "total": float(order.total),
        "order": order.to_json_dict(),
    }


@router.post("/checkout")
def checkout(request: CheckoutRequest, services: Services = Depends(get_services)):
    result = services.orders.checkout(
        request.items,
        request.address,
        customer=request.customer_info,
        preferred_shipping_method=request.preferred_shipping_method,
        is_tax_exempt=request.is_tax_exempt,
        job_id=request.job_id,
    )
    return _checkout_response(result)


@router.get("/orders/{job_id}")
def get_order(job_id: str, services: Services = Depends(get_services)):
    order = services.orders.get_order(job_id)
    return {"success": True, "order": order.to_json_dict()}


@router.post("/orders/{job_id}/retry-payment")
def retry_payment(job_id: str, services: Services = Depends(get_services)):
    result = services.orders.retry_payment(job_id)
    return _checkout_response(result)


@router.post("/orders/{job_id}/status")
def update_status(job_id: str, update: FulfillmentUpdate, services: Services = Depends(get_services)):
    order = services.orders.update_fulfillment(
        job_id,
        update.status,
        tracking_number=update.tracking_number,
        estimated_delivery_date=update.estimated_delivery_date,
        note=update.note,
    )
    return {"success": True, "order": order.to_json_dict()}


@router.get("/orders/{job_id}/documents")
def get_document(
    job_id: str,
    type: str = Query("shop_packet"),
    services: Services = Depends(get_services),
):
    try:
        doc_type = DocumentType.parse(type)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown document type '{type}'. Use shop_packet or quote.",
        )

    url = services.documents.ensure_document(job_id, doc_type)
    body = {"success": True, "pdfUrl": url, "documentType": doc_type.value}
    if doc_type == DocumentType.QUOTE:
        order = services.orders.get_order(job_id)
        if order.quote_expires_at:
            body["expiresAt"] = order.quote_expires_at.isoformat()
    return body
