"""
Payment gateway webhook.

POST /api/stripe/webhook: verify the Stripe-Signature header against the raw
body, hand the event to the webhook worker, and acknowledge right away.
Events the worker cannot route (unknown order or type) are still acknowledged
so the gateway stops redelivering them.
"""

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from ..dependencies import Services, get_services

router = APIRouter(prefix="/stripe", tags=["webhooks"])


def _receive(services: Services, payload: bytes, signature) -> dict:
    event = services.gateway.verify_and_parse(payload, signature)
    services.webhooks.submit(event)
    return {"received": True}


@router.post("/webhook")
async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    return await run_in_threadpool(_receive, services, payload, signature)
