"""
Payment gateway adapter (Stripe).

Two jobs: create a payment intent for an order total, and turn a signed
webhook delivery into a PaymentEvent. The signature is checked against the
raw request bytes before anything in the payload is trusted.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import stripe

from .exceptions import GatewayNotConfigured, PaymentGatewayError, SignatureVerificationFailed

logger = logging.getLogger(__name__)

# Event kinds
PAYMENT_SUCCEEDED = "payment_succeeded"
PAYMENT_FAILED = "payment_failed"
CHARGE_REFUNDED = "charge_refunded"
UNKNOWN = "unknown"

# Gateway event type -> kind. Cancellation is treated as a failed payment.
EVENT_KINDS = {
    "payment_intent.succeeded": PAYMENT_SUCCEEDED,
    "payment_intent.payment_failed": PAYMENT_FAILED,
    "payment_intent.canceled": PAYMENT_FAILED,
    "charge.refunded": CHARGE_REFUNDED,
}


@dataclass(frozen=True)
class PaymentEvent:
    event_id: str
    event_type: str
    kind: str
    intent_id: Optional[str] = None
    charge_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    client_secret: Optional[str]
    amount_cents: int
    currency: str


class PaymentGateway(ABC):

    @abstractmethod
    def create_payment_intent(self, amount_cents: int, currency: str, job_id: str,
                              idempotency_key: Optional[str] = None,
                              metadata: Optional[dict] = None) -> PaymentIntent:
        pass

    @abstractmethod
    def verify_and_parse(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        """Raises SignatureVerificationFailed for bad or missing signatures."""


class StripeGateway(PaymentGateway):

    def __init__(self, secret_key: str = "", webhook_secret: str = "", tolerance: int = 300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def create_payment_intent(self, amount_cents, currency, job_id, idempotency_key=None,
                              metadata=None) -> PaymentIntent:
        if not self.secret_key:
            raise GatewayNotConfigured("Payment gateway is not configured")

        meta = {"jobId": job_id}
        meta.update(metadata or {})
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=amount_cents,
                currency=currency,
                metadata=meta,
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key or f"{job_id}:payment_intent",
            )
        except stripe.StripeError as e:
            logger.error("Payment intent creation failed for %s: %s", job_id, e)
            raise PaymentGatewayError(f"Payment gateway error: {e.user_message or e}") from e

        logger.info("Payment intent %s created for %s (%d %s)", intent.id, job_id, amount_cents, currency)
        return PaymentIntent(
            intent_id=intent.id,
            client_secret=intent.client_secret,
            amount_cents=amount_cents,
            currency=currency,
        )

    def verify_and_parse(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        if not self.webhook_secret:
            raise GatewayNotConfigured("Webhook secret is not configured")
        if not signature:
            logger.warning("Webhook rejected: missing signature header")
            raise SignatureVerificationFailed("Missing signature")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as e:
            logger.warning("Webhook rejected: body is not UTF-8")
            raise SignatureVerificationFailed("Invalid payload") from e

        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook rejected: invalid signature (%s)", e)
            raise SignatureVerificationFailed("Invalid signature") from e

        try:
            event = json.loads(body)
        except ValueError as e:
            logger.warning("Webhook rejected: signed payload is not JSON")
            raise SignatureVerificationFailed("Invalid payload") from e

        return parse_event(event)


def parse_event(event: dict) -> PaymentEvent:
    """Map a verified gateway event onto the order state machine's vocabulary."""
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    kind = EVENT_KINDS.get(event_type, UNKNOWN)

    intent_id = None
    charge_id = None
    if event_type.startswith("payment_intent."):
        intent_id = obj.get("id")
        charge_id = _id_of(obj.get("latest_charge"))
    elif event_type.startswith("charge."):
        charge_id = obj.get("id")
        intent_id = _id_of(obj.get("payment_intent"))
        if kind == CHARGE_REFUNDED and obj.get("refunded") is False:
            # Partial refund: the order stays paid
            logger.info("Partial refund on charge %s ignored", charge_id)
            kind = UNKNOWN

    return PaymentEvent(
        event_id=event.get("id", ""),
        event_type=event_type,
        kind=kind,
        intent_id=intent_id,
        charge_id=charge_id,
    )


def _id_of(value) -> Optional[str]:
    """Expandable fields arrive as an id string or as the expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value
