"""
Checkout, payment retry and fulfillment updates.

Orders are always created from a server-side quote; whatever price the client
shows is ignored. The charged amount is the quote total in integer cents.
"""

import logging
import re
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from .exceptions import InvalidJobId, InvalidOrderState
from .money import to_cents
from .order_store import OrderStore
from .payments import PaymentGateway
from .pricing_engine import PriceQuoteBuilder
from .schemas import Address, CartItem, CustomerInfo, FulfillmentStatus, Order, OrderStatus, ShippingMethod
from .state_machine import can_transition

logger = logging.getLogger(__name__)

_JOB_ID_ALPHABET = string.ascii_uppercase + string.digits

# Caller-supplied job ids become file names and URL segments
JOB_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


def new_job_id() -> str:
    """JOB-<epoch ms>-<7 random alphanumerics>"""
    suffix = "".join(secrets.choice(_JOB_ID_ALPHABET) for _ in range(7))
    return f"JOB-{int(time.time() * 1000)}-{suffix}"


@dataclass
class CheckoutResult:
    order: Order
    client_secret: Optional[str]


class OrderService:

    def __init__(self, store: OrderStore, quote_builder: PriceQuoteBuilder,
                 gateway: PaymentGateway, currency: str = "usd", lead_days: int = 21):
        self.store = store
        self.quote_builder = quote_builder
        self.gateway = gateway
        self.currency = currency
        self.lead_days = lead_days

    def checkout(self, items: List[CartItem], address: Address, customer: Optional[CustomerInfo] = None,
                 preferred_shipping_method: Optional[ShippingMethod] = None,
                 is_tax_exempt: bool = False, job_id: Optional[str] = None) -> CheckoutResult:
        """
        Quote the cart, persist the order, and open a payment intent for its total.

        Raises:
            InvalidJobId: caller-supplied jobId is not a safe identifier
            EmptyCart, ConfigValidationError, MissingAddressFields: bad cart or address
            DuplicateOrder: caller-supplied jobId already exists
            GatewayNotConfigured, PaymentGatewayError: order stays in 'created'
        """
        if job_id is not None and not JOB_ID_PATTERN.fullmatch(job_id):
            raise InvalidJobId(job_id)

        quote = self.quote_builder.build_quote(
            items, address, is_exempt=is_tax_exempt,
            preferred_shipping_method=preferred_shipping_method,
        )

        order = Order(
            job_id=job_id or new_job_id(),
            lines=quote.lines,
            customer=customer,
            shipping_address=address,
            subtotal=quote.subtotal,
            shipping_cost=quote.shipping.selected_cost,
            shipping_method=quote.shipping.selected_method,
            tax_amount=quote.tax.tax_amount,
            tax_rate=quote.tax.tax_rate,
            is_tax_exempt=quote.tax.is_exempt,
            total=quote.total,
            estimated_delivery_date=self._estimated_delivery(),
        )
        self.store.create(order)
        return self._start_payment(order)

    def retry_payment(self, job_id: str) -> CheckoutResult:
        """
        New order (and payment intent) for a failed one. The failed order is not modified.

        Raises:
            OrderNotFound
            InvalidOrderState: order is not failed
        """
        original = self.store.get(job_id)
        if original.status != OrderStatus.FAILED:
            raise InvalidOrderState(
                f"Order {job_id} is {original.status.value}; only failed orders can be retried",
                field="jobId",
            )

        now = datetime.utcnow()
        retry = original.model_copy(deep=True, update={
            "job_id": new_job_id(),
            "status": OrderStatus.CREATED,
            "payment_intent_id": None,
            "charge_id": None,
            "documents": {},
            "quote_expires_at": None,
            "processed_events": [],
            "retry_of": job_id,
            "created_at": now,
            "updated_at": now,
            "paid_at": None,
            "fulfillment_status": FulfillmentStatus.PENDING,
            "estimated_delivery_date": self._estimated_delivery(now),
            "tracking_number": None,
            "notes": [],
        })
        self.store.create(retry)
        logger.info("Order %s created as payment retry of %s", retry.job_id, job_id)
        return self._start_payment(retry)

    def get_order(self, job_id: str) -> Order:
        return self.store.get(job_id)

    def update_fulfillment(self, job_id: str, status: FulfillmentStatus,
                           tracking_number: Optional[str] = None,
                           estimated_delivery_date: Optional[datetime] = None,
                           note: Optional[str] = None) -> Order:
        """
        Move a paid order through the shop (review, production, shipping).

        Raises:
            OrderNotFound
            InvalidOrderState: order is not paid
        """
        with self.store.locked(job_id) as order:
            if order.status != OrderStatus.PAID:
                raise InvalidOrderState(
                    f"Order {job_id} is {order.status.value}; fulfillment needs a paid order",
                    field="jobId",
                )
            previous = order.fulfillment_status
            order.fulfillment_status = status
            if tracking_number:
                order.tracking_number = tracking_number
            if estimated_delivery_date:
                order.estimated_delivery_date = estimated_delivery_date
            if note:
                order.notes.append(note)

        logger.info("Order %s fulfillment %s -> %s", job_id, previous.value, status.value)
        return self.store.get(job_id)

    def _estimated_delivery(self, start: Optional[datetime] = None) -> datetime:
        return (start or datetime.utcnow()) + timedelta(days=self.lead_days)

    def _start_payment(self, order: Order) -> CheckoutResult:
        intent = self.gateway.create_payment_intent(
            to_cents(order.total),
            self.currency,
            order.job_id,
            idempotency_key=order.job_id,
            metadata={"retryOf": order.retry_of} if order.retry_of else None,
        )

        with self.store.locked(order.job_id) as locked_order:
            locked_order.payment_intent_id = intent.intent_id
            if can_transition(locked_order.status, OrderStatus.AWAITING_PAYMENT):
                locked_order.status = OrderStatus.AWAITING_PAYMENT
        updated = self.store.get(order.job_id)

        logger.info("Order %s awaiting payment %s (%s)", order.job_id, intent.intent_id, order.total)
        return CheckoutResult(order=updated, client_secret=intent.client_secret)
