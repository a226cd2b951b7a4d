"""
Order payment status transitions driven by gateway events.

    created ──> awaiting_payment ──> paid ──> refunded
                        │
                        └──> failed

Transitions only move forward. Every event is applied at most once per
order (idempotency key "<intentId>:<kind>" kept on the order), and events
that do not apply to the order's current status are acknowledged no-ops.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from . import payments
from .order_store import OrderStore
from .payments import PaymentEvent
from .schemas import FulfillmentStatus, Order, OrderStatus

logger = logging.getLogger(__name__)

# target status -> statuses it may be entered from
ALLOWED_TRANSITIONS = {
    OrderStatus.AWAITING_PAYMENT: {OrderStatus.CREATED},
    OrderStatus.PAID: {OrderStatus.AWAITING_PAYMENT},
    OrderStatus.FAILED: {OrderStatus.AWAITING_PAYMENT},
    OrderStatus.REFUNDED: {OrderStatus.PAID},
}

EVENT_TARGETS = {
    payments.PAYMENT_SUCCEEDED: OrderStatus.PAID,
    payments.PAYMENT_FAILED: OrderStatus.FAILED,
    payments.CHARGE_REFUNDED: OrderStatus.REFUNDED,
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return current in ALLOWED_TRANSITIONS.get(target, set())


@dataclass
class TransitionResult:
    applied: bool
    duplicate: bool = False
    job_id: Optional[str] = None
    from_status: Optional[OrderStatus] = None
    to_status: Optional[OrderStatus] = None
    reason: str = ""


class PaymentStateMachine:

    def __init__(self, store: OrderStore):
        self.store = store
        self._paid_listeners: List[Callable[[Order], None]] = []

    def on_paid(self, listener: Callable[[Order], None]) -> None:
        """Register a callback fired once per order, after it becomes paid."""
        self._paid_listeners.append(listener)

    def apply(self, event: PaymentEvent) -> TransitionResult:
        target = EVENT_TARGETS.get(event.kind)
        if target is None:
            logger.warning("Ignoring %s event %s", event.event_type or "unrecognized", event.event_id)
            return TransitionResult(applied=False, reason="unhandled event")

        job_id = self._route(event)
        if job_id is None:
            logger.warning(
                "No order for %s event %s (intent=%s, charge=%s)",
                event.kind, event.event_id, event.intent_id, event.charge_id,
            )
            return TransitionResult(applied=False, reason="order not found")

        key = f"{event.intent_id or event.charge_id}:{event.kind}"

        with self.store.locked(job_id) as order:
            current = order.status
            if key in order.processed_events:
                logger.info("Duplicate %s event for %s ignored", event.kind, job_id)
                return TransitionResult(
                    applied=False, duplicate=True, job_id=job_id,
                    from_status=current, to_status=current, reason="duplicate",
                )

            if not can_transition(current, target):
                if current == OrderStatus.FAILED and target == OrderStatus.PAID:
                    logger.warning("Order %s is failed; late payment success ignored", job_id)
                else:
                    logger.info("Order %s: %s -> %s not applicable", job_id, current.value, target.value)
                return TransitionResult(
                    applied=False, job_id=job_id,
                    from_status=current, to_status=current, reason="not applicable",
                )

            order.status = target
            order.processed_events.append(key)
            if target == OrderStatus.PAID:
                order.paid_at = datetime.utcnow()
                if event.charge_id:
                    order.charge_id = event.charge_id
                if any(line.confidence == "review" for line in order.lines):
                    order.fulfillment_status = FulfillmentStatus.IN_REVIEW
                    order.notes.append("Configuration needs shop review before production")
            paid_order = order.model_copy(deep=True) if target == OrderStatus.PAID else None

        logger.info("Order %s: %s -> %s (%s)", job_id, current.value, target.value, event.event_id)

        if paid_order is not None:
            self._notify_paid(paid_order)

        return TransitionResult(applied=True, job_id=job_id, from_status=current, to_status=target)

    def _route(self, event: PaymentEvent) -> Optional[str]:
        if event.kind == payments.CHARGE_REFUNDED:
            job_id = self.store.job_id_for_charge(event.charge_id) if event.charge_id else None
            if job_id:
                return job_id
        if event.intent_id:
            return self.store.job_id_for_intent(event.intent_id)
        return None

    def _notify_paid(self, order: Order) -> None:
        for listener in self._paid_listeners:
            try:
                listener(order)
            except Exception:
                # transition already committed
                logger.exception("on_paid listener failed for %s", order.job_id)
