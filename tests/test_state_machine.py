"""
Payment status transitions: forward-only, at most once per event, routed by intent or charge.
"""

from contextlib import contextmanager
from decimal import Decimal

import pytest

from conftest import cart_item
from fabstore import payments
from fabstore.order_store import InMemoryOrderStore
from fabstore.payments import PaymentEvent
from fabstore.pricing_engine import PriceQuoteBuilder
from fabstore.schemas import Address, FulfillmentStatus, Order, OrderStatus, ShippingMethod
from fabstore.state_machine import PaymentStateMachine, can_transition
from fabstore.webhook_worker import WebhookWorker


def _order(job_id="JOB-1", status=OrderStatus.AWAITING_PAYMENT, intent_id="pi_1", lines=(), **fields):
    return Order(
        job_id=job_id,
        lines=list(lines),
        shipping_address=Address(state="UT", zip="84101"),
        subtotal=Decimal("100.00"),
        shipping_cost=Decimal("25.00"),
        shipping_method=ShippingMethod.STANDARD,
        tax_amount=Decimal("6.10"),
        tax_rate=Decimal("0.061"),
        total=Decimal("131.10"),
        status=status,
        payment_intent_id=intent_id,
        **fields,
    )


def _event(kind, intent_id="pi_1", charge_id=None, event_id="evt_1"):
    event_type = {
        payments.PAYMENT_SUCCEEDED: "payment_intent.succeeded",
        payments.PAYMENT_FAILED: "payment_intent.payment_failed",
        payments.CHARGE_REFUNDED: "charge.refunded",
    }.get(kind, "customer.created")
    return PaymentEvent(event_id=event_id, event_type=event_type, kind=kind,
                        intent_id=intent_id, charge_id=charge_id)


class FlakyStore(InMemoryOrderStore):
    """Fails the first `failures` writes, like a database dropping connections."""

    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    @contextmanager
    def locked(self, job_id):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("database unavailable")
        with super().locked(job_id) as order:
            yield order


@pytest.fixture
def store():
    store = InMemoryOrderStore()
    store.create(_order())
    return store


@pytest.fixture
def machine(store):
    return PaymentStateMachine(store)


def test_succeeded_marks_paid(machine, store):
    result = machine.apply(_event(payments.PAYMENT_SUCCEEDED, charge_id="ch_1"))
    assert result.applied is True
    assert (result.from_status, result.to_status) == (OrderStatus.AWAITING_PAYMENT, OrderStatus.PAID)

    order = store.get("JOB-1")
    assert order.status == OrderStatus.PAID
    assert order.paid_at is not None
    assert order.charge_id == "ch_1"
    assert order.processed_events == ["pi_1:payment_succeeded"]


def test_duplicate_delivery_is_noop(machine, store):
    machine.apply(_event(payments.PAYMENT_SUCCEEDED, event_id="evt_1"))
    paid_at = store.get("JOB-1").paid_at

    # Redelivery may carry a new event id
    again = machine.apply(_event(payments.PAYMENT_SUCCEEDED, event_id="evt_2"))
    assert again.applied is False
    assert again.duplicate is True
    order = store.get("JOB-1")
    assert order.paid_at == paid_at
    assert order.processed_events == ["pi_1:payment_succeeded"]


def test_failed_order_never_becomes_paid(machine, store, caplog):
    assert machine.apply(_event(payments.PAYMENT_FAILED)).applied is True
    late = machine.apply(_event(payments.PAYMENT_SUCCEEDED, event_id="evt_2"))
    assert late.applied is False
    assert store.get("JOB-1").status == OrderStatus.FAILED
    assert "late payment success ignored" in caplog.text


def test_refund_routes_by_charge(machine, store):
    machine.apply(_event(payments.PAYMENT_SUCCEEDED, charge_id="ch_1"))
    result = machine.apply(_event(payments.CHARGE_REFUNDED, intent_id=None, charge_id="ch_1", event_id="evt_2"))
    assert result.applied is True
    assert store.get("JOB-1").status == OrderStatus.REFUNDED


def test_refund_falls_back_to_intent(machine, store):
    machine.apply(_event(payments.PAYMENT_SUCCEEDED))
    result = machine.apply(_event(payments.CHARGE_REFUNDED, charge_id="ch_unknown", event_id="evt_2"))
    assert result.applied is True
    assert store.get("JOB-1").status == OrderStatus.REFUNDED


def test_refund_before_payment_not_applicable(machine, store):
    result = machine.apply(_event(payments.CHARGE_REFUNDED, charge_id="ch_1"))
    assert result.applied is False
    assert result.reason == "not applicable"
    order = store.get("JOB-1")
    assert order.status == OrderStatus.AWAITING_PAYMENT
    assert order.processed_events == []


def test_unknown_order_is_acknowledged(machine, caplog):
    result = machine.apply(_event(payments.PAYMENT_SUCCEEDED, intent_id="pi_nobody"))
    assert result.applied is False
    assert result.reason == "order not found"
    assert "No order for" in caplog.text


def test_unhandled_event_kind(machine, store):
    result = machine.apply(_event(payments.UNKNOWN))
    assert result.applied is False
    assert result.reason == "unhandled event"
    order = store.get("JOB-1")
    assert order.status == OrderStatus.AWAITING_PAYMENT
    assert order.processed_events == []


def test_created_order_is_not_paid_directly(store):
    store.create(_order("JOB-2", status=OrderStatus.CREATED, intent_id="pi_2"))
    result = PaymentStateMachine(store).apply(_event(payments.PAYMENT_SUCCEEDED, intent_id="pi_2"))
    assert result.applied is False
    assert store.get("JOB-2").status == OrderStatus.CREATED


def test_on_paid_fires_once(machine):
    paid = []
    machine.on_paid(lambda order: paid.append(order.job_id))
    machine.apply(_event(payments.PAYMENT_SUCCEEDED, event_id="evt_1"))
    machine.apply(_event(payments.PAYMENT_SUCCEEDED, event_id="evt_2"))
    assert paid == ["JOB-1"]


def test_failing_listener_does_not_undo_transition(machine, store, caplog):
    def boom(order):
        raise RuntimeError("renderer down")

    machine.on_paid(boom)
    result = machine.apply(_event(payments.PAYMENT_SUCCEEDED))
    assert result.applied is True
    assert store.get("JOB-1").status == OrderStatus.PAID
    assert "on_paid listener failed" in caplog.text


@pytest.mark.parametrize("current,target,allowed", [
    (OrderStatus.CREATED, OrderStatus.AWAITING_PAYMENT, True),
    (OrderStatus.AWAITING_PAYMENT, OrderStatus.PAID, True),
    (OrderStatus.AWAITING_PAYMENT, OrderStatus.FAILED, True),
    (OrderStatus.PAID, OrderStatus.REFUNDED, True),
    (OrderStatus.PAID, OrderStatus.AWAITING_PAYMENT, False),
    (OrderStatus.FAILED, OrderStatus.PAID, False),
    (OrderStatus.REFUNDED, OrderStatus.PAID, False),
    (OrderStatus.PAID, OrderStatus.FAILED, False),
])
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


# ============================================================
# Webhook worker
# ============================================================

def test_queued_worker_applies_in_order(machine, store):
    worker = WebhookWorker(machine)
    try:
        assert worker.submit(_event(payments.PAYMENT_SUCCEEDED, charge_id="ch_1", event_id="evt_1")) is None
        worker.submit(_event(payments.CHARGE_REFUNDED, intent_id=None, charge_id="ch_1", event_id="evt_2"))
        worker.join()
    finally:
        worker.stop()
    assert store.get("JOB-1").status == OrderStatus.REFUNDED
    assert worker.pending == 0


def test_inline_worker_returns_result(machine):
    worker = WebhookWorker(machine, inline=True)
    result = worker.submit(_event(payments.PAYMENT_SUCCEEDED))
    assert result.applied is True


def test_worker_retries_after_store_failure(caplog):
    store = FlakyStore(failures=1)
    store.create(_order())
    worker = WebhookWorker(PaymentStateMachine(store), retry_delay=0)
    try:
        worker.submit(_event(payments.PAYMENT_SUCCEEDED))
        worker.join()
    finally:
        worker.stop()

    assert store.get("JOB-1").status == OrderStatus.PAID
    assert worker.dead_letters == []
    assert "attempt 1/3" in caplog.text


def test_exhausted_event_is_parked_then_replayed(caplog):
    store = FlakyStore(failures=3)
    store.create(_order())
    worker = WebhookWorker(PaymentStateMachine(store), inline=True, max_attempts=3, retry_delay=0)

    assert worker.submit(_event(payments.PAYMENT_SUCCEEDED)) is None
    assert store.get("JOB-1").status == OrderStatus.AWAITING_PAYMENT
    assert [e.event_id for e in worker.dead_letters] == ["evt_1"]
    assert "parked for replay" in caplog.text

    assert worker.replay_dead_letters() == 1
    assert store.get("JOB-1").status == OrderStatus.PAID
    assert worker.dead_letters == []


def test_replaying_an_applied_event_is_harmless(machine, store):
    worker = WebhookWorker(machine, inline=True, retry_delay=0)
    event = _event(payments.PAYMENT_SUCCEEDED)
    worker.submit(event)
    paid_at = store.get("JOB-1").paid_at

    worker._dead_letters.append(event)
    assert worker.replay_dead_letters() == 1
    assert store.get("JOB-1").paid_at == paid_at
    assert store.get("JOB-1").processed_events == ["pi_1:payment_succeeded"]


# ============================================================
# Fulfillment on payment
# ============================================================

def test_paid_order_starts_pending_fulfillment(machine, store):
    machine.apply(_event(payments.PAYMENT_SUCCEEDED))
    order = store.get("JOB-1")
    assert order.fulfillment_status == FulfillmentStatus.PENDING
    assert order.notes == []


def test_review_lines_put_paid_order_in_review(store, embed_config, utah_address):
    embed_config["finish"] = "galv"
    quote = PriceQuoteBuilder().build_quote([cart_item(embed_config, "a")], utah_address)
    store.create(_order("JOB-2", intent_id="pi_2", lines=quote.lines))

    PaymentStateMachine(store).apply(_event(payments.PAYMENT_SUCCEEDED, intent_id="pi_2"))
    order = store.get("JOB-2")
    assert order.status == OrderStatus.PAID
    assert order.fulfillment_status == FulfillmentStatus.IN_REVIEW
    assert order.notes == ["Configuration needs shop review before production"]
