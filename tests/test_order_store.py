"""
Order persistence: in-memory and SQLAlchemy stores, per-order locking.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fabstore.database import Base
from fabstore.exceptions import DuplicateOrder, OrderNotFound
from fabstore.order_store import InMemoryOrderStore, KeyedLocks, SqlOrderStore
from fabstore.pricing_engine import PriceQuoteBuilder
from fabstore.schemas import CustomerInfo, Order, OrderStatus


@pytest.fixture
def sql_store(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orders.db'}", connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield SqlOrderStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    if request.param == "memory":
        return InMemoryOrderStore()
    return request.getfixturevalue("sql_store")


@pytest.fixture
def make_order(embed_cart, utah_address):
    quote = PriceQuoteBuilder().build_quote(embed_cart, utah_address)

    def _make(job_id="JOB-1", **fields):
        return Order(
            job_id=job_id,
            lines=quote.lines,
            shipping_address=utah_address,
            subtotal=quote.subtotal,
            shipping_cost=quote.shipping.selected_cost,
            shipping_method=quote.shipping.selected_method,
            tax_amount=quote.tax.tax_amount,
            tax_rate=quote.tax.tax_rate,
            total=quote.total,
            **fields,
        )
    return _make


def test_keyed_locks_are_released():
    locks = KeyedLocks()
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2
    assert len(locks) == 0


def test_create_and_get(any_store, make_order):
    any_store.create(make_order())
    loaded = any_store.get("JOB-1")
    assert loaded.status == OrderStatus.CREATED
    assert loaded.subtotal == Decimal("377.10")
    assert loaded.total == Decimal("480.60")
    assert loaded.tax_rate == Decimal("0.061")
    assert loaded.lines[0].unit_price == Decimal("37.71")
    assert loaded.lines[0].shipping.unit_weight_lbs == Decimal("16.084")


def test_duplicate_job_id(any_store, make_order):
    any_store.create(make_order())
    with pytest.raises(DuplicateOrder):
        any_store.create(make_order())


def test_concurrent_creates_with_same_job_id(any_store, make_order):
    created = []
    duplicates = []
    errors = []

    def create(n):
        try:
            buyer = CustomerInfo(name=f"buyer {n}", email=f"buyer{n}@example.com")
            created.append(any_store.create(make_order(customer=buyer)))
        except DuplicateOrder:
            duplicates.append(n)
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=create, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(created) == 1
    assert len(duplicates) == 7
    assert any_store.get("JOB-1").customer.name == created[0].customer.name


def test_unknown_order(any_store):
    assert any_store.find("JOB-missing") is None
    with pytest.raises(OrderNotFound):
        any_store.get("JOB-missing")
    with pytest.raises(OrderNotFound):
        with any_store.locked("JOB-missing"):
            pass


def test_readers_get_copies(any_store, make_order):
    any_store.create(make_order())
    copy = any_store.get("JOB-1")
    copy.status = OrderStatus.PAID
    copy.documents["quote"] = "/uploads/quotes/JOB-1.pdf"
    fresh = any_store.get("JOB-1")
    assert fresh.status == OrderStatus.CREATED
    assert fresh.documents == {}


def test_locked_saves_changes(any_store, make_order):
    created = any_store.create(make_order())
    with any_store.locked("JOB-1") as order:
        order.status = OrderStatus.AWAITING_PAYMENT
        order.payment_intent_id = "pi_1"
    loaded = any_store.get("JOB-1")
    assert loaded.status == OrderStatus.AWAITING_PAYMENT
    assert loaded.updated_at >= created.updated_at
    assert any_store.job_id_for_intent("pi_1") == "JOB-1"
    assert any_store.job_id_for_intent("pi_other") is None


def test_locked_discards_on_error(any_store, make_order):
    any_store.create(make_order())
    with pytest.raises(RuntimeError):
        with any_store.locked("JOB-1") as order:
            order.status = OrderStatus.PAID
            raise RuntimeError("boom")
    assert any_store.get("JOB-1").status == OrderStatus.CREATED


def test_charge_lookup(any_store, make_order):
    any_store.create(make_order(payment_intent_id="pi_1"))
    assert any_store.job_id_for_charge("ch_1") is None
    with any_store.locked("JOB-1") as order:
        order.charge_id = "ch_1"
    assert any_store.job_id_for_charge("ch_1") == "JOB-1"


def test_list_orders_by_status(any_store, make_order):
    any_store.create(make_order("JOB-1"))
    any_store.create(make_order("JOB-2", status=OrderStatus.PAID))
    assert [o.job_id for o in any_store.list_orders()] == ["JOB-1", "JOB-2"]
    assert [o.job_id for o in any_store.list_orders(OrderStatus.PAID)] == ["JOB-2"]


def test_concurrent_locked_updates_are_serialized(any_store, make_order):
    any_store.create(make_order())

    def append(n):
        with any_store.locked("JOB-1") as order:
            order.processed_events.append(f"evt_{n}")

    threads = [threading.Thread(target=append, args=(n,)) for n in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(any_store.get("JOB-1").processed_events) == sorted(f"evt_{n}" for n in range(10))


def test_sql_round_trip_is_exact(sql_store, make_order):
    order = make_order()
    sql_store.create(order)
    assert sql_store.get("JOB-1") == order
