"""
Order persistence.

The store is the only owner of Order state. Readers get copies; writers go
through `locked(job_id)`, which serializes all mutation of one order
(checkout, webhook transitions, document recording) while leaving other
orders untouched.

Two implementations: in-memory (tests, single-process dev) and SQLAlchemy.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError

from .exceptions import DuplicateOrder, OrderNotFound
from .models import OrderRecord
from .schemas import Order, OrderStatus

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One lock per key, created on demand and dropped when nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


class OrderStore(ABC):

    def __init__(self):
        self._locks = KeyedLocks()

    @abstractmethod
    def create(self, order: Order) -> Order:
        """Insert a new order. Raises DuplicateOrder if the jobId is taken."""

    @abstractmethod
    def find(self, job_id: str) -> Optional[Order]:
        """Copy of the order, or None."""

    @abstractmethod
    def job_id_for_intent(self, intent_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def job_id_for_charge(self, charge_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        pass

    @abstractmethod
    def _save(self, order: Order) -> None:
        """Persist an order that already exists."""

    def get(self, job_id: str) -> Order:
        order = self.find(job_id)
        if order is None:
            raise OrderNotFound(job_id)
        return order

    @contextmanager
    def locked(self, job_id: str) -> Iterator[Order]:
        """
        Exclusive read-modify-write of one order.

        Yields a working copy. If the block exits normally and the copy
        changed, it is saved with a fresh updated_at. If the block raises,
        nothing is saved.
        """
        with self._locks.hold(job_id):
            original = self.get(job_id)
            working = original.model_copy(deep=True)
            yield working
            if working != original:
                working.updated_at = datetime.utcnow()
                self._save(working)


class InMemoryOrderStore(OrderStore):

    def __init__(self):
        super().__init__()
        self._guard = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self._by_intent: Dict[str, str] = {}
        self._by_charge: Dict[str, str] = {}

    def create(self, order: Order) -> Order:
        with self._guard:
            if order.job_id in self._orders:
                raise DuplicateOrder(order.job_id)
            self._put(order)
        logger.info("Order %s created (%s)", order.job_id, order.status.value)
        return order.model_copy(deep=True)

    def find(self, job_id: str) -> Optional[Order]:
        with self._guard:
            order = self._orders.get(job_id)
            return order.model_copy(deep=True) if order else None

    def job_id_for_intent(self, intent_id: str) -> Optional[str]:
        with self._guard:
            return self._by_intent.get(intent_id)

    def job_id_for_charge(self, charge_id: str) -> Optional[str]:
        with self._guard:
            return self._by_charge.get(charge_id)

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        with self._guard:
            orders = [o.model_copy(deep=True) for o in self._orders.values()]
        if status is not None:
            orders = [o for o in orders if o.status == status]
        return sorted(orders, key=lambda o: o.created_at)

    def _save(self, order: Order) -> None:
        with self._guard:
            self._put(order)

    def _put(self, order: Order) -> None:
        self._orders[order.job_id] = order.model_copy(deep=True)
        if order.payment_intent_id:
            self._by_intent[order.payment_intent_id] = order.job_id
        if order.charge_id:
            self._by_charge[order.charge_id] = order.job_id


class SqlOrderStore(OrderStore):
    """
    Orders as rows in the `orders` table.

    `locked` reads the row with SELECT ... FOR UPDATE inside one session, so
    on a server database the critical section also holds across processes.
    SQLite ignores FOR UPDATE; the in-process key lock still applies.
    """

    def __init__(self, session_factory):
        super().__init__()
        self.session_factory = session_factory

    def create(self, order: Order) -> Order:
        db = self.session_factory()
        try:
            record = OrderRecord(job_id=order.job_id, created_at=order.created_at)
            _apply(record, order)
            db.add(record)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if db.get(OrderRecord, order.job_id) is not None:
                raise DuplicateOrder(order.job_id) from e
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.info("Order %s created (%s)", order.job_id, order.status.value)
        return order.model_copy(deep=True)

    def find(self, job_id: str) -> Optional[Order]:
        db = self.session_factory()
        try:
            record = db.get(OrderRecord, job_id)
            return _decode(record.data_json) if record else None
        finally:
            db.close()

    def job_id_for_intent(self, intent_id: str) -> Optional[str]:
        return self._lookup(OrderRecord.payment_intent_id, intent_id)

    def job_id_for_charge(self, charge_id: str) -> Optional[str]:
        return self._lookup(OrderRecord.charge_id, charge_id)

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        db = self.session_factory()
        try:
            query = db.query(OrderRecord)
            if status is not None:
                query = query.filter(OrderRecord.status == status.value)
            return [_decode(r.data_json) for r in query.order_by(OrderRecord.created_at).all()]
        finally:
            db.close()

    def _lookup(self, column, value) -> Optional[str]:
        if not value:
            return None
        db = self.session_factory()
        try:
            record = db.query(OrderRecord.job_id).filter(column == value).first()
            return record.job_id if record else None
        finally:
            db.close()

    def _save(self, order: Order) -> None:
        db = self.session_factory()
        try:
            record = db.get(OrderRecord, order.job_id)
            if record is None:
                raise OrderNotFound(order.job_id)
            _apply(record, order)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @contextmanager
    def locked(self, job_id: str) -> Iterator[Order]:
        with self._locks.hold(job_id):
            db = self.session_factory()
            try:
                record = (
                    db.query(OrderRecord)
                    .filter(OrderRecord.job_id == job_id)
                    .with_for_update()
                    .first()
                )
                if record is None:
                    raise OrderNotFound(job_id)
                original = _decode(record.data_json)
                working = original.model_copy(deep=True)
                yield working
                if working != original:
                    working.updated_at = datetime.utcnow()
                    _apply(record, working)
                    db.commit()
                else:
                    db.rollback()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()


def _apply(record: OrderRecord, order: Order) -> None:
    record.status = order.status.value
    record.payment_intent_id = order.payment_intent_id
    record.charge_id = order.charge_id
    record.updated_at = order.updated_at
    record.data_json = _encode(order)


def _encode(order: Order) -> str:
    # Decimals go out as strings so money round-trips exactly
    return json.dumps(order.model_dump(mode="python"), default=_json_default)


def _decode(data: str) -> Order:
    return Order.model_validate(json.loads(data))


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Cannot serialize {type(value).__name__}")
