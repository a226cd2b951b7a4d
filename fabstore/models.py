from sqlalchemy import Column, DateTime, String, Text
from datetime import datetime

from .database import Base


class OrderRecord(Base):
    """
    One storefront order.

    The full order document lives in `data_json`; the columns beside it are
    the lookup keys (webhook routing by intent or charge, status reports).
    """
    __tablename__ = "orders"

    job_id = Column(String, primary_key=True)
    status = Column(String, nullable=False, index=True)
    payment_intent_id = Column(String, nullable=True, unique=True, index=True)
    charge_id = Column(String, nullable=True, index=True)
    data_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
