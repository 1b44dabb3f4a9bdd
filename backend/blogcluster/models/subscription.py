from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
from ..core.db import Base


class Subscription(Base):
    """
    Read cache of the billing provider's subscription object.

    The provider stays the source of truth; rows are written by the billing
    webhook handler, which lives outside this service.
    """

    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    plan = Column(String(32), nullable=False, default="starter")
    status = Column(String(32), nullable=True)  # provider status, e.g. "active", "canceled"
    current_period_end = Column(DateTime, nullable=True)
    price_id = Column(String(128), nullable=True)
    customer_id = Column(String(128), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
