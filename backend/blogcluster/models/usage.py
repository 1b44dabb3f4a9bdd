from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from datetime import datetime
from ..core.db import Base


class Usage(Base):
    __tablename__ = "usage"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(191), nullable=False)
    metric = Column(String(64), nullable=False)      # "research", "blogs", ...
    period_key = Column(String(7), nullable=False)   # "YYYY-MM", UTC
    amount = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "metric", "period_key", name="uq_usage_user_metric_period"),
    )
