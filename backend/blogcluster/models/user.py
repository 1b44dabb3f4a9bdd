from sqlalchemy import Column, String, DateTime
from datetime import datetime
import uuid
from ..core.db import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    external_id = Column(String(191), unique=True, index=True, nullable=False)  # identity provider user id
    email = Column(String(320), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
