from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from ..core.db import Base
from .post import PostStatus


class Cluster(Base):
    __tablename__ = "clusters"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(300), nullable=False)
    niche = Column(String(300), nullable=False, default="")
    status = Column(String(16), nullable=False, default=PostStatus.DRAFT.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    posts = relationship("Post", back_populates="cluster", order_by="Post.created_at")

    __table_args__ = (
        # find-or-create key
        Index("ix_clusters_user_title", "user_id", "title"),
    )
