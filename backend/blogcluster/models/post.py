from sqlalchemy import Column, String, Text, JSON, Enum, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import uuid
from ..core.db import Base


class PostType(str, enum.Enum):
    PILLAR = "PILLAR"
    SUPPORTING = "SUPPORTING"


class PostStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    READY = "READY"
    PUBLISHED = "PUBLISHED"


class StageStatus(str, enum.Enum):
    NONE = "NONE"
    READY = "READY"


POST_STATUS_ORDER = {PostStatus.DRAFT: 0, PostStatus.READY: 1, PostStatus.PUBLISHED: 2}


class Post(Base):
    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    cluster_id = Column(String(36), ForeignKey("clusters.id"), index=True, nullable=False)
    slug = Column(String(300), unique=True, index=True, nullable=False)
    title = Column(String(300), nullable=False, default="")
    type = Column(Enum(PostType), nullable=False, default=PostType.SUPPORTING)

    # Pillars have no parent; supporting posts point at one pillar
    parent_id = Column(String(36), ForeignKey("posts.id"), nullable=True)
    parent_slug = Column(String(300), index=True, nullable=True)

    outline = Column(JSON, nullable=True)  # {h1, sections: [...]}
    outline_status = Column(Enum(StageStatus), nullable=False, default=StageStatus.NONE)
    content = Column(Text, nullable=False, default="")
    draft_status = Column(Enum(StageStatus), nullable=False, default=StageStatus.NONE)
    status = Column(Enum(PostStatus), nullable=False, default=PostStatus.DRAFT)
    meta = Column(JSON, nullable=True)       # seo_title, meta_description, summary, ...
    citations = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    cluster = relationship("Cluster", back_populates="posts")
    parent = relationship("Post", remote_side=[id])
