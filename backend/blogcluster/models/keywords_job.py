from sqlalchemy import Column, String, Text, JSON, Enum, DateTime, Integer, Index
from datetime import datetime
import enum
from ..core.db import Base


class JobStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    READY = "READY"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.READY, JobStatus.FAILED)


class KeywordsJob(Base):
    __tablename__ = "keywords_jobs"

    id = Column(String(128), primary_key=True)  # kw_<hex> or caller supplied
    user_id = Column(String(191), nullable=False)  # identity-provider id, may be "unknown"
    topic = Column(String(300), nullable=False, default="")
    country = Column(String(32), nullable=True)
    region = Column(String(32), nullable=True)
    location = Column(String(64), nullable=True)  # "GLOBAL" | "US" | "US:CA"
    cluster_id = Column(String(36), nullable=True)
    seed_keywords = Column(JSON, nullable=True)
    max_results = Column(Integer, nullable=True)

    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.QUEUED)
    error = Column(Text, nullable=True)
    raw_payload = Column(JSON, nullable=True)  # cached engine payload for inline preview

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_keywords_jobs_user_created", "user_id", "created_at"),
    )
