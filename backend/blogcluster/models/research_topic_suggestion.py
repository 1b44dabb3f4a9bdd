from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint

from ..core.db import Base

TOPIC_TIERS = ("top", "rising", "all")


class ResearchTopicSuggestion(Base):
    __tablename__ = "research_topic_suggestions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(128), ForeignKey("keywords_jobs.id"), index=True, nullable=False)
    label = Column(String(160), nullable=False)
    tier = Column(String(16), nullable=False)  # one of TOPIC_TIERS
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("job_id", "label", "tier", name="uq_topic_suggestion_job_label_tier"),
    )
