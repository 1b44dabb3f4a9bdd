from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, JSON, DateTime, ForeignKey, UniqueConstraint

from ..core.db import Base


class KeywordSuggestion(Base):
    __tablename__ = "keyword_suggestions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(128), ForeignKey("keywords_jobs.id"), index=True, nullable=False)
    keyword = Column(String(200), nullable=False)  # trimmed + casefolded
    score = Column(Float, nullable=True)
    source_url = Column(String(1024), nullable=True)
    news_urls = Column(JSON, nullable=False, default=list)
    news_meta = Column(JSON, nullable=False, default=list)  # index-aligned with news_urls
    position = Column(Integer, nullable=False, default=0)  # order within the delivered batch
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("job_id", "keyword", name="uq_keyword_suggestion_job_keyword"),
    )
