from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, Float, DateTime, ForeignKey, UniqueConstraint

from ..core.db import Base


class ResearchArticle(Base):
    __tablename__ = "research_articles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(128), ForeignKey("keywords_jobs.id"), index=True, nullable=False)
    article_id = Column(String(128), nullable=False)  # engine id, or url hash when missing
    url = Column(String(1024), nullable=False)
    title = Column(String(300), nullable=True)
    source_name = Column(String(80), nullable=True)
    published_time = Column(DateTime, nullable=True)
    raw_text = Column(Text, nullable=True)
    snippet = Column(Text, nullable=True)
    rank = Column(Integer, nullable=True)
    word_count = Column(Integer, nullable=True)
    relevance_score = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("job_id", "url", name="uq_research_article_job_url"),
        UniqueConstraint("job_id", "article_id", name="uq_research_article_job_article"),
    )
