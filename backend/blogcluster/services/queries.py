from __future__ import annotations

from typing import Any, Dict, List
from urllib.parse import urlparse

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.errors import JobAccessDenied, JobNotFound
from ..models.keywords_job import KeywordsJob
from ..models.keyword_suggestion import KeywordSuggestion
from ..models.research_article import ResearchArticle
from ..models.research_topic_suggestion import ResearchTopicSuggestion, TOPIC_TIERS

UNKNOWN_SOURCE = "unknown_source"


def get_owned_job(db: Session, job_id: str, requester_id: str) -> KeywordsJob:
    """Job ids are guessable; every job-scoped read goes through this check."""
    job = db.query(KeywordsJob).filter(KeywordsJob.id == job_id).first()
    if job is None:
        raise JobNotFound(job_id)
    if job.user_id != requester_id:
        raise JobAccessDenied(job_id)
    return job


def serialize_suggestion(s: KeywordSuggestion) -> Dict[str, Any]:
    return {
        "id": s.id,
        "keyword": s.keyword,
        "score": s.score,
        "source_url": s.source_url,
        "news_urls": list(s.news_urls or []),
        "news_meta": list(s.news_meta or []),
    }


def _suggestions(db: Session, job_id: str, limit: int | None = None) -> List[KeywordSuggestion]:
    q = (
        db.query(KeywordSuggestion)
        .filter(KeywordSuggestion.job_id == job_id)
        .order_by(KeywordSuggestion.position.asc(), KeywordSuggestion.id.asc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def _count(db: Session, model, job_id: str) -> int:
    return db.query(func.count(model.id)).filter(model.job_id == job_id).scalar() or 0


def get_status(db: Session, job_id: str, requester_id: str) -> Dict[str, Any]:
    job = get_owned_job(db, job_id, requester_id)
    suggestions = _suggestions(db, job.id)

    return {
        "job_id": job.id,
        "status": job.status.value,
        "error": job.error,
        "topic": job.topic,
        "location": job.location,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
        "counts": {
            "suggestions": len(suggestions),
            "articles": _count(db, ResearchArticle, job.id),
            "topics": _count(db, ResearchTopicSuggestion, job.id),
        },
        "suggestions": [serialize_suggestion(s) for s in suggestions],
    }


def host_from_url(url: str | None) -> str | None:
    if not url:
        return None
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return None
    if host.startswith("www."):
        host = host[4:]
    return host or None


def _summaries_by_url(suggestions: List[KeywordSuggestion]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for s in suggestions:
        urls = s.news_urls or []
        metas = s.news_meta or []
        for url, meta in zip(urls, metas):
            summary = ((meta or {}).get("summary") or "").strip()
            if url and summary and url not in out:
                out[url] = summary
    return out


def get_preview(db: Session, job_id: str, requester_id: str, limit: int = 5) -> Dict[str, Any]:
    """
    Top articles and tiered supporting topics for the inline results panel.

    A job without results yet gets empty lists, not an error.
    """
    job = get_owned_job(db, job_id, requester_id)
    summary_by_url = _summaries_by_url(_suggestions(db, job.id))

    rows = (
        db.query(ResearchArticle)
        .filter(ResearchArticle.job_id == job.id)
        .order_by(
            ResearchArticle.rank.is_(None),
            ResearchArticle.rank.asc(),
            ResearchArticle.published_time.is_(None),
            ResearchArticle.published_time.desc(),
            ResearchArticle.id.asc(),
        )
        .limit(limit)
        .all()
    )

    articles = []
    for a in rows:
        source = a.source_name if a.source_name and a.source_name != UNKNOWN_SOURCE else None
        articles.append(
            {
                "id": a.article_id,
                "url": a.url,
                "title": a.title,
                "source_name": source or host_from_url(a.url),
                "published_time": a.published_time,
                "snippet": (a.snippet or "").strip() or summary_by_url.get(a.url),
                "rank": a.rank,
            }
        )

    topics = (
        db.query(ResearchTopicSuggestion)
        .filter(ResearchTopicSuggestion.job_id == job.id)
        .order_by(ResearchTopicSuggestion.label.asc())
        .all()
    )
    grouped: Dict[str, List[str]] = {tier: [] for tier in TOPIC_TIERS}
    seen: set[str] = set()
    # A label listed in several tiers is shown once, in its most prominent tier
    for tier in TOPIC_TIERS:
        for t in topics:
            if t.tier != tier:
                continue
            key = t.label.casefold()
            if key in seen:
                continue
            seen.add(key)
            grouped[tier].append(t.label)

    return {
        "job_id": job.id,
        "status": job.status.value,
        "articles": articles,
        "supporting_topics": grouped,
    }


def list_jobs(db: Session, user_id: str, limit: int = 10, suggestions_per_job: int = 5) -> List[Dict[str, Any]]:
    limit = max(1, min(limit, 50))
    jobs = (
        db.query(KeywordsJob)
        .filter(KeywordsJob.user_id == user_id)
        .order_by(KeywordsJob.created_at.desc(), KeywordsJob.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "job_id": j.id,
            "topic": j.topic,
            "status": j.status.value,
            "location": j.location,
            "created_at": j.created_at,
            "updated_at": j.updated_at,
            "suggestions": [serialize_suggestion(s) for s in _suggestions(db, j.id, suggestions_per_job)],
        }
        for j in jobs
    ]
