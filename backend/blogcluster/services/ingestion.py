# backend/blogcluster/services/ingestion.py
"""
Webhook ingestion for keyword research jobs.

The automation engine calls back with any mix of job status, keyword
suggestions, research articles and topic suggestions, in several equivalent
shapes, possibly more than once and out of order. `parse` maps a body onto
one canonical `NormalizedPayload`; `apply` writes it in a single transaction.

Child rows use replace-all semantics: every entity list present in a
callback replaces the job's previous rows of that type. Re-applying the same
payload converges to the same rows; of two concurrent callbacks, the one
that commits last wins entirely.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import PayloadError
from ..models.keywords_job import KeywordsJob, JobStatus
from ..models.keyword_suggestion import KeywordSuggestion
from ..models.research_article import ResearchArticle
from ..models.research_topic_suggestion import ResearchTopicSuggestion, TOPIC_TIERS
from .jobs import CANCELLED, MAX_ERROR_LEN, UNKNOWN, location_from_parts, resolve_transition

logger = logging.getLogger(__name__)

# Storage bounds
MAX_JOB_ID_LEN = 128
MAX_KEYWORD_LEN = 200
MAX_URL_LEN = 1024
MAX_NEWS_URLS = 12
MAX_SUGGESTIONS = 100
MAX_META_TITLE_LEN = 160
MAX_META_SUMMARY_LEN = 600
MAX_META_TIME_LEN = 64
MAX_SOURCE_NAME_LEN = 80
MAX_ARTICLE_ID_LEN = 128
MAX_ARTICLE_TITLE_LEN = 300
MAX_SNIPPET_LEN = 600
MAX_RAW_TEXT_LEN = 20000
MAX_LABEL_LEN = 160
MAX_TOPIC_LEN = 300

JOB_ID_KEYS = ("jobId", "requestId", "job_id", "request_id")
USER_ID_KEYS = ("userId", "clerkId", "user_id")
SUGGESTION_LIST_KEYS = ("suggestions", "keywords")
TOPIC_LIST_KEYS = ("topic_suggestions", "topicSuggestions")


# ---------------------------------------------------------------------------
# Canonical representation
# ---------------------------------------------------------------------------

@dataclass
class NormalizedSuggestion:
    keyword: str
    score: Optional[float] = None
    source_url: Optional[str] = None
    news_urls: List[str] = field(default_factory=list)
    # One entry per news URL, None where the engine sent nothing usable
    news_meta: List[Optional[Dict[str, Any]]] = field(default_factory=list)


@dataclass
class NormalizedArticle:
    article_id: str
    url: str
    title: Optional[str] = None
    source_name: Optional[str] = None
    published_time: Optional[datetime] = None
    raw_text: Optional[str] = None
    snippet: Optional[str] = None
    rank: Optional[int] = None
    word_count: Optional[int] = None
    relevance_score: Optional[float] = None


@dataclass
class NormalizedTopic:
    label: str
    tier: str


@dataclass
class NormalizedPayload:
    job_id: str
    status: JobStatus
    user_id: Optional[str] = None
    topic: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    location: Optional[str] = None
    error: Optional[str] = None
    # None means "not part of this callback": existing rows stay untouched
    suggestions: Optional[List[NormalizedSuggestion]] = None
    articles: Optional[List[NormalizedArticle]] = None
    topics: Optional[List[NormalizedTopic]] = None
    raw_payload: Optional[Any] = None


@dataclass
class ApplyResult:
    job_id: str
    status: JobStatus
    saved: int
    stale: bool = False
    created: bool = False


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def authenticate(provided: str | None, expected: str | None) -> bool:
    """Shared-secret check; always false when no secret is configured."""
    expected = (expected or "").strip()
    if not expected or provided is None:
        return False
    return hmac.compare_digest(provided.strip().encode("utf-8"), expected.encode("utf-8"))


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------

def clamp(value: Any, max_len: int) -> Optional[str]:
    """Trimmed string cut to max_len, or None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None
    return value[:max_len]


def normalize_keyword(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    folded = " ".join(value.split()).casefold()
    return folded[:MAX_KEYWORD_LEN].strip()


def coerce_score(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_int(value: Any) -> Optional[int]:
    number = coerce_score(value)
    return int(number) if number is not None else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """ISO-8601, RFC 2822 or epoch (s/ms) to naive UTC; None when unparseable."""
    if value is None or isinstance(value, bool):
        return None
    parsed: Optional[datetime] = None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        seconds = value / 1000 if value > 1e12 else value
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError, IndexError):
                return None
    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return value is True or value == 1


def normalize_status(status: Any, finalize: Any = None) -> JobStatus:
    """
    FAILED -> terminal failure; READY or a finalize flag -> terminal success;
    everything else (RUNNING, QUEUED, omitted, garbage) -> in progress.
    """
    text = status.strip().upper() if isinstance(status, str) else ""
    if text == "FAILED":
        return JobStatus.FAILED
    if text == "READY" or _truthy(finalize):
        return JobStatus.READY
    return JobStatus.RUNNING


def _first_text(record: Dict[str, Any], keys: Sequence[str], max_len: int) -> Optional[str]:
    for key in keys:
        value = record.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        text = clamp(value, max_len)
        if text:
            return text
    return None


# ---------------------------------------------------------------------------
# Shape adapters
# ---------------------------------------------------------------------------

Adapter = Callable[[Dict[str, Any]], Optional[Tuple[Dict[str, Any], Any]]]


def _has_job_id(record: Dict[str, Any]) -> bool:
    return _first_text(record, JOB_ID_KEYS, MAX_JOB_ID_LEN) is not None


def _envelope_shape(body: Dict[str, Any]) -> Optional[Tuple[Dict[str, Any], Any]]:
    """{uiPayload, dbPayload}: final delivery; dbPayload holds the records."""
    db_payload = body.get("dbPayload")
    if not isinstance(db_payload, dict) or "uiPayload" not in body:
        return None
    record = dict(db_payload)
    record.setdefault("finalize", True)
    return record, body.get("uiPayload")


def _wrapped_shape(body: Dict[str, Any]) -> Optional[Tuple[Dict[str, Any], Any]]:
    """{body: {...}} / {data: {...}} as produced by some webhook relays."""
    if _has_job_id(body):
        return None
    for key in ("body", "data"):
        inner = body.get(key)
        if isinstance(inner, dict) and _has_job_id(inner):
            return inner, inner
    return None


def _flat_shape(body: Dict[str, Any]) -> Optional[Tuple[Dict[str, Any], Any]]:
    return body, body


SHAPE_ADAPTERS: Tuple[Adapter, ...] = (_envelope_shape, _wrapped_shape, _flat_shape)


# ---------------------------------------------------------------------------
# Entity normalizers
# ---------------------------------------------------------------------------

def _url_list(raw: Any) -> List[Tuple[int, str]]:
    """(original index, url) pairs, exact-match deduplicated and capped."""
    if isinstance(raw, str):
        items: List[Any] = raw.split(",")
    elif isinstance(raw, list):
        items = raw
    else:
        return []

    seen: set[str] = set()
    out: List[Tuple[int, str]] = []
    for idx, item in enumerate(items):
        url = clamp(item, MAX_URL_LEN)
        if not url or url in seen:
            continue
        seen.add(url)
        out.append((idx, url))
        if len(out) >= MAX_NEWS_URLS:
            break
    return out


def safe_news_meta(raw: Any) -> Optional[Dict[str, Optional[str]]]:
    if not isinstance(raw, dict):
        return None
    meta = {
        "title": clamp(raw.get("title"), MAX_META_TITLE_LEN),
        "summary": clamp(raw.get("summary"), MAX_META_SUMMARY_LEN)
        or clamp(raw.get("description"), MAX_META_SUMMARY_LEN),
        "publishedTime": clamp(raw.get("publishedTime"), MAX_META_TIME_LEN),
        "sourceName": clamp(raw.get("sourceName"), MAX_SOURCE_NAME_LEN),
        "imageUrl": clamp(raw.get("imageUrl"), MAX_URL_LEN),
    }
    return meta if any(meta.values()) else None


def _aligned_meta(raw_meta: Any, urls: List[Tuple[int, str]]) -> List[Optional[Dict[str, Any]]]:
    if isinstance(raw_meta, list):
        return [
            safe_news_meta(raw_meta[idx]) if idx < len(raw_meta) else None
            for idx, _ in urls
        ]
    if isinstance(raw_meta, dict):
        if any(url in raw_meta for _, url in urls):
            return [safe_news_meta(raw_meta.get(url)) for _, url in urls]
        # A single metadata object describes the first article
        return [safe_news_meta(raw_meta) if i == 0 else None for i in range(len(urls))]
    return [None] * len(urls)


def normalize_suggestion(item: Any) -> Optional[NormalizedSuggestion]:
    if isinstance(item, str):
        item = {"keyword": item}
    if not isinstance(item, dict):
        return None

    keyword = normalize_keyword(item.get("keyword"))
    if not keyword:
        return None

    urls = _url_list(item.get("newsUrls"))
    news_urls = [url for _, url in urls]
    source_url = clamp(item.get("sourceUrl"), MAX_URL_LEN) or (news_urls[0] if news_urls else None)

    return NormalizedSuggestion(
        keyword=keyword,
        score=coerce_score(item.get("score")),
        source_url=source_url,
        news_urls=news_urls,
        news_meta=_aligned_meta(item.get("newsMeta"), urls),
    )


def normalize_suggestions(items: List[Any]) -> List[NormalizedSuggestion]:
    out: List[NormalizedSuggestion] = []
    seen: set[str] = set()
    for item in items:
        suggestion = normalize_suggestion(item)
        if suggestion is None or suggestion.keyword in seen:
            continue
        seen.add(suggestion.keyword)
        out.append(suggestion)
        if len(out) >= MAX_SUGGESTIONS:
            break
    return out


def article_id_for(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:32]


def normalize_article(item: Any) -> Optional[NormalizedArticle]:
    if not isinstance(item, dict):
        return None
    url = clamp(item.get("url"), MAX_URL_LEN)
    if not url:
        return None

    return NormalizedArticle(
        article_id=_first_text(item, ("id", "article_id", "articleId"), MAX_ARTICLE_ID_LEN) or article_id_for(url),
        url=url,
        title=clamp(item.get("title"), MAX_ARTICLE_TITLE_LEN),
        source_name=_first_text(item, ("source_name", "sourceName"), MAX_SOURCE_NAME_LEN),
        published_time=parse_datetime(item.get("published_time", item.get("publishedTime"))),
        raw_text=_first_text(item, ("raw_text", "rawText"), MAX_RAW_TEXT_LEN),
        snippet=clamp(item.get("snippet"), MAX_SNIPPET_LEN),
        rank=coerce_int(item.get("rank")),
        word_count=coerce_int(item.get("word_count", item.get("wordCount"))),
        relevance_score=coerce_score(item.get("relevance_score", item.get("relevanceScore"))),
    )


def normalize_articles(items: List[Any]) -> List[NormalizedArticle]:
    out: List[NormalizedArticle] = []
    seen_urls: set[str] = set()
    seen_ids: set[str] = set()
    for item in items:
        article = normalize_article(item)
        if article is None:
            continue
        if article.url in seen_urls or article.article_id in seen_ids:
            continue
        seen_urls.add(article.url)
        seen_ids.add(article.article_id)
        out.append(article)
    return out


def normalize_topic(item: Any) -> Optional[NormalizedTopic]:
    if not isinstance(item, dict):
        return None
    raw_label = item.get("label")
    label = " ".join(raw_label.split())[:MAX_LABEL_LEN].strip() if isinstance(raw_label, str) else ""
    tier = item.get("tier").strip().casefold() if isinstance(item.get("tier"), str) else ""
    if not label or tier not in TOPIC_TIERS:
        return None
    return NormalizedTopic(label=label, tier=tier)


def normalize_topics(items: List[Any]) -> List[NormalizedTopic]:
    out: List[NormalizedTopic] = []
    seen: set[Tuple[str, str]] = set()
    for item in items:
        topic = normalize_topic(item)
        if topic is None:
            continue
        key = (topic.label.casefold(), topic.tier)
        if key in seen:
            continue
        seen.add(key)
        out.append(topic)
    return out


def _included_list(record: Dict[str, Any], keys: Sequence[str]) -> Optional[List[Any]]:
    for key in keys:
        value = record.get(key)
        if isinstance(value, list):
            return value
        if isinstance(value, (dict, str)) and value:
            return [value]
    return None


def _suggestion_items(record: Dict[str, Any]) -> Optional[List[Any]]:
    items = _included_list(record, SUGGESTION_LIST_KEYS)
    if items is None and isinstance(record.get("keyword"), str):
        return [record]
    return items


# ---------------------------------------------------------------------------
# parse / apply
# ---------------------------------------------------------------------------

def parse(body: Any) -> NormalizedPayload:
    if not isinstance(body, dict):
        raise PayloadError("payload must be a JSON object")

    for adapter in SHAPE_ADAPTERS:
        shaped = adapter(body)
        if shaped is not None:
            record, raw_payload = shaped
            break

    job_id = _first_text(record, JOB_ID_KEYS, MAX_JOB_ID_LEN + 1)
    if not job_id:
        raise PayloadError("missing job identifier (jobId/requestId)")
    if len(job_id) > MAX_JOB_ID_LEN:
        raise PayloadError("job identifier is too long")

    status = normalize_status(record.get("status"), record.get("finalize"))

    location = record.get("location")
    if isinstance(location, dict):
        location = location_from_parts(location.get("country"), location.get("state"))

    error = record.get("error")
    if error is not None and not isinstance(error, str):
        error = str(error)

    suggestion_items = _suggestion_items(record)
    article_items = _included_list(record, ("articles",))
    topic_items = _included_list(record, TOPIC_LIST_KEYS)

    return NormalizedPayload(
        job_id=job_id,
        status=status,
        user_id=_first_text(record, USER_ID_KEYS, 191),
        topic=clamp(record.get("topic"), MAX_TOPIC_LEN),
        country=clamp(record.get("country"), 32),
        region=clamp(record.get("region"), 32),
        location=clamp(location, 64),
        error=clamp(error, MAX_ERROR_LEN),
        suggestions=normalize_suggestions(suggestion_items) if suggestion_items is not None else None,
        articles=normalize_articles(article_items) if article_items is not None else None,
        topics=normalize_topics(topic_items) if topic_items is not None else None,
        raw_payload=raw_payload,
    )


def _replace_suggestions(db: Session, job_id: str, suggestions: List[NormalizedSuggestion]) -> None:
    db.query(KeywordSuggestion).filter(KeywordSuggestion.job_id == job_id).delete()
    db.add_all(
        KeywordSuggestion(
            job_id=job_id,
            keyword=s.keyword,
            score=s.score,
            source_url=s.source_url,
            news_urls=s.news_urls,
            news_meta=s.news_meta,
            position=i,
        )
        for i, s in enumerate(suggestions)
    )


def _replace_articles(db: Session, job_id: str, articles: List[NormalizedArticle]) -> None:
    db.query(ResearchArticle).filter(ResearchArticle.job_id == job_id).delete()
    db.add_all(
        ResearchArticle(
            job_id=job_id,
            article_id=a.article_id,
            url=a.url,
            title=a.title,
            source_name=a.source_name,
            published_time=a.published_time,
            raw_text=a.raw_text,
            snippet=a.snippet,
            rank=a.rank,
            word_count=a.word_count,
            relevance_score=a.relevance_score,
        )
        for a in articles
    )


def _replace_topics(db: Session, job_id: str, topics: List[NormalizedTopic]) -> None:
    db.query(ResearchTopicSuggestion).filter(ResearchTopicSuggestion.job_id == job_id).delete()
    db.add_all(ResearchTopicSuggestion(job_id=job_id, label=t.label, tier=t.tier) for t in topics)


def _apply_once(db: Session, payload: NormalizedPayload) -> ApplyResult:
    now = datetime.utcnow()
    created = False

    job = db.query(KeywordsJob).filter(KeywordsJob.id == payload.job_id).first()
    if job is None:
        # Callback beat the create request (or the job was started elsewhere)
        job = KeywordsJob(
            id=payload.job_id,
            user_id=payload.user_id or UNKNOWN,
            topic=payload.topic or UNKNOWN,
            country=payload.country,
            region=payload.region,
            location=payload.location,
            status=JobStatus.QUEUED,
        )
        db.add(job)
        db.flush()
        created = True

    cancelled = job.status == JobStatus.FAILED and job.error == CANCELLED
    if cancelled or (job.status.is_terminal and not payload.status.is_terminal):
        logger.info(
            "Ignoring stale callback for finished job",
            extra={"job_id": job.id, "step": "ingest_stale", "status": job.status.value},
        )
        return ApplyResult(job_id=job.id, status=job.status, saved=0, stale=True)

    status = resolve_transition(job.status, payload.status)
    job.status = status
    if job.started_at is None:
        job.started_at = now
    if status == JobStatus.FAILED:
        job.error = payload.error or "failed"
        job.completed_at = now
    elif status == JobStatus.READY:
        job.error = None
        job.completed_at = now
        job.raw_payload = payload.raw_payload
    else:
        job.error = None

    if payload.topic and (not job.topic or job.topic == UNKNOWN):
        job.topic = payload.topic
    job.updated_at = now

    if payload.suggestions is not None:
        _replace_suggestions(db, job.id, payload.suggestions)
    if payload.articles is not None:
        _replace_articles(db, job.id, payload.articles)
    if payload.topics is not None:
        _replace_topics(db, job.id, payload.topics)

    return ApplyResult(
        job_id=job.id,
        status=status,
        saved=len(payload.suggestions or []),
        created=created,
    )


def apply(db: Session, payload: NormalizedPayload, *, retry_on_conflict: bool = True) -> ApplyResult:
    """
    Write one normalized callback atomically.

    A unique-key conflict means a concurrent request created the job row
    first; the whole callback is rolled back and applied once more.
    """
    try:
        result = _apply_once(db, payload)
        db.commit()
    except IntegrityError:
        db.rollback()
        if not retry_on_conflict:
            raise
        logger.info(
            "Conflict while applying callback, retrying",
            extra={"job_id": payload.job_id, "step": "ingest_retry"},
        )
        return apply(db, payload, retry_on_conflict=False)
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Callback applied",
        extra={
            "job_id": result.job_id,
            "step": "ingest_apply",
            "status": result.status.value,
            "saved": result.saved,
        },
    )
    return result
