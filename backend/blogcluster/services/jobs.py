from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.errors import DispatchError, JobAccessDenied
from ..models.keywords_job import KeywordsJob, JobStatus
from .automation import AutomationClient
from .usage import increment_usage

logger = logging.getLogger(__name__)

MAX_ERROR_LEN = 500
DISPATCH_ERROR_TEXT_LEN = 300
DISPATCH_DETAIL_LEN = 500

# Placeholder owner/topic for a job first seen through an early callback
UNKNOWN = "unknown"
CANCELLED = "cancelled"

_STATUS_RANK = {
    JobStatus.QUEUED: 0,
    JobStatus.RUNNING: 1,
    JobStatus.READY: 2,
    JobStatus.FAILED: 2,
}


def resolve_transition(current: JobStatus | None, target: JobStatus) -> JobStatus:
    """
    Status to store when `target` is reported for a job currently at `current`.

    Moves only forward along QUEUED -> RUNNING -> {READY, FAILED}. Terminal to
    terminal is accepted (the engine's latest final word); anything that
    would move a job backwards keeps the current status.
    """
    if current is None:
        return target
    if _STATUS_RANK[target] < _STATUS_RANK[current]:
        return current
    return target


def location_from_parts(country: str | None, region: str | None) -> str:
    c = (country or "GLOBAL").upper().strip() or "GLOBAL"
    if c == "GLOBAL":
        return "GLOBAL"
    s = (region or "ALL").upper().strip() or "ALL"
    return c if s == "ALL" else f"{c}:{s}"


def new_job_id() -> str:
    return f"kw_{uuid.uuid4().hex}"


def create_job(
    db: Session,
    *,
    user_id: str,
    topic: str,
    country: str | None = None,
    region: str | None = None,
    location: str | None = None,
    cluster_id: str | None = None,
    seed_keywords: Optional[List[str]] = None,
    max_results: int | None = None,
    job_id: str | None = None,
) -> KeywordsJob:
    topic = (topic or "").strip()
    if not topic:
        raise ValueError("topic must not be empty")

    country = (country or "GLOBAL").strip().upper() or "GLOBAL"
    region = (region or "ALL").strip().upper() or "ALL"
    location = (location or "").strip() or location_from_parts(country, region)

    job: KeywordsJob | None = None
    if job_id:
        job_id = job_id.strip()
        job = db.query(KeywordsJob).filter(KeywordsJob.id == job_id).first()
        if job is not None and job.user_id not in (user_id, UNKNOWN):
            raise JobAccessDenied(job_id)

    if job is None:
        job = KeywordsJob(id=job_id or new_job_id(), user_id=user_id)
        db.add(job)
        step = "job_created"
    elif job.user_id == UNKNOWN:
        # An ownerless callback got here first; keep what it recorded
        step = "job_claimed"
    else:
        # Explicit re-run: same id, fresh lifecycle
        step = "job_rerun"

    if step == "job_claimed":
        job.user_id = user_id
        if not job.topic or job.topic == UNKNOWN:
            job.topic = topic
        job.country = job.country or country
        job.region = job.region or region
        job.location = job.location or location
    else:
        job.topic = topic
        job.country = country
        job.region = region
        job.location = location
        job.status = JobStatus.QUEUED
        job.error = None
        job.started_at = None
        job.completed_at = None
        job.raw_payload = None
    job.cluster_id = cluster_id
    job.seed_keywords = seed_keywords or None
    job.max_results = max_results

    db.flush()
    increment_usage(db, user_id, "research")
    db.commit()
    db.refresh(job)

    logger.info(
        "Keywords job queued",
        extra={"job_id": job.id, "user_id": user_id, "step": step},
    )
    return job


def build_dispatch_payload(job: KeywordsJob, callback_url: str) -> Dict[str, Any]:
    return {
        "jobId": job.id,
        "userId": job.user_id,
        "topic": job.topic,
        "country": job.country,
        "region": job.region,
        "location": job.location,
        "clusterId": job.cluster_id,
        "seedKeywords": job.seed_keywords or [],
        "maxResults": job.max_results,
        "callbackUrl": callback_url,
        "source": "dashboard",
        "requestedAt": datetime.utcnow().isoformat() + "Z",
    }


def dispatch(db: Session, job: KeywordsJob, client: AutomationClient, callback_url: str) -> None:
    """
    Send the job to the automation engine.

    Failure marks the job FAILED and raises DispatchError; there is no retry,
    the caller can start a new job. Success moves a still-QUEUED job to
    RUNNING without touching one a fast callback already advanced.
    """
    resp = client.start_keywords(build_dispatch_payload(job, callback_url))
    now = datetime.utcnow()

    if not resp.ok:
        code = resp.status_code if resp.status_code is not None else "unreachable"
        text = resp.error_text(DISPATCH_DETAIL_LEN)
        error = f"engine {code}: {text[:DISPATCH_ERROR_TEXT_LEN]}"
        db.query(KeywordsJob).filter(KeywordsJob.id == job.id).update(
            {
                KeywordsJob.status: JobStatus.FAILED,
                KeywordsJob.error: error[:MAX_ERROR_LEN],
                KeywordsJob.completed_at: now,
                KeywordsJob.updated_at: now,
            },
            synchronize_session=False,
        )
        db.commit()
        db.refresh(job)
        logger.warning(
            "Keywords job dispatch failed",
            extra={"job_id": job.id, "step": "dispatch", "status_code": resp.status_code},
        )
        raise DispatchError(job.id, text or error, resp.status_code)

    db.query(KeywordsJob).filter(
        KeywordsJob.id == job.id,
        KeywordsJob.status == JobStatus.QUEUED,
    ).update(
        {
            KeywordsJob.status: JobStatus.RUNNING,
            KeywordsJob.started_at: now,
            KeywordsJob.updated_at: now,
        },
        synchronize_session=False,
    )
    db.commit()
    db.refresh(job)
    logger.info(
        "Keywords job dispatched",
        extra={"job_id": job.id, "step": "dispatch", "status": job.status.value},
    )


def cancel(db: Session, job: KeywordsJob) -> KeywordsJob:
    """Local override only; the engine is not told to stop."""
    now = datetime.utcnow()
    job.status = JobStatus.FAILED
    job.error = CANCELLED
    job.completed_at = now
    job.updated_at = now
    db.commit()
    db.refresh(job)
    logger.info("Keywords job cancelled", extra={"job_id": job.id, "step": "cancel"})
    return job
