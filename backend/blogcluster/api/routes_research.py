import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.db import get_db
from ..models.keywords_job import JobStatus
from ..schemas.research import (
    CancelRequest,
    CreateJobRequest,
    JobCreatedOut,
    JobListOut,
    JobStatusOut,
    OutlineStartOut,
    PreviewOut,
)
from ..services import jobs, queries
from ..services.automation import AutomationClient, build_callback_url
from .deps import get_app_settings, get_automation_client, require_user_id

router = APIRouter(tags=["research"])
logger = logging.getLogger(__name__)


def _callback_url(request: Request, settings: Settings, path: str) -> str:
    return build_callback_url(
        request.headers,
        settings.PUBLIC_BASE_URL,
        f"{settings.API_PREFIX}{path}",
        fallback_base_url=str(request.base_url),
    )


@router.post("/research", response_model=JobCreatedOut, status_code=202)
def create_research_job(
    payload: CreateJobRequest,
    request: Request,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    client: AutomationClient = Depends(get_automation_client),
):
    country, region, location = payload.location_parts()
    job = jobs.create_job(
        db,
        user_id=user_id,
        topic=payload.topic,
        country=country,
        region=region,
        location=location,
        cluster_id=payload.cluster_id,
        seed_keywords=payload.seed_keywords,
        max_results=payload.max_results,
        job_id=payload.job_id,
    )

    # A job claimed after an early callback is already running in the engine
    if job.status == JobStatus.QUEUED:
        # DispatchError propagates to the 502 handler with the job id attached
        jobs.dispatch(db, job, client, _callback_url(request, settings, "/ingest/keywords-callback"))

    return JobCreatedOut(job_id=job.id, status=job.status, redirect_url=f"/keywords/{job.id}")


@router.get("/research/status", response_model=JobStatusOut)
def get_job_status(
    job_id: str = Query(..., alias="jobId", min_length=1),
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    return JobStatusOut(**queries.get_status(db, job_id, user_id))


@router.get("/research/preview", response_model=PreviewOut)
def get_job_preview(
    job_id: str = Query(..., alias="jobId", min_length=1),
    limit: int | None = Query(None, ge=1, le=50),
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """
    Inline results panel: top articles plus tiered supporting topics.

    Polled while the job runs, so a job without results yet is a normal,
    empty response rather than an error.
    """
    preview = queries.get_preview(db, job_id, user_id, limit=limit or settings.PREVIEW_ARTICLE_LIMIT)
    return PreviewOut(**preview)


@router.post("/research/cancel")
def cancel_research_job(
    payload: CancelRequest,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    job = queries.get_owned_job(db, payload.job_id, user_id)
    job = jobs.cancel(db, job)
    return {"ok": True, "jobId": job.id, "status": job.status.value}


@router.get("/research/jobs", response_model=JobListOut)
def list_research_jobs(
    limit: int = 10,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    return JobListOut(jobs=queries.list_jobs(db, user_id, limit=limit))


@router.post("/research/{job_id}/outline/start", response_model=OutlineStartOut)
def start_outline(
    job_id: str,
    request: Request,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    client: AutomationClient = Depends(get_automation_client),
):
    """Hand the job's research to the outline workflow; the engine answers via /ingest/outline."""
    preview = queries.get_preview(db, job_id, user_id, limit=settings.PREVIEW_ARTICLE_LIMIT)
    job = queries.get_owned_job(db, job_id, user_id)
    topics = [label for tier in preview["supporting_topics"].values() for label in tier]

    resp = client.start_outline(
        jsonable_encoder(
            {
                "jobId": job.id,
                "userId": job.user_id,
                "topic": job.topic,
                "clusterId": job.cluster_id,
                "topics": topics,
                "articles": preview["articles"],
                "callbackUrl": _callback_url(request, settings, "/ingest/outline"),
            }
        )
    )

    logger.info(
        "Outline workflow triggered" if resp.ok else "Outline workflow trigger failed",
        extra={"job_id": job.id, "step": "outline_start", "status_code": resp.status_code},
    )
    body = OutlineStartOut(ok=resp.ok, status=resp.status_code, upstream=resp.body)
    return JSONResponse(status_code=200 if resp.ok else 502, content=jsonable_encoder(body))
