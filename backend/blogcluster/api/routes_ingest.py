from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..schemas.content import DraftResultOut, OutlineResultOut
from ..schemas.research import IngestResultOut
from ..services import content, ingestion
from .deps import read_ingest_body, verify_ingest_secret

# Every route here is called by the automation engine, never by a browser
router = APIRouter(tags=["ingest"], dependencies=[Depends(verify_ingest_secret)])


@router.post("/ingest/keywords-callback", response_model=IngestResultOut)
def keywords_callback(
    body: Any = Depends(read_ingest_body),
    db: Session = Depends(get_db),
):
    """
    Results webhook for a keywords job.

    Safe to deliver more than once and out of order: child rows are replaced
    wholesale and status only moves forward.
    """
    payload = ingestion.parse(body)
    result = ingestion.apply(db, payload)
    return IngestResultOut(job_id=result.job_id, saved=result.saved, status=result.status)


@router.post("/ingest/outline", response_model=OutlineResultOut)
def ingest_outline(
    body: Any = Depends(read_ingest_body),
    db: Session = Depends(get_db),
):
    post = content.apply_outline(db, content.parse_outline(body))
    return OutlineResultOut(post_id=post.id, slug=post.slug)


@router.post("/ingest/draft", response_model=DraftResultOut)
def ingest_draft(
    body: Any = Depends(read_ingest_body),
    db: Session = Depends(get_db),
):
    post = content.apply_draft(db, content.parse_draft(body))
    return DraftResultOut(post_id=post.id, slug=post.slug, status=post.status)
