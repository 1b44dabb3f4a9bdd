from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..schemas.usage import UsageIncrementOut, UsageIncrementRequest, UsageSummaryOut, WhoAmIOut
from ..services.usage import current_period_key, increment_usage, usage_summary
from .deps import require_user_id, resolve_current_user_id

router = APIRouter(tags=["usage"])


@router.post("/usage/increment", response_model=UsageIncrementOut)
def increment(
    payload: UsageIncrementRequest,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    try:
        total = increment_usage(db, user_id, payload.metric, payload.amount)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return UsageIncrementOut(metric=payload.metric, period_key=current_period_key(), amount=total)


@router.get("/usage", response_model=UsageSummaryOut)
def get_usage(
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    summary = usage_summary(db, user_id)
    return UsageSummaryOut(
        period_key=summary["periodKey"],
        plan=summary["plan"],
        limits=summary["limits"],
        usage=summary["usage"],
        blogs_remaining=summary["blogsRemaining"],
    )


@router.get("/whoami", response_model=WhoAmIOut)
def whoami(request: Request, response: Response):
    response.headers["Cache-Control"] = "no-store"
    return WhoAmIOut(user_id=resolve_current_user_id(request))
