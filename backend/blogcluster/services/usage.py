from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.usage import Usage
from ..models.user import User
from ..models.subscription import Subscription

logger = logging.getLogger(__name__)

PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    "starter": {"blogsPerMonth": 8, "clusters": 0, "seats": 1},
    "pro": {"blogsPerMonth": 30, "clusters": 10, "seats": 3},
    "agency": {"blogsPerMonth": 120, "clusters": 30, "seats": 10},
    "byok": {"blogsPerMonth": 9999, "clusters": 9999, "seats": 20},
}
DEFAULT_PLAN = "starter"
ACTIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}


def current_period_key(now: datetime | None = None) -> str:
    """Monthly bucket, e.g. "2025-09". Always UTC so instances agree."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"


def _bump(db: Session, user_id: str, metric: str, period_key: str, amount: int) -> int:
    return (
        db.query(Usage)
        .filter(
            Usage.user_id == user_id,
            Usage.metric == metric,
            Usage.period_key == period_key,
        )
        .update(
            {Usage.amount: Usage.amount + amount, Usage.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )


def increment_usage(db: Session, user_id: str, metric: str, amount: int = 1) -> int:
    """
    Atomically add `amount` to (user, metric, current period) and return the new total.

    The caller owns the transaction (commit/rollback).
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError("amount must be a positive integer")
    metric = (metric or "").strip()
    if not metric:
        raise ValueError("metric must not be empty")

    period_key = current_period_key()

    if not _bump(db, user_id, metric, period_key, amount):
        try:
            with db.begin_nested():
                db.add(Usage(user_id=user_id, metric=metric, period_key=period_key, amount=amount))
        except IntegrityError:
            # Another request created the row between our UPDATE and INSERT
            _bump(db, user_id, metric, period_key, amount)

    total = (
        db.query(Usage.amount)
        .filter(
            Usage.user_id == user_id,
            Usage.metric == metric,
            Usage.period_key == period_key,
        )
        .scalar()
    )
    logger.info(
        "Usage incremented",
        extra={"user_id": user_id, "step": f"usage_{metric}"},
    )
    return int(total or 0)


def resolve_plan(db: Session, external_user_id: str) -> str:
    sub = (
        db.query(Subscription)
        .join(User, User.id == Subscription.user_id)
        .filter(User.external_id == external_user_id)
        .first()
    )
    if not sub or (sub.status or "").lower() not in ACTIVE_SUBSCRIPTION_STATUSES:
        return DEFAULT_PLAN
    return sub.plan if sub.plan in PLAN_LIMITS else DEFAULT_PLAN


def usage_summary(db: Session, user_id: str) -> Dict[str, Any]:
    period_key = current_period_key()
    rows = (
        db.query(Usage)
        .filter(Usage.user_id == user_id, Usage.period_key == period_key)
        .order_by(Usage.metric.asc())
        .all()
    )
    usage = {row.metric: row.amount for row in rows}
    plan = resolve_plan(db, user_id)
    limits = PLAN_LIMITS[plan]

    return {
        "periodKey": period_key,
        "plan": plan,
        "limits": limits,
        "usage": usage,
        "blogsRemaining": max(limits["blogsPerMonth"] - usage.get("blogs", 0), 0),
    }
