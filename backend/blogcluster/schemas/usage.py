from typing import Dict

from pydantic import BaseModel, Field, field_validator

from .research import CAMEL


class UsageIncrementRequest(BaseModel):
    metric: str = Field(min_length=1, max_length=64)
    amount: int = Field(default=1, ge=1, le=10_000, strict=True)

    @field_validator("metric", mode="before")
    @classmethod
    def _strip_metric(cls, v):
        return v.strip() if isinstance(v, str) else v


class UsageIncrementOut(BaseModel):
    ok: bool = True
    metric: str
    period_key: str
    amount: int

    model_config = CAMEL


class UsageSummaryOut(BaseModel):
    ok: bool = True
    period_key: str
    plan: str
    limits: Dict[str, int]
    usage: Dict[str, int] = {}
    blogs_remaining: int

    model_config = CAMEL


class WhoAmIOut(BaseModel):
    user_id: str | None = None

    model_config = CAMEL
