# backend/blogcluster/schemas/research.py
from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..models.keywords_job import JobStatus

MAX_TOPIC_LEN = 300
MAX_JOB_ID_LEN = 128
MAX_SEED_KEYWORDS = 50
MAX_SEED_KEYWORD_LEN = 200

# Browser and engine both speak camelCase JSON
CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocationIn(BaseModel):
    country: str | None = None
    state: str | None = None


class CreateJobRequest(BaseModel):
    topic: str | None = Field(
        default=None,
        validation_alias=AliasChoices("topic", "niche"),
        validate_default=True,
    )
    country: str | None = None
    region: str | None = None
    location: str | LocationIn | None = None
    cluster_id: str | None = None
    seed_keywords: list[str] | None = None
    max_results: int | None = Field(default=None, ge=1, le=100)
    job_id: str | None = None

    model_config = CAMEL

    @field_validator("topic", "country", "region", "cluster_id", "job_id", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            stripped = v.strip()
            return stripped or None
        return v

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, v: str | None) -> str:
        if not v:
            raise ValueError("topic must not be empty")
        if len(v) > MAX_TOPIC_LEN:
            raise ValueError(f"topic must be at most {MAX_TOPIC_LEN} characters")
        return v

    @field_validator("job_id")
    @classmethod
    def validate_job_id(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_JOB_ID_LEN:
            raise ValueError(f"jobId must be at most {MAX_JOB_ID_LEN} characters")
        return v

    @field_validator("seed_keywords")
    @classmethod
    def validate_seed_keywords(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        cleaned = [s.strip()[:MAX_SEED_KEYWORD_LEN] for s in v if s and s.strip()]
        return cleaned[:MAX_SEED_KEYWORDS] or None

    def location_parts(self) -> tuple[str | None, str | None, str | None]:
        """(country, region, location string) from either request shape."""
        if isinstance(self.location, LocationIn):
            return self.location.country, self.location.state, None
        return self.country, self.region, self.location


class CancelRequest(BaseModel):
    job_id: str = Field(min_length=1, max_length=MAX_JOB_ID_LEN)

    model_config = CAMEL


class JobCreatedOut(BaseModel):
    ok: bool = True
    job_id: str
    status: JobStatus
    redirect_url: str

    model_config = CAMEL


class SuggestionOut(BaseModel):
    id: int
    keyword: str
    score: float | None = None
    source_url: str | None = None
    news_urls: list[str] = []
    news_meta: list[dict | None] = []

    model_config = CAMEL


class JobCounts(BaseModel):
    suggestions: int = 0
    articles: int = 0
    topics: int = 0


class JobStatusOut(BaseModel):
    ok: bool = True
    job_id: str
    status: JobStatus
    error: str | None = None
    topic: str | None = None
    location: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    counts: JobCounts
    suggestions: list[SuggestionOut] = []

    model_config = CAMEL


class JobSummaryOut(BaseModel):
    job_id: str
    topic: str
    status: JobStatus
    location: str | None = None
    created_at: datetime
    updated_at: datetime
    suggestions: list[SuggestionOut] = []

    model_config = CAMEL


class JobListOut(BaseModel):
    ok: bool = True
    jobs: list[JobSummaryOut] = []


class ArticleOut(BaseModel):
    id: str
    url: str
    title: str | None = None
    source_name: str | None = None
    published_time: datetime | None = None
    snippet: str | None = None
    rank: int | None = None

    model_config = CAMEL


class SupportingTopics(BaseModel):
    top: list[str] = []
    rising: list[str] = []
    all: list[str] = []


class PreviewOut(BaseModel):
    ok: bool = True
    job_id: str
    status: JobStatus
    articles: list[ArticleOut] = []
    supporting_topics: SupportingTopics

    model_config = CAMEL


class IngestResultOut(BaseModel):
    ok: bool = True
    job_id: str
    saved: int
    status: JobStatus

    model_config = CAMEL


class OutlineStartOut(BaseModel):
    ok: bool
    status: int | None = None
    upstream: dict | list | str | None = None
