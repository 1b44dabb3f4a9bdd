from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..models.post import PostStatus, PostType, StageStatus
from .research import CAMEL

MAX_SLUG_LEN = 300
MAX_TITLE_LEN = 300

CLUSTER_ID_ALIASES = AliasChoices("clusterId", "cluster_id")
USER_ID_ALIASES = AliasChoices("userId", "clerkUserId", "user_id")
CLUSTER_TITLE_ALIASES = AliasChoices("clusterTitle", "cluster_title")
CLUSTER_NICHE_ALIASES = AliasChoices("clusterNiche", "cluster_niche", "niche")


class InternalLink(BaseModel):
    slug: str
    anchor_text: str = "Read more"

    model_config = CAMEL


class OutlineSection(BaseModel):
    heading: str = Field(min_length=1)
    purpose: str = ""
    key_points: List[str] = []
    suggested_internal_links: List[InternalLink] = []
    citation_placeholders: List[str] = []

    model_config = CAMEL


class OutlineBody(BaseModel):
    h1: Optional[str] = None
    sections: List[OutlineSection] = []


class ClusterRef(BaseModel):
    """Where a post lives: an existing cluster id, or (user, title) to find-or-create."""

    cluster_id: Optional[str] = Field(default=None, validation_alias=CLUSTER_ID_ALIASES)
    user_id: Optional[str] = Field(default=None, validation_alias=USER_ID_ALIASES)
    cluster_title: Optional[str] = Field(default=None, validation_alias=CLUSTER_TITLE_ALIASES)
    cluster_niche: Optional[str] = Field(default=None, validation_alias=CLUSTER_NICHE_ALIASES)

    @field_validator("cluster_id", "user_id", "cluster_title", "cluster_niche", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v


class OutlineIn(ClusterRef):
    slug: str = Field(min_length=1, max_length=MAX_SLUG_LEN)
    title: str = Field(min_length=1, max_length=MAX_TITLE_LEN)
    type: Literal["pillar", "supporting"] = "supporting"
    outline: OutlineBody
    metadata: Dict[str, Any] = {}
    parent_slug: Optional[str] = Field(default=None, validation_alias=AliasChoices("parent_slug", "parentSlug"))

    @field_validator("slug", "title", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, v):
        return v if v is not None else {}

    @field_validator("parent_slug", mode="before")
    @classmethod
    def _parent_blank(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v

    @property
    def post_type(self) -> PostType:
        return PostType.PILLAR if self.type == "pillar" else PostType.SUPPORTING


class DraftSection(BaseModel):
    draft_md: Optional[str] = None
    sources_used: List[Any] = []


class ParentLink(BaseModel):
    parent_slug: Optional[str] = None


class ResearchSources(BaseModel):
    sources: List[Any] = []


class DraftIn(ClusterRef):
    slug: str = Field(min_length=1, max_length=MAX_SLUG_LEN)
    title: Optional[str] = Field(default=None, max_length=MAX_TITLE_LEN)
    type: Optional[Literal["pillar", "supporting"]] = None
    content: Optional[str] = None
    draft: Optional[DraftSection] = None
    status: PostStatus = PostStatus.READY
    meta: Dict[str, Any] = {}
    citations: Optional[List[Any]] = None
    seo_title: Optional[str] = Field(default=None, validation_alias=AliasChoices("seo_title", "seoTitle"))
    meta_description: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("meta_description", "metaDescription", "seoDesc"),
    )
    summary: Optional[str] = None
    word_count: Optional[int] = Field(default=None, validation_alias=AliasChoices("word_count", "wordCount"))
    cta: Optional[str] = None
    outline: Optional[OutlineBody] = None
    parent_slug: Optional[str] = Field(default=None, validation_alias=AliasChoices("parent_slug", "parentSlug"))
    internal_link: Optional[ParentLink] = None
    research: Optional[ResearchSources] = None

    @field_validator("slug", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("meta", mode="before")
    @classmethod
    def _meta_default(cls, v):
        return v if v is not None else {}

    @model_validator(mode="after")
    def _require_content(self):
        if not (self.content or (self.draft and self.draft.draft_md)):
            raise ValueError("content or draft.draft_md is required")
        return self

    @property
    def markdown(self) -> str:
        return self.content or (self.draft.draft_md if self.draft else "") or ""

    @property
    def resolved_parent_slug(self) -> Optional[str]:
        slug = self.parent_slug or (self.internal_link.parent_slug if self.internal_link else None)
        return (slug or "").strip() or None

    @property
    def resolved_citations(self) -> Optional[List[Any]]:
        if self.citations is not None:
            return self.citations
        if self.research and self.research.sources:
            return self.research.sources
        if self.draft and self.draft.sources_used:
            return self.draft.sources_used
        return None


class OutlineResultOut(BaseModel):
    ok: bool = True
    post_id: str
    slug: str

    model_config = CAMEL


class DraftResultOut(BaseModel):
    ok: bool = True
    post_id: str
    slug: str
    status: PostStatus

    model_config = CAMEL


class SupportingPostOut(BaseModel):
    id: str
    slug: str
    title: str
    status: PostStatus
    outline_status: StageStatus
    draft_status: StageStatus
    outline: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ClusterOut(BaseModel):
    id: str
    title: str
    niche: str = ""
    status: str
    post_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = CAMEL


class ClusterListOut(BaseModel):
    ok: bool = True
    clusters: List[ClusterOut] = []


class SupportingPostsOut(BaseModel):
    ok: bool = True
    posts: List[SupportingPostOut] = []
