"""
Outline and draft ingestion for cluster posts.

The drafting workflow posts an outline first and a finished draft later,
keyed by slug. Either can arrive before the post exists, and a supporting
post may arrive before its pillar; it keeps `parent_slug` and is linked
once the pillar shows up.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import ClusterNotFound, PayloadError
from ..models.cluster import Cluster
from ..models.post import POST_STATUS_ORDER, Post, PostStatus, PostType, StageStatus
from ..models.user import User
from ..schemas.content import ClusterRef, DraftIn, OutlineIn
from .usage import increment_usage

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_TITLE = "Unclustered"
SEO_FIELDS = ("seo_title", "meta_description", "summary", "word_count", "cta")


def ensure_user(db: Session, external_id: str, email: str | None = None) -> User:
    external_id = (external_id or "").strip()
    if not external_id:
        raise PayloadError("userId is required")

    user = db.query(User).filter(User.external_id == external_id).first()
    if user is not None:
        if email and not user.email:
            user.email = email
        return user

    try:
        with db.begin_nested():
            user = User(external_id=external_id, email=email)
            db.add(user)
    except IntegrityError:
        # Concurrent first request for the same identity
        user = db.query(User).filter(User.external_id == external_id).one()
    return user


def ensure_cluster(db: Session, user_id: str, title: str | None = None, niche: str | None = None) -> Cluster:
    """Find-or-create by (owner, title). `user_id` is the internal users.id."""
    title = (title or "").strip() or DEFAULT_CLUSTER_TITLE
    cluster = (
        db.query(Cluster)
        .filter(Cluster.user_id == user_id, Cluster.title == title)
        .order_by(Cluster.created_at.asc())
        .first()
    )
    if cluster is None:
        cluster = Cluster(user_id=user_id, title=title, niche=(niche or "").strip())
        db.add(cluster)
        db.flush()
    elif niche and not cluster.niche:
        cluster.niche = niche.strip()
    return cluster


def _resolve_cluster(db: Session, ref: ClusterRef) -> Cluster:
    if ref.cluster_id:
        cluster = db.query(Cluster).filter(Cluster.id == ref.cluster_id).first()
        if cluster is None:
            raise ClusterNotFound(ref.cluster_id)
        return cluster
    if ref.user_id:
        user = ensure_user(db, ref.user_id)
        db.flush()
        return ensure_cluster(db, user.id, ref.cluster_title, ref.cluster_niche)
    raise PayloadError("clusterId or userId is required")


def _advance(current: PostStatus | None, target: PostStatus) -> PostStatus:
    if current is None or POST_STATUS_ORDER[target] > POST_STATUS_ORDER[current]:
        return target
    return current


def _resolve_parent(db: Session, slug: str, parent_slug: str | None) -> Optional[Post]:
    if not parent_slug:
        return None
    if parent_slug == slug:
        raise PayloadError("a post cannot be its own parent")
    parent = db.query(Post).filter(Post.slug == parent_slug).first()
    if parent is not None and parent.type != PostType.PILLAR:
        raise PayloadError(f"parent_slug {parent_slug!r} is not a pillar post")
    return parent


def _link_children(db: Session, pillar: Post) -> int:
    return (
        db.query(Post)
        .filter(
            Post.parent_slug == pillar.slug,
            Post.parent_id.is_(None),
            Post.type == PostType.SUPPORTING,
        )
        .update({Post.parent_id: pillar.id}, synchronize_session=False)
    )


def _set_parent(db: Session, post: Post, post_type: PostType, parent_slug: str | None) -> None:
    if post_type == PostType.PILLAR:
        post.parent_id = None
        post.parent_slug = None
        return
    parent = _resolve_parent(db, post.slug, parent_slug)
    post.parent_slug = parent_slug
    post.parent_id = parent.id if parent is not None else None


def _unwrap(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise PayloadError("payload must be a JSON object")
    post = body.get("post")
    if isinstance(post, dict):
        # Nested form: cluster reference outside, post fields inside
        merged = dict(post)
        for key, value in body.items():
            if key != "post" and value is not None:
                merged.setdefault(key, value)
        return merged
    return body


def _validate(model, body: Any):
    try:
        return model.model_validate(_unwrap(body))
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or "payload"
        raise PayloadError(f"invalid payload: {where}: {first.get('msg')}") from exc


def parse_outline(body: Any) -> OutlineIn:
    return _validate(OutlineIn, body)


def parse_draft(body: Any) -> DraftIn:
    return _validate(DraftIn, body)


def apply_outline(db: Session, outline: OutlineIn) -> Post:
    try:
        cluster = _resolve_cluster(db, outline)
        post = db.query(Post).filter(Post.slug == outline.slug).first()
        created = post is None
        if created:
            post = Post(slug=outline.slug, cluster_id=cluster.id, content="")
            db.add(post)

        post_type = outline.post_type
        post.title = outline.title
        post.type = post_type
        _set_parent(db, post, post_type, outline.parent_slug)
        post.outline = outline.outline.model_dump()
        post.outline_status = StageStatus.READY
        post.status = _advance(post.status, PostStatus.READY)
        post.meta = {**(post.meta or {}), **outline.metadata, "type": outline.type}
        db.flush()

        linked = _link_children(db, post) if post_type == PostType.PILLAR else 0
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(post)
    logger.info(
        "Outline stored",
        extra={"step": "outline_created" if created else "outline_updated", "saved": linked},
    )
    return post


def apply_draft(db: Session, draft: DraftIn) -> Post:
    try:
        post = db.query(Post).filter(Post.slug == draft.slug).first()
        created = post is None
        if created:
            cluster = _resolve_cluster(db, draft)
            post_type = PostType.PILLAR if draft.type == "pillar" else PostType.SUPPORTING
            post = Post(
                slug=draft.slug,
                cluster_id=cluster.id,
                title=draft.title or draft.slug,
                type=post_type,
                outline_status=StageStatus.NONE,
            )
            db.add(post)
            _set_parent(db, post, post_type, draft.resolved_parent_slug)
        else:
            if draft.title:
                post.title = draft.title
            if post.type == PostType.SUPPORTING and draft.resolved_parent_slug and not post.parent_id:
                _set_parent(db, post, post.type, draft.resolved_parent_slug)

        if draft.outline is not None and not post.outline:
            post.outline = draft.outline.model_dump()
            post.outline_status = StageStatus.READY

        post.content = draft.markdown

        meta = {**(post.meta or {}), **draft.meta}
        for field in SEO_FIELDS:
            value = getattr(draft, field)
            if value is not None:
                meta[field] = value
        post.meta = meta

        citations = draft.resolved_citations
        if citations is not None:
            post.citations = citations

        first_ready = post.draft_status != StageStatus.READY
        post.draft_status = StageStatus.READY
        post.status = _advance(post.status, draft.status)
        db.flush()

        if first_ready:
            owner = (
                db.query(User.external_id)
                .join(Cluster, Cluster.user_id == User.id)
                .filter(Cluster.id == post.cluster_id)
                .scalar()
            )
            if owner:
                increment_usage(db, owner, "blogs")
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(post)
    logger.info(
        "Draft stored",
        extra={"step": "draft_created" if created else "draft_updated", "status": post.status.value},
    )
    return post


def list_supporting_posts(
    db: Session,
    user_id: str,
    parent_slug: str,
    status: str | None = None,
) -> List[Post]:
    q = (
        db.query(Post)
        .join(Cluster, Cluster.id == Post.cluster_id)
        .join(User, User.id == Cluster.user_id)
        .filter(User.external_id == user_id, Post.parent_slug == parent_slug)
    )
    if status:
        try:
            q = q.filter(Post.status == PostStatus(status.strip().upper()))
        except ValueError as exc:
            raise PayloadError(f"unknown status: {status}") from exc
    return q.order_by(Post.created_at.asc(), Post.id.asc()).all()


def list_clusters(db: Session, user_id: str) -> List[Dict[str, Any]]:
    rows = (
        db.query(Cluster, func.count(Post.id))
        .join(User, User.id == Cluster.user_id)
        .outerjoin(Post, Post.cluster_id == Cluster.id)
        .filter(User.external_id == user_id)
        .group_by(Cluster.id)
        .order_by(Cluster.created_at.desc(), Cluster.id.asc())
        .all()
    )
    return [
        {
            "id": c.id,
            "title": c.title,
            "niche": c.niche or "",
            "status": c.status,
            "post_count": int(count or 0),
            "created_at": c.created_at,
            "updated_at": c.updated_at,
        }
        for c, count in rows
    ]
