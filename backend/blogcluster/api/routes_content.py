from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..schemas.content import ClusterListOut, SupportingPostOut, SupportingPostsOut
from ..services import content
from .deps import require_user_id

router = APIRouter(tags=["content"])


@router.get("/posts/supportings", response_model=SupportingPostsOut)
def list_supporting_posts(
    parent_slug: str = Query(..., min_length=1),
    status: str | None = None,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    posts = content.list_supporting_posts(db, user_id, parent_slug.strip(), status=status)
    return SupportingPostsOut(posts=[SupportingPostOut.model_validate(p) for p in posts])


@router.get("/clusters", response_model=ClusterListOut)
def list_clusters(
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    return ClusterListOut(clusters=content.list_clusters(db, user_id))
