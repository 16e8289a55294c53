"""
comments.py

Public comment threads per movie; only the author may edit or delete.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging
from typing import Optional

from cinestream.api.deps import get_current_user, get_optional_user
from cinestream.core.database import get_db
from cinestream.core.errors import ForbiddenError, NotFoundError, ValidationError
from cinestream.models import User, UserComment
from cinestream.schemas import CommentCreate
from cinestream.services import movie_service
from cinestream.services.movie_api_client import MovieApiClient, get_movie_api_client

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000


def _clean_content(content: str) -> str:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment cannot be empty")
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")
    return content


def _comment_dict(c: UserComment, viewer: Optional[User] = None) -> dict:
    author = c.user.display_name or c.user.username if c.user else None
    return {
        "id": c.id,
        "movie_slug": c.movie_slug,
        "user_id": c.user_id,
        "author": author,
        "content": c.content,
        "created_at": c.created_at.isoformat() if c.created_at else None,
        "updated_at": c.updated_at.isoformat() if c.updated_at else None,
        "is_owner": viewer is not None and viewer.id == c.user_id,
    }


def _own_comment(db: Session, comment_id: int, user: User) -> UserComment:
    comment = db.query(UserComment).filter(UserComment.id == comment_id).first()
    if comment is None:
        raise NotFoundError(f"Comment {comment_id} not found")
    if comment.user_id != user.id:
        raise ForbiddenError("You can only modify your own comments")
    return comment


@router.get("/{slug}")
def list_comments(
    slug: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    query = db.query(UserComment).filter(UserComment.movie_slug == slug)
    total = query.count()
    rows = (
        query.order_by(UserComment.created_at.desc(), UserComment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "data": [_comment_dict(c, viewer) for c in rows],
        "pagination": {"current_page": page, "limit": limit, "total_items": total,
                       "total_pages": (total + limit - 1) // limit},
    }


@router.post("/{slug}", status_code=201)
async def add_comment(
    slug: str,
    payload: CommentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    content = _clean_content(payload.content)
    movie = await movie_service.ensure_movie_cached(db, client, slug)
    comment = UserComment(user_id=user.id, movie_slug=movie.slug, content=content)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    logger.info(f"User {user.id} commented on {movie.slug}")
    return _comment_dict(comment, user)


@router.put("/item/{comment_id}")
def update_comment(
    comment_id: int,
    payload: CommentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    comment = _own_comment(db, comment_id, user)
    comment.content = _clean_content(payload.content)
    db.commit()
    db.refresh(comment)
    return _comment_dict(comment, user)


@router.delete("/item/{comment_id}")
def delete_comment(comment_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    comment = _own_comment(db, comment_id, user)
    db.delete(comment)
    db.commit()
    return {"success": True, "id": comment_id}
