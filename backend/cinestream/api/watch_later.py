"""
watch_later.py

Per-user "watch later" queue, served oldest first.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from cinestream.api.deps import get_current_user
from cinestream.core.database import get_db
from cinestream.core.errors import ConflictError, NotFoundError
from cinestream.models import User, UserWatchLater
from cinestream.services import movie_service
from cinestream.services.movie_api_client import MovieApiClient, get_movie_api_client

router = APIRouter()
logger = logging.getLogger(__name__)


def _entry_dict(entry: UserWatchLater) -> dict:
    movie = entry.movie
    return {
        "id": entry.id,
        "movie_slug": entry.movie_slug,
        "added_at": entry.added_at.isoformat() if entry.added_at else None,
        "title": movie.name if movie else None,
        "poster_url": movie.poster_url if movie else None,
        "year": movie.year if movie else None,
    }


def _find(db: Session, user_id: int, slug: str):
    return db.query(UserWatchLater).filter(UserWatchLater.user_id == user_id, UserWatchLater.movie_slug == slug).first()


@router.get("")
def list_watch_later(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(UserWatchLater).filter(UserWatchLater.user_id == user.id)
    total = query.count()
    rows = (
        query.order_by(UserWatchLater.added_at.asc(), UserWatchLater.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "data": [_entry_dict(e) for e in rows],
        "pagination": {"current_page": page, "limit": limit, "total_items": total,
                       "total_pages": (total + limit - 1) // limit},
    }


@router.post("/{slug}", status_code=201)
async def add_watch_later(
    slug: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    movie = await movie_service.ensure_movie_cached(db, client, slug)
    if _find(db, user.id, movie.slug):
        raise ConflictError(f"Movie '{movie.slug}' is already in your watch later queue")
    entry = UserWatchLater(user_id=user.id, movie_slug=movie.slug)
    db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Movie '{movie.slug}' is already in your watch later queue")
    db.refresh(entry)
    logger.info(f"User {user.id} queued {movie.slug} for later")
    return _entry_dict(entry)


@router.delete("/{slug}")
def remove_watch_later(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    entry = _find(db, user.id, slug)
    if entry is None:
        raise NotFoundError(f"Movie '{slug}' is not in your watch later queue")
    db.delete(entry)
    db.commit()
    return {"success": True, "movie_slug": slug}


@router.get("/{slug}/status")
def watch_later_status(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"movie_slug": slug, "in_watch_later": _find(db, user.id, slug) is not None}
