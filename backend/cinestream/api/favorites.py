"""
favorites.py

Per-user movie bookmarks. Adding is idempotent.
"""
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from cinestream.api.deps import get_current_user
from cinestream.core.database import get_db
from cinestream.core.errors import NotFoundError
from cinestream.models import User, UserFavorite
from cinestream.services import movie_service, statistics_service
from cinestream.services.movie_api_client import MovieApiClient, get_movie_api_client

router = APIRouter()
logger = logging.getLogger(__name__)


def _favorite_dict(fav: UserFavorite) -> dict:
    movie = fav.movie
    return {
        "id": fav.id,
        "movie_slug": fav.movie_slug,
        "added_at": fav.added_at.isoformat() if fav.added_at else None,
        "title": movie.name if movie else None,
        "origin_name": movie.origin_name if movie else None,
        "poster_url": movie.poster_url if movie else None,
        "thumb_url": movie.thumb_url if movie else None,
        "year": movie.year if movie else None,
    }


def _find(db: Session, user_id: int, slug: str):
    return db.query(UserFavorite).filter(UserFavorite.user_id == user_id, UserFavorite.movie_slug == slug).first()


@router.get("")
def list_favorites(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(UserFavorite).filter(UserFavorite.user_id == user.id)
    total = query.count()
    rows = (
        query.order_by(UserFavorite.added_at.desc(), UserFavorite.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "data": [_favorite_dict(f) for f in rows],
        "pagination": {"current_page": page, "limit": limit, "total_items": total,
                       "total_pages": (total + limit - 1) // limit},
    }


@router.post("/{slug}", status_code=201)
async def add_favorite(
    slug: str,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    movie = await movie_service.ensure_movie_cached(db, client, slug)
    existing = _find(db, user.id, movie.slug)
    if existing:
        response.status_code = 200
        return _favorite_dict(existing)

    fav = UserFavorite(user_id=user.id, movie_slug=movie.slug)
    db.add(fav)
    try:
        db.flush()
    except IntegrityError:
        # Concurrent add of the same favorite
        db.rollback()
        response.status_code = 200
        return _favorite_dict(_find(db, user.id, movie.slug))
    statistics_service.recompute_favorites(db, movie.slug)
    db.commit()
    db.refresh(fav)
    logger.info(f"User {user.id} favorited {movie.slug}")
    return _favorite_dict(fav)


@router.delete("/{slug}")
def remove_favorite(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    fav = _find(db, user.id, slug)
    if fav is None:
        raise NotFoundError(f"Movie '{slug}' is not in favorites")
    db.delete(fav)
    db.flush()
    statistics_service.recompute_favorites(db, slug)
    db.commit()
    return {"success": True, "movie_slug": slug}


@router.get("/{slug}/status")
def favorite_status(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"movie_slug": slug, "is_favorite": _find(db, user.id, slug) is not None}
