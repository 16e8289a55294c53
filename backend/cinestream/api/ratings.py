"""
ratings.py

API endpoints for user movie ratings (0-10 scale, one decimal).
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from cinestream.api.deps import get_current_user
from cinestream.core.database import get_db
from cinestream.core.errors import NotFoundError
from cinestream.models import MovieRating, MovieStatistic, User
from cinestream.schemas import RatingCreate
from cinestream.services import movie_service, statistics_service

from cinestream.services.movie_api_client import MovieApiClient, get_movie_api_client

router = APIRouter()
logger = logging.getLogger(__name__)


def _rating_dict(r: MovieRating) -> dict:
    return {
        "movie_slug": r.movie_slug,
        "rating": r.rating,
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "updated_at": r.updated_at.isoformat() if r.updated_at else None,
    }


def _find(db: Session, user_id: int, slug: str):
    return db.query(MovieRating).filter(MovieRating.user_id == user_id, MovieRating.movie_slug == slug).first()


@router.post("/{slug}")
async def rate_movie(
    slug: str,
    payload: RatingCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    """Create or update the caller's rating."""
    if not 0 <= payload.rating <= 10:
        raise HTTPException(status_code=400, detail="Rating must be between 0 and 10")
    value = round(payload.rating, 1)

    movie = await movie_service.ensure_movie_cached(db, client, slug)
    existing = _find(db, user.id, movie.slug)
    if existing:
        existing.rating = value
    else:
        existing = MovieRating(user_id=user.id, movie_slug=movie.slug, rating=value)
        db.add(existing)
    db.flush()
    stat = statistics_service.recompute_rating(db, movie.slug)
    db.commit()
    db.refresh(existing)
    result = _rating_dict(existing)
    result["average_rating"] = round(stat.average_rating, 1)
    result["total_ratings"] = stat.rating_count
    return result


@router.get("/{slug}/average")
def average_rating(slug: str, db: Session = Depends(get_db)):
    stat = db.query(MovieStatistic).filter(MovieStatistic.movie_slug == slug).first()
    stats = statistics_service.stat_dict(stat)
    return {"movie_slug": slug, "average_rating": stats["average_rating"], "total_ratings": stats["total_ratings"]}


@router.get("/{slug}")
def my_rating(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rating = _find(db, user.id, slug)
    if rating is None:
        raise NotFoundError(f"You have not rated '{slug}'")
    return _rating_dict(rating)


@router.delete("/{slug}")
def delete_rating(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rating = _find(db, user.id, slug)
    if rating is None:
        raise NotFoundError(f"You have not rated '{slug}'")
    db.delete(rating)
    db.flush()
    statistics_service.recompute_rating(db, slug)
    db.commit()
    return {"success": True, "movie_slug": slug}
