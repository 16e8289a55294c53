"""
statistics.py

Leaderboards and per-user summaries. Public leaderboards are cached in Redis
for `cache_ttl_stats` seconds under stats:* keys.
"""
from typing import Any, Callable

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from cinestream.api.deps import get_current_user
from cinestream.core.config import settings
from cinestream.core.database import get_db
from cinestream.models import User
from cinestream.services import cache, statistics_service

router = APIRouter()
logger = logging.getLogger(__name__)


async def _cached_stats(key: str, compute: Callable[[], Any]) -> Any:
    hit = await cache.get_json(key)
    if hit is not None:
        return hit
    value = compute()
    await cache.set_json(key, value, settings.cache_ttl_stats)
    return value


@router.get("/top-viewed")
async def top_viewed(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    data = await _cached_stats(f"stats:top_viewed:{limit}", lambda: statistics_service.top_viewed(db, limit))
    return {"data": data}


@router.get("/top-rated")
async def top_rated(
    limit: int = Query(10, ge=1, le=100),
    min_ratings: int = Query(1, ge=1),
    db: Session = Depends(get_db),
):
    data = await _cached_stats(
        f"stats:top_rated:{limit}:{min_ratings}",
        lambda: statistics_service.top_rated(db, limit, min_ratings),
    )
    return {"data": data}


@router.get("/most-favorited")
async def most_favorited(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    data = await _cached_stats(f"stats:most_favorited:{limit}", lambda: statistics_service.most_favorited(db, limit))
    return {"data": data}


@router.get("/daily-views/{slug}")
async def daily_views(slug: str, days: int = Query(7, ge=1, le=90), db: Session = Depends(get_db)):
    data = await _cached_stats(f"stats:daily_views:{slug}:{days}", lambda: statistics_service.daily_views(db, slug, days))
    return {"movie_slug": slug, "days": days, "data": data}


@router.get("/me")
def my_statistics(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return statistics_service.user_summary(db, user.id)
