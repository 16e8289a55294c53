"""
analytics.py

Public discovery lists for the home page. Results are cached in Redis for
`cache_ttl_stats` seconds under analytics:* keys.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from cinestream.core.config import settings
from cinestream.core.database import get_db
from cinestream.models import MovieStatistic
from cinestream.services import cache, recommendation_service, statistics_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/trending")
async def trending(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    async def load():
        return recommendation_service.trending(db, limit)
    return {"data": await cache.cached(f"analytics:trending:{limit}", settings.cache_ttl_stats, load)}


@router.get("/popular")
async def popular(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    async def load():
        return recommendation_service.popular(db, limit)
    return {"data": await cache.cached(f"analytics:popular:{limit}", settings.cache_ttl_stats, load)}


@router.get("/featured")
async def featured(
    category: str = Query("home", min_length=1, max_length=50),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
):
    async def load():
        return recommendation_service.featured(db, category, limit)
    data = await cache.cached(f"analytics:featured:{category}:{limit}", settings.cache_ttl_stats, load)
    return {"category": category, "data": data}


@router.get("/statistics/{slug}")
def movie_statistics(slug: str, db: Session = Depends(get_db)):
    stat = db.query(MovieStatistic).filter(MovieStatistic.movie_slug == slug).first()
    return {"movie_slug": slug, **statistics_service.stat_dict(stat)}
