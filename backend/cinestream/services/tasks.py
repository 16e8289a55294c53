"""
tasks.py

Celery task definitions for keeping the local movie cache warm:
- sync_latest_movies: pull the newest catalog pages and upsert their details
- cleanup_stale_cache: drop old cached movies nobody references
"""
import asyncio
import logging
from datetime import timedelta
from typing import Dict, Optional

from celery import shared_task
from sqlalchemy.orm import Session

from cinestream.core.config import settings
from cinestream.core.database import SessionLocal
from cinestream.core.errors import MovieApiError
from cinestream.core.redis_client import close_redis, get_redis_sync
from cinestream.models import (
    CachedMovie, FeaturedMovie, MovieRating, UserComment, UserFavorite, UserWatchLater, WatchHistory,
)
from cinestream.services.movie_api_client import MovieApiClient
from cinestream.services.movie_service import upsert_movie
from cinestream.utils.timezone import utc_now

logger = logging.getLogger(__name__)

SYNC_LOCK_KEY = "lock:sync_latest_movies"
SYNC_LOCK_TTL = 60 * 25  # below the 30 min schedule


async def sync_latest(db: Session, client: MovieApiClient, pages: int = 3, limit: int = 20) -> Dict[str, int]:
    """Fetch the first `pages` pages of latest movies and upsert each detail."""
    stats = {"pages": 0, "seen": 0, "upserted": 0, "failed": 0}
    for page in range(1, pages + 1):
        try:
            listing = await client.get_latest_movies(page=page, limit=limit)
        except MovieApiError as e:
            logger.error(f"Latest movies page {page} failed: {e}")
            break
        items = listing.get("data") or []
        stats["pages"] += 1
        for item in items:
            stats["seen"] += 1
            try:
                detail = await client.get_movie_detail(item["slug"])
            except MovieApiError as e:
                stats["failed"] += 1
                logger.warning(f"Detail for {item['slug']} failed: {e}")
                continue
            if detail is None:
                stats["failed"] += 1
                continue
            upsert_movie(db, detail)
            stats["upserted"] += 1
        total_pages = (listing.get("pagination") or {}).get("total_pages") or 0
        if not items or (total_pages and page >= total_pages):
            break
    return stats


def cleanup_stale(db: Session, max_age_days: int) -> int:
    """Delete cached movies older than max_age_days that no user data or featured pick references."""
    cutoff = utc_now() - timedelta(days=max_age_days)
    referenced = set()
    for model in (UserFavorite, UserWatchLater, WatchHistory, MovieRating, UserComment, FeaturedMovie):
        referenced.update(slug for (slug,) in db.query(model.movie_slug).distinct())
    stale = db.query(CachedMovie).filter(CachedMovie.last_updated < cutoff).all()
    removed = 0
    for movie in stale:
        if movie.slug in referenced:
            continue
        db.delete(movie)
        removed += 1
    db.commit()
    return removed


@shared_task
def sync_latest_movies(pages: Optional[int] = None):
    """Celery task to refresh the newest movies into the local cache."""
    r = get_redis_sync()
    if not r.set(SYNC_LOCK_KEY, "1", nx=True, ex=SYNC_LOCK_TTL):
        logger.info("sync_latest_movies already running; skipping")
        return {"skipped": True}

    async def _run():
        db = SessionLocal()
        try:
            return await sync_latest(db, MovieApiClient(), pages or settings.sync_latest_pages)
        finally:
            db.close()
            await close_redis()
    try:
        result = asyncio.run(_run())
    finally:
        r.delete(SYNC_LOCK_KEY)
    logger.info(f"sync_latest_movies finished: {result}")
    return result


@shared_task
def cleanup_stale_cache(max_age_days: Optional[int] = None):
    """Background cleanup of unreferenced cached movies."""
    db = SessionLocal()
    try:
        removed = cleanup_stale(db, max_age_days or settings.movie_cache_max_age_days)
        logger.info(f"Cleanup completed: {removed} stale cached movies deleted")
        return {"removed": removed}
    except Exception as e:
        db.rollback()
        logger.error(f"Cleanup failed: {e}")
        raise
    finally:
        db.close()
