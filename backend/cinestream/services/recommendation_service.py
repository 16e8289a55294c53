"""
recommendation_service.py

Discovery lists built from local data only (cached movies, genres, views,
watch history):
- trending: most views in the last few days, falling back to popular
- popular: all-time views, then favorites
- featured: curated per category, falling back to popular
- similar: movies sharing the most genres with a given movie
- for_user: movies in the user's most-watched genres they have not seen yet
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from cinestream.core.errors import NotFoundError
from cinestream.models import CachedMovie, DailyView, FeaturedMovie, MovieStatistic, WatchHistory, movie_genres
from cinestream.services.movie_service import find_cached_movie
from cinestream.services.statistics_service import stat_dict
from cinestream.utils.timezone import utc_today

logger = logging.getLogger(__name__)

TRENDING_DAYS = 7
TOP_GENRES = 3


def movie_card(movie: CachedMovie, stat: Optional[MovieStatistic] = None, **extra) -> Dict[str, Any]:
    card = {
        "slug": movie.slug,
        "name": movie.name,
        "origin_name": movie.origin_name,
        "poster_url": movie.poster_url,
        "thumb_url": movie.thumb_url,
        "year": movie.year,
        "type": movie.movie_type,
        "quality": movie.quality,
        "episode_current": movie.episode_current,
        "genres": [g.name for g in movie.genres],
        "statistics": stat_dict(stat),
    }
    card.update(extra)
    return card


def _cards(db: Session, movies: Iterable[CachedMovie], extras: Optional[Dict[str, Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    movies = list(movies)
    if not movies:
        return []
    slugs = [m.slug for m in movies]
    stats = {s.movie_slug: s for s in db.query(MovieStatistic).filter(MovieStatistic.movie_slug.in_(slugs))}
    extras = extras or {}
    return [movie_card(m, stats.get(m.slug), **extras.get(m.slug, {})) for m in movies]


def _movies_in_order(db: Session, slugs: List[str]) -> List[CachedMovie]:
    """Cached movies for slugs, keeping the given order and skipping unknown slugs."""
    if not slugs:
        return []
    by_slug = {m.slug: m for m in db.query(CachedMovie).filter(CachedMovie.slug.in_(slugs))}
    return [by_slug[s] for s in slugs if s in by_slug]


def popular(db: Session, limit: int = 10) -> List[Dict[str, Any]]:
    rows = (
        db.query(CachedMovie)
        .join(MovieStatistic, MovieStatistic.movie_slug == CachedMovie.slug)
        .filter(or_(MovieStatistic.views > 0, MovieStatistic.favorite_count > 0))
        .order_by(MovieStatistic.views.desc(), MovieStatistic.favorite_count.desc(), CachedMovie.id)
        .limit(limit)
        .all()
    )
    return _cards(db, rows)


def trending(db: Session, limit: int = 10, days: int = TRENDING_DAYS) -> List[Dict[str, Any]]:
    start = utc_today() - timedelta(days=days - 1)
    total = func.sum(DailyView.views)
    rows = (
        db.query(DailyView.movie_slug, total)
        .join(CachedMovie, CachedMovie.slug == DailyView.movie_slug)
        .filter(DailyView.view_date >= start)
        .group_by(DailyView.movie_slug)
        .order_by(total.desc(), DailyView.movie_slug)
        .limit(limit)
        .all()
    )
    if not rows:
        return popular(db, limit)
    recent = {slug: {"recent_views": int(views or 0)} for slug, views in rows}
    return _cards(db, _movies_in_order(db, [slug for slug, _ in rows]), recent)


def featured(db: Session, category: str = "home", limit: int = 10) -> List[Dict[str, Any]]:
    picks = (
        db.query(FeaturedMovie)
        .filter(FeaturedMovie.category == category)
        .order_by(FeaturedMovie.display_order, FeaturedMovie.id)
        .limit(limit)
        .all()
    )
    movies = [p.movie for p in picks if p.movie is not None]
    if not movies:
        return popular(db, limit)
    return _cards(db, movies)


def _by_shared_genres(db: Session, genre_ids: List[int], exclude_ids: List[int], limit: int) -> List[Tuple[CachedMovie, int]]:
    shared = func.count(movie_genres.c.genre_id)
    query = (
        db.query(CachedMovie, shared)
        .join(movie_genres, movie_genres.c.movie_id == CachedMovie.id)
        .filter(movie_genres.c.genre_id.in_(genre_ids))
    )
    if exclude_ids:
        query = query.filter(CachedMovie.id.notin_(exclude_ids))
    return query.group_by(CachedMovie.id).order_by(shared.desc(), CachedMovie.id).limit(limit).all()


def similar(db: Session, slug: str, limit: int = 10) -> List[Dict[str, Any]]:
    movie = find_cached_movie(db, slug)
    if movie is None or not movie.genres:
        raise NotFoundError(f"Movie '{slug}' not found or has no genres")
    rows = _by_shared_genres(db, [g.id for g in movie.genres], [movie.id], limit)
    return _cards(db, [m for m, _ in rows], {m.slug: {"shared_genres": n} for m, n in rows})


def for_user(db: Session, user_id: int, limit: int = 10) -> Tuple[str, List[Dict[str, Any]]]:
    """Return (source, cards); source is "genres" or "trending" when there is no usable history."""
    watched = [slug for (slug,) in db.query(WatchHistory.movie_slug).filter(WatchHistory.user_id == user_id).distinct()]
    if watched:
        watched_ids = [mid for (mid,) in db.query(CachedMovie.id).filter(CachedMovie.slug.in_(watched))]
        count = func.count(movie_genres.c.movie_id)
        top_genres = [
            gid for gid, _ in (
                db.query(movie_genres.c.genre_id, count)
                .filter(movie_genres.c.movie_id.in_(watched_ids))
                .group_by(movie_genres.c.genre_id)
                .order_by(count.desc(), movie_genres.c.genre_id)
                .limit(TOP_GENRES)
                .all()
            )
        ]
        if top_genres:
            rows = _by_shared_genres(db, top_genres, watched_ids, limit)
            if rows:
                return "genres", _cards(db, [m for m, _ in rows], {m.slug: {"shared_genres": n} for m, n in rows})
    logger.debug(f"No genre-based recommendations for user {user_id}; using trending")
    return "trending", trending(db, limit)
