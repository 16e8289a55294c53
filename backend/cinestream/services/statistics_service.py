"""
statistics_service.py

Per-movie counters (views, favorites, rating aggregate) and the read-side
queries behind the statistics endpoints.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cinestream.models import (
    CachedMovie, DailyView, MovieRating, MovieStatistic, UserComment, UserFavorite, UserWatchLater, WatchHistory,
)
from cinestream.utils.timezone import utc_today, format_iso_utc

logger = logging.getLogger(__name__)


def get_or_create_stat(db: Session, movie_slug: str) -> MovieStatistic:
    stat = db.query(MovieStatistic).filter(MovieStatistic.movie_slug == movie_slug).first()
    if stat is None:
        stat = MovieStatistic(movie_slug=movie_slug, views=0, average_rating=0.0, rating_count=0, favorite_count=0)
        db.add(stat)
        db.flush()
    return stat


def stat_dict(stat: MovieStatistic = None) -> Dict[str, Any]:
    if stat is None:
        return {"views": 0, "average_rating": 0.0, "total_ratings": 0, "favorite_count": 0}
    return {
        "views": stat.views or 0,
        "average_rating": round(stat.average_rating or 0.0, 1),
        "total_ratings": stat.rating_count or 0,
        "favorite_count": stat.favorite_count or 0,
    }


def increment_views(db: Session, movie_slug: str) -> int:
    """Bump the lifetime counter and today's DailyView row. Returns lifetime views."""
    stat = get_or_create_stat(db, movie_slug)
    stat.views = (stat.views or 0) + 1
    today = utc_today()
    daily = db.query(DailyView).filter(DailyView.movie_slug == movie_slug, DailyView.view_date == today).first()
    if daily is None:
        daily = DailyView(movie_slug=movie_slug, view_date=today, views=0)
        db.add(daily)
    daily.views = (daily.views or 0) + 1
    try:
        db.commit()
    except IntegrityError:
        # Concurrent first view of the day created the row; retry once as an update
        db.rollback()
        stat = get_or_create_stat(db, movie_slug)
        stat.views = (stat.views or 0) + 1
        db.query(DailyView).filter(DailyView.movie_slug == movie_slug, DailyView.view_date == today).update(
            {DailyView.views: DailyView.views + 1}, synchronize_session=False
        )
        db.commit()
    return stat.views


def recompute_rating(db: Session, movie_slug: str) -> MovieStatistic:
    avg, count = db.query(func.avg(MovieRating.rating), func.count(MovieRating.id)).filter(
        MovieRating.movie_slug == movie_slug
    ).one()
    stat = get_or_create_stat(db, movie_slug)
    stat.average_rating = float(avg or 0.0)
    stat.rating_count = int(count or 0)
    return stat


def recompute_favorites(db: Session, movie_slug: str) -> MovieStatistic:
    count = db.query(func.count(UserFavorite.id)).filter(UserFavorite.movie_slug == movie_slug).scalar()
    stat = get_or_create_stat(db, movie_slug)
    stat.favorite_count = int(count or 0)
    return stat


def _movie_row(stat: MovieStatistic, movie: CachedMovie = None) -> Dict[str, Any]:
    row = {"slug": stat.movie_slug, "title": movie.name if movie else None, "poster_url": movie.poster_url if movie else None}
    row.update(stat_dict(stat))
    return row


def _ranked(db: Session, criteria, order_by, limit: int) -> List[Dict[str, Any]]:
    rows = (
        db.query(MovieStatistic, CachedMovie)
        .outerjoin(CachedMovie, CachedMovie.slug == MovieStatistic.movie_slug)
        .filter(*criteria)
        .order_by(*order_by)
        .limit(limit)
        .all()
    )
    return [_movie_row(stat, movie) for stat, movie in rows]


def top_viewed(db: Session, limit: int = 10) -> List[Dict[str, Any]]:
    return _ranked(db, [MovieStatistic.views > 0], [MovieStatistic.views.desc()], limit)


def top_rated(db: Session, limit: int = 10, min_ratings: int = 1) -> List[Dict[str, Any]]:
    return _ranked(
        db,
        [MovieStatistic.rating_count >= max(1, min_ratings)],
        [MovieStatistic.average_rating.desc(), MovieStatistic.rating_count.desc()],
        limit,
    )


def most_favorited(db: Session, limit: int = 10) -> List[Dict[str, Any]]:
    return _ranked(db, [MovieStatistic.favorite_count > 0], [MovieStatistic.favorite_count.desc()], limit)


def daily_views(db: Session, movie_slug: str, days: int = 7) -> List[Dict[str, Any]]:
    """Views per day for the last `days` days, oldest first, zero-filled."""
    today = utc_today()
    start = today - timedelta(days=days - 1)
    rows = db.query(DailyView).filter(DailyView.movie_slug == movie_slug, DailyView.view_date >= start).all()
    by_date = {r.view_date: r.views for r in rows}
    return [
        {"date": (start + timedelta(days=i)).isoformat(), "views": by_date.get(start + timedelta(days=i), 0)}
        for i in range(days)
    ]


def user_summary(db: Session, user_id: int) -> Dict[str, Any]:
    favorites = db.query(func.count(UserFavorite.id)).filter(UserFavorite.user_id == user_id).scalar() or 0
    watch_later = db.query(func.count(UserWatchLater.id)).filter(UserWatchLater.user_id == user_id).scalar() or 0
    history = db.query(func.count(WatchHistory.id)).filter(WatchHistory.user_id == user_id).scalar() or 0
    completed = db.query(func.count(WatchHistory.id)).filter(
        WatchHistory.user_id == user_id, WatchHistory.completed.is_(True)
    ).scalar() or 0
    ratings, avg_rating = db.query(func.count(MovieRating.id), func.avg(MovieRating.rating)).filter(
        MovieRating.user_id == user_id
    ).one()
    comments = db.query(func.count(UserComment.id)).filter(UserComment.user_id == user_id).scalar() or 0
    last = db.query(func.max(WatchHistory.last_watched)).filter(WatchHistory.user_id == user_id).scalar()
    return {
        "favorites": favorites,
        "watch_later": watch_later,
        "history_entries": history,
        "completed_entries": completed,
        "ratings": ratings or 0,
        "average_given_rating": round(float(avg_rating), 1) if avg_rating is not None else 0.0,
        "comments": comments,
        "last_watched": format_iso_utc(last),
    }
