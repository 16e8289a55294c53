"""
history_service.py

Playback progress per (user, movie, episode). The movie itself is stored with
an empty episode slug.
"""
import logging
import math
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cinestream.core.errors import NotFoundError, ValidationError
from cinestream.models import WatchHistory
from cinestream.utils.timezone import utc_now

logger = logging.getLogger(__name__)

COMPLETED_THRESHOLD = 90.0


def watched_percentage(current_time: float, duration: float) -> float:
    """current/duration as a percentage, clamped to 0..100 and rounded to 2 places."""
    if duration <= 0:
        return 0.0
    pct = current_time / duration * 100.0
    return round(min(100.0, max(0.0, pct)), 2)


def validate_progress(current_time: float, duration: float) -> None:
    if current_time is None or not math.isfinite(current_time) or current_time < 0:
        raise ValidationError("current_time must be a finite number greater than or equal to 0")
    if duration is None or not math.isfinite(duration) or duration <= 0:
        raise ValidationError("duration must be a finite number greater than 0")


def _find(db: Session, user_id: int, movie_slug: str, episode_slug: str) -> Optional[WatchHistory]:
    return db.query(WatchHistory).filter(
        WatchHistory.user_id == user_id,
        WatchHistory.movie_slug == movie_slug,
        WatchHistory.episode_slug == episode_slug,
    ).first()


def _apply(entry: WatchHistory, server_name: Optional[str], current_time: float, duration: float) -> None:
    if server_name:
        entry.server_name = server_name
    entry.position_seconds = float(current_time)
    entry.duration_seconds = float(duration)
    entry.watched_percentage = watched_percentage(current_time, duration)
    entry.completed = entry.watched_percentage >= COMPLETED_THRESHOLD
    entry.last_watched = utc_now()


def record_progress(
    db: Session,
    user_id: int,
    movie_slug: str,
    episode_slug: Optional[str],
    current_time: float,
    duration: float,
    server_name: Optional[str] = None,
) -> WatchHistory:
    validate_progress(current_time, duration)
    episode_slug = (episode_slug or "").strip()

    entry = _find(db, user_id, movie_slug, episode_slug)
    if entry is None:
        entry = WatchHistory(user_id=user_id, movie_slug=movie_slug, episode_slug=episode_slug)
        db.add(entry)
    _apply(entry, server_name, current_time, duration)
    try:
        db.commit()
    except IntegrityError:
        # Another request inserted the same record first
        db.rollback()
        entry = _find(db, user_id, movie_slug, episode_slug)
        if entry is None:
            raise
        _apply(entry, server_name, current_time, duration)
        db.commit()
    db.refresh(entry)
    logger.debug(f"Progress user={user_id} movie={movie_slug} ep={episode_slug or '-'} {entry.watched_percentage}%")
    return entry


def list_history(db: Session, user_id: int, page: int = 1, limit: int = 20) -> List[WatchHistory]:
    return (
        db.query(WatchHistory)
        .filter(WatchHistory.user_id == user_id)
        .order_by(WatchHistory.last_watched.desc(), WatchHistory.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


def count_history(db: Session, user_id: int) -> int:
    return db.query(WatchHistory).filter(WatchHistory.user_id == user_id).count()


def movie_history(db: Session, user_id: int, movie_slug: str) -> List[WatchHistory]:
    return (
        db.query(WatchHistory)
        .filter(WatchHistory.user_id == user_id, WatchHistory.movie_slug == movie_slug)
        .order_by(WatchHistory.last_watched.desc(), WatchHistory.id.desc())
        .all()
    )


def continue_watching(db: Session, user_id: int, movie_slug: str) -> WatchHistory:
    """Most recent unfinished record for the movie."""
    entry = (
        db.query(WatchHistory)
        .filter(
            WatchHistory.user_id == user_id,
            WatchHistory.movie_slug == movie_slug,
            WatchHistory.completed.is_(False),
        )
        .order_by(WatchHistory.last_watched.desc(), WatchHistory.id.desc())
        .first()
    )
    if entry is None:
        raise NotFoundError(f"Nothing to continue for movie '{movie_slug}'")
    return entry


def delete_movie_history(db: Session, user_id: int, movie_slug: str) -> int:
    removed = db.query(WatchHistory).filter(
        WatchHistory.user_id == user_id, WatchHistory.movie_slug == movie_slug
    ).delete(synchronize_session=False)
    if not removed:
        raise NotFoundError(f"No watch history for movie '{movie_slug}'")
    db.commit()
    return removed


def clear_history(db: Session, user_id: int) -> int:
    removed = db.query(WatchHistory).filter(WatchHistory.user_id == user_id).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Cleared {removed} watch history entries for user {user_id}")
    return removed
