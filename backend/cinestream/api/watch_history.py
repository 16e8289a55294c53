from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from cinestream.api.deps import get_current_user
from cinestream.core.database import get_db
from cinestream.models import User
from cinestream.schemas import ProgressUpdate, WatchHistorySchema
from cinestream.services import history_service, movie_service
from cinestream.services.movie_api_client import MovieApiClient, get_movie_api_client

router = APIRouter()
logger = logging.getLogger(__name__)


def _dump(entry) -> dict:
    return WatchHistorySchema.model_validate(entry).model_dump(mode="json")


@router.post("")
async def save_progress(
    payload: ProgressUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    # Reject bad numbers before touching the upstream
    history_service.validate_progress(payload.current_time, payload.duration)
    movie = await movie_service.ensure_movie_cached(db, client, payload.movie_slug)
    entry = history_service.record_progress(
        db,
        user.id,
        movie.slug,
        payload.episode_slug,
        payload.current_time,
        payload.duration,
        server_name=payload.server_name,
    )
    return _dump(entry)


@router.get("")
def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = history_service.list_history(db, user.id, page=page, limit=limit)
    total = history_service.count_history(db, user.id)
    data = []
    for entry in rows:
        item = _dump(entry)
        item["movie_name"] = entry.movie.name if entry.movie else None
        item["poster_url"] = entry.movie.poster_url if entry.movie else None
        data.append(item)
    return {
        "data": data,
        "pagination": {"current_page": page, "limit": limit, "total_items": total,
                       "total_pages": (total + limit - 1) // limit},
    }


@router.delete("")
def clear_history(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    removed = history_service.clear_history(db, user.id)
    return {"success": True, "removed": removed}


@router.get("/{slug}")
def movie_history(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"movie_slug": slug, "data": [_dump(e) for e in history_service.movie_history(db, user.id, slug)]}


@router.get("/{slug}/continue")
def continue_watching(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _dump(history_service.continue_watching(db, user.id, slug))


@router.delete("/{slug}")
def delete_movie_history(slug: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    removed = history_service.delete_movie_history(db, user.id, slug)
    return {"success": True, "movie_slug": slug, "removed": removed}
