from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from cinestream.core.database import get_db
from cinestream.services import movie_service, statistics_service, streaming_service
from cinestream.services.movie_api_client import MovieApiClient, get_movie_api_client

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{slug}/episodes")
async def list_episodes(
    slug: str,
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    movie = await movie_service.load_movie(db, client, slug)
    return streaming_service.list_episodes(movie)


@router.get("/{slug}/episodes/{episode_slug}")
async def get_episode(
    slug: str,
    episode_slug: str,
    server: Optional[str] = Query(None, description="Server name; first server with the episode when omitted"),
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    movie = await movie_service.load_movie(db, client, slug)
    return streaming_service.get_episode(movie, episode_slug, server)


@router.post("/{slug}/view")
async def record_view(
    slug: str,
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    """Count a playback start for the movie."""
    movie = await movie_service.ensure_movie_cached(db, client, slug)
    views = statistics_service.increment_views(db, movie.slug)
    return {"movie_slug": movie.slug, "views": views}
