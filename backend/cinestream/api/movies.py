"""
movies.py

Catalog endpoints: latest, search, filter, taxonomy and movie detail.
List endpoints pass the normalized upstream page through; detail goes via
the local movie cache.
"""
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from cinestream.core.database import get_db
from cinestream.core.errors import NotFoundError
from cinestream.services import movie_service
from cinestream.services.movie_api_client import MovieApiClient, get_movie_api_client

router = APIRouter()
logger = logging.getLogger(__name__)

# Letters (Vietnamese diacritics included via \w), digits, space, '-' and '_'
SEARCH_QUERY_RE = re.compile(r"^[\w\s\-]+$", re.UNICODE)


@router.get("/latest")
async def latest_movies(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    return await client.get_latest_movies(page=page, limit=limit)


@router.get("/search")
async def search_movies(
    q: str = Query(..., min_length=1, max_length=100, description="Search query"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    q = q.strip()
    if not q or not SEARCH_QUERY_RE.match(q):
        raise HTTPException(status_code=400, detail="Search query contains invalid characters")
    return await client.search_movies(q, page=page, limit=limit)


@router.get("/filter")
async def filter_movies(
    name: Optional[str] = Query(None, max_length=100),
    type: Optional[str] = Query(None, max_length=50),
    genre: Optional[str] = Query(None, max_length=100),
    country: Optional[str] = Query(None, max_length=100),
    year: Optional[str] = Query(None, pattern=r"^\d{4}$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    return await client.filter_movies(
        name=name, type=type, genre=genre, country=country, year=year, page=page, limit=limit
    )


@router.get("/genres")
async def genres(client: MovieApiClient = Depends(get_movie_api_client)):
    return {"data": await client.get_genres()}


@router.get("/countries")
async def countries(client: MovieApiClient = Depends(get_movie_api_client)):
    return {"data": await client.get_countries()}


@router.get("/types")
async def movie_types(client: MovieApiClient = Depends(get_movie_api_client)):
    return {"data": await client.get_movie_types()}


def _found(value, what: str, slug: str):
    if not value:
        raise NotFoundError(f"No {what} found for movie '{slug}'")
    return value


@router.get("/{slug}/images")
async def movie_images(slug: str, client: MovieApiClient = Depends(get_movie_api_client)):
    return _found(await client.get_images(slug), "images", slug)


@router.get("/{slug}/actors")
async def movie_actors(slug: str, client: MovieApiClient = Depends(get_movie_api_client)):
    return _found(await client.get_actors(slug), "actors", slug)


@router.get("/{slug}/production")
async def movie_production(slug: str, client: MovieApiClient = Depends(get_movie_api_client)):
    return _found(await client.get_production(slug), "production info", slug)


@router.get("/{slug}/tmdb")
async def movie_tmdb(slug: str, client: MovieApiClient = Depends(get_movie_api_client)):
    return _found(await client.get_tmdb(slug), "TMDB data", slug)


@router.get("/{slug}")
async def movie_detail(
    slug: str,
    db: Session = Depends(get_db),
    client: MovieApiClient = Depends(get_movie_api_client),
):
    return await movie_service.get_movie(db, client, slug)
