"""
movie_service.py

Catalog reads backed by the upstream API with a local movie table:
- Movie details are upserted into cached_movies (with episodes, genres and
  countries) and served from there while younger than the detail TTL.
- A stale local copy is served when the upstream is failing.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cinestream.core.config import settings
from cinestream.core.errors import MovieApiError, NotFoundError, ValidationError
from cinestream.models import CachedEpisode, CachedMovie, Country, Genre, MovieStatistic
from cinestream.services.movie_api_client import MovieApiClient
from cinestream.services.statistics_service import stat_dict
from cinestream.utils.timezone import age_seconds, format_iso_utc, utc_now

logger = logging.getLogger(__name__)


def find_cached_movie(db: Session, slug: str) -> Optional[CachedMovie]:
    return db.query(CachedMovie).filter(CachedMovie.slug == slug).first()


def _get_or_create(db: Session, model, name: str):
    obj = db.query(model).filter(model.name == name).first()
    if obj is None:
        obj = model(name=name)
        db.add(obj)
        db.flush()
    return obj


def _sync_episodes(movie: CachedMovie, servers: List[Dict[str, Any]]) -> None:
    """Update episodes in place keyed by (server, slug) so unique keys never collide mid-flush."""
    existing = {(ep.server_name, ep.slug): ep for ep in movie.episodes}
    seen = set()
    for server in servers:
        server_name = server.get("server_name") or "Default"
        for position, item in enumerate(server.get("items") or []):
            slug = item.get("slug") or item.get("name")
            if not slug:
                continue
            key = (server_name, slug)
            if key in seen:
                continue
            seen.add(key)
            ep = existing.get(key)
            if ep is None:
                ep = CachedEpisode(server_name=server_name, slug=slug)
                movie.episodes.append(ep)
            ep.name = item.get("name") or slug
            ep.embed_url = item.get("embed") or None
            ep.m3u8_url = item.get("m3u8") or None
            ep.position = position
    for key, ep in existing.items():
        if key not in seen:
            movie.episodes.remove(ep)


def upsert_movie(db: Session, detail: Dict[str, Any]) -> CachedMovie:
    movie = db.query(CachedMovie).filter(CachedMovie.slug == detail["slug"]).first()
    if movie is None:
        movie = CachedMovie(slug=detail["slug"])
        db.add(movie)

    movie.name = detail.get("name") or detail["slug"]
    movie.origin_name = detail.get("origin_name")
    movie.description = detail.get("description")
    movie.poster_url = detail.get("poster_url")
    movie.thumb_url = detail.get("thumb_url")
    movie.year = detail.get("year")
    movie.duration = detail.get("duration")
    movie.quality = detail.get("quality")
    movie.language = detail.get("language")
    movie.director = detail.get("director")
    movie.actors = detail.get("actors")
    movie.movie_type = detail.get("type")
    movie.status = detail.get("status")
    movie.episode_current = detail.get("episode_current")
    movie.episode_total = detail.get("episode_total")
    movie.trailer_url = detail.get("trailer_url")
    movie.tmdb_id = detail.get("tmdb_id")
    movie.imdb_id = detail.get("imdb_id")
    movie.tmdb_vote_average = detail.get("tmdb_vote_average")
    movie.raw_data = json.dumps(detail, ensure_ascii=False)
    movie.last_updated = utc_now()

    movie.genres = [_get_or_create(db, Genre, name) for name in dict.fromkeys(detail.get("genres") or [])]
    movie.countries = [_get_or_create(db, Country, name) for name in dict.fromkeys(detail.get("countries") or [])]
    _sync_episodes(movie, detail.get("episodes") or [])

    db.commit()
    db.refresh(movie)
    logger.info(f"Cached movie {movie.slug} with {len(movie.episodes)} episodes")
    return movie


def episodes_by_server(movie: CachedMovie) -> List[Dict[str, Any]]:
    servers: Dict[str, List[Dict[str, Any]]] = {}
    for ep in sorted(movie.episodes, key=lambda e: (e.server_name, e.position or 0)):
        servers.setdefault(ep.server_name, []).append({
            "name": ep.name,
            "slug": ep.slug,
            "embed": ep.embed_url or "",
            "m3u8": ep.m3u8_url or "",
        })
    return [{"server_name": name, "items": items} for name, items in servers.items()]


def serialize_movie(db: Session, movie: CachedMovie, include_episodes: bool = True) -> Dict[str, Any]:
    stat = db.query(MovieStatistic).filter(MovieStatistic.movie_slug == movie.slug).first()
    data = {
        "slug": movie.slug,
        "name": movie.name,
        "origin_name": movie.origin_name,
        "description": movie.description,
        "poster_url": movie.poster_url,
        "thumb_url": movie.thumb_url,
        "year": movie.year,
        "duration": movie.duration,
        "quality": movie.quality,
        "language": movie.language,
        "director": movie.director,
        "actors": movie.actors,
        "type": movie.movie_type,
        "status": movie.status,
        "episode_current": movie.episode_current,
        "episode_total": movie.episode_total,
        "trailer_url": movie.trailer_url,
        "tmdb_id": movie.tmdb_id,
        "imdb_id": movie.imdb_id,
        "tmdb_vote_average": movie.tmdb_vote_average,
        "genres": [g.name for g in movie.genres],
        "countries": [c.name for c in movie.countries],
        "last_updated": format_iso_utc(movie.last_updated),
        "statistics": stat_dict(stat),
    }
    if include_episodes:
        data["episodes"] = episodes_by_server(movie)
    return data


def _is_fresh(movie: CachedMovie) -> bool:
    return age_seconds(movie.last_updated) < settings.cache_ttl_detail


async def load_movie(db: Session, client: MovieApiClient, slug: str, force_refresh: bool = False) -> CachedMovie:
    """Return the local movie row, refreshing it from the upstream when stale."""
    slug = (slug or "").strip()
    if not slug:
        raise ValidationError("Slug is required")

    movie = find_cached_movie(db, slug)
    if movie is not None and not force_refresh and _is_fresh(movie):
        return movie

    try:
        detail = await client.get_movie_detail(slug)
    except MovieApiError as e:
        if movie is not None:
            logger.warning(f"Serving stale cached movie {slug}: {e}")
            return movie
        raise

    if detail is None:
        if movie is not None:
            logger.warning(f"Upstream has no movie {slug}; keeping cached copy")
            return movie
        raise NotFoundError(f"Movie '{slug}' not found")
    return upsert_movie(db, detail)


async def get_movie(db: Session, client: MovieApiClient, slug: str) -> Dict[str, Any]:
    movie = await load_movie(db, client, slug)
    return serialize_movie(db, movie)


async def ensure_movie_cached(db: Session, client: MovieApiClient, slug: str) -> CachedMovie:
    """Library writes reference cached_movies; make sure the row exists (freshness not required)."""
    movie = find_cached_movie(db, (slug or "").strip())
    if movie is not None:
        return movie
    return await load_movie(db, client, slug)
