"""
movie_api_client.py

Async client for the upstream movie metadata API.
- Async httpx requests with a per-request timeout.
- Read-through Redis response cache per endpoint.
- Retry with exponential backoff on transient failures, wrapped around a
  circuit breaker shared by every client instance.
- Upstream payloads are normalized into plain dicts the API layer returns as-is.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from cinestream.core.config import settings
from cinestream.core.errors import (
    MovieApiError,
    MovieApiNetworkError,
    MovieApiUnavailableError,
    ValidationError,
)
from cinestream.core import metrics
from cinestream.schemas import UpstreamMovieDetail, UpstreamMovieList
from cinestream.services import cache
from cinestream.services.resilience import CircuitBreaker, with_retry, is_transient

logger = logging.getLogger(__name__)

movie_api_breaker = CircuitBreaker(
    "movie_api",
    failure_threshold=settings.circuit_failure_threshold,
    reset_timeout=settings.circuit_reset_seconds,
)


def _require(value: Optional[str], what: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{what} is required")
    return str(value).strip()


def _split_names(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def normalize_list(payload: Any) -> Dict[str, Any]:
    """Normalize a movie list payload to {"data": [...], "pagination": {...}}."""
    if not isinstance(payload, dict):
        payload = {"data": payload if isinstance(payload, list) else []}
    if isinstance(payload.get("data"), dict) and "items" in payload["data"]:
        # Some endpoints wrap the page as {"data": {"items": [...], "pagination": {...}}}
        inner = payload["data"]
        payload = {"data": inner.get("items"), "pagination": inner.get("pagination") or payload.get("pagination")}
    try:
        parsed = UpstreamMovieList.model_validate(payload)
    except PydanticValidationError as e:
        logger.warning(f"Unexpected movie list payload: {e}")
        parsed = UpstreamMovieList()
    return {
        "data": [item.model_dump() for item in parsed.data if item.slug],
        "pagination": parsed.pagination.model_dump(),
    }


def _normalize_servers(raw_servers: Any) -> List[Dict[str, Any]]:
    servers = []
    for server in raw_servers or []:
        if not isinstance(server, dict):
            continue
        items = server.get("items")
        if items is None:
            items = server.get("server_data") or []
        servers.append({
            "server_name": server.get("server_name") or "",
            "items": [
                {
                    "name": item.get("name") or "",
                    "slug": item.get("slug") or "",
                    "embed": item.get("embed") or item.get("link_embed") or "",
                    "m3u8": item.get("m3u8") or item.get("link_m3u8") or "",
                }
                for item in items if isinstance(item, dict)
            ],
        })
    return servers


def normalize_detail(payload: Any) -> Optional[Dict[str, Any]]:
    """Normalize a movie detail payload. Returns None when the upstream has no such movie."""
    if not isinstance(payload, dict) or not payload:
        return None
    data = payload
    if isinstance(payload.get("movie"), dict):
        data = dict(payload["movie"])
        data.setdefault("episodes", payload.get("episodes"))
    elif isinstance(payload.get("data"), dict):
        data = payload["data"]
    data = dict(data)
    data["episodes"] = _normalize_servers(data.get("episodes"))
    try:
        movie = UpstreamMovieDetail.model_validate(data)
    except PydanticValidationError as e:
        logger.warning(f"Unexpected movie detail payload: {e}")
        return None
    if not movie.slug or not movie.name:
        return None
    return {
        "slug": movie.slug,
        "name": movie.name,
        "origin_name": movie.origin_name,
        "description": movie.description or movie.content,
        "poster_url": movie.poster_url,
        "thumb_url": movie.thumb_url,
        "year": movie.year,
        "duration": movie.time,
        "quality": movie.quality,
        "language": movie.language or movie.lang,
        "director": movie.director,
        "actors": movie.actors or movie.casts,
        "genres": _split_names(movie.genres or movie.categories),
        "countries": _split_names(movie.countries),
        "type": movie.type,
        "status": movie.status,
        "episode_current": movie.episode_current,
        "episode_total": movie.episode_total,
        "trailer_url": movie.trailer_url,
        "tmdb_id": movie.tmdb_id,
        "imdb_id": movie.imdb_id,
        "tmdb_vote_average": movie.tmdb_vote_average,
        "view": movie.view,
        "episodes": [server.model_dump() for server in movie.episodes],
    }


def normalize_names(payload: Any) -> List[str]:
    """Taxonomy endpoints return either strings or {"name": ...} objects."""
    if isinstance(payload, dict):
        payload = payload.get("data") or payload.get("items") or []
    names = []
    for entry in payload or []:
        if isinstance(entry, dict):
            name = entry.get("name") or entry.get("slug")
        else:
            name = entry
        if name and str(name).strip():
            names.append(str(name).strip())
    return names


class MovieApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        version: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
    ):
        self.base_url = (base_url or settings.movie_api_base_url).rstrip("/")
        self.version = version or settings.movie_api_version
        self.timeout = timeout if timeout is not None else settings.movie_api_timeout_seconds
        self.retries = retries if retries is not None else settings.movie_api_retries
        self.breaker = breaker or movie_api_breaker
        self._transport = transport
        self._sleep = sleep

    async def _fetch(self, path: str, params: Optional[dict]) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"User-Agent": settings.movie_api_user_agent, "Accept": "application/json"},
            transport=self._transport,
        ) as client:
            logger.info(f"Calling movie API: {path} {params or ''}")
            resp = await client.get(path, params=params)
            resp.raise_for_status()
            if resp.status_code == 204 or not resp.content:
                return {}
            return resp.json()

    async def _request(self, path: str, params: Optional[dict] = None, not_found_ok: bool = False) -> Any:
        await metrics.increment("movie_api_requests")

        async def attempt():
            return await self.breaker.call(lambda: self._fetch(path, params))

        try:
            async with metrics.Timer("movie_api"):
                return await with_retry(
                    attempt,
                    retries=self.retries,
                    base_delay=settings.movie_api_backoff_base,
                    sleep=self._sleep,
                    name=f"movie API {path}",
                )
        except MovieApiUnavailableError:
            await metrics.increment("movie_api_rejected")
            raise
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            if code == 404 and not_found_ok:
                return None
            await metrics.increment("movie_api_failures")
            logger.error(f"Movie API {path} returned {code}")
            if is_transient(e):
                raise MovieApiUnavailableError(f"Movie API unavailable (HTTP {code})", status=code)
            raise MovieApiError(f"Movie API request failed (HTTP {code})", status=code)
        except httpx.TransportError as e:
            await metrics.increment("movie_api_failures")
            logger.error(f"Network error calling movie API {path}: {e}")
            raise MovieApiNetworkError("Network error connecting to the movie API")
        except ValueError as e:
            # Invalid JSON body
            await metrics.increment("movie_api_failures")
            logger.error(f"Invalid JSON from movie API {path}: {e}")
            raise MovieApiError("Movie API returned an invalid response")

    async def _get(self, path: str, params: Optional[dict] = None, ttl: int = None, not_found_ok: bool = False,
                   normalize=None) -> Any:
        key = cache.cache_key("movie_api", path, **(params or {}))

        async def load():
            payload = await self._request(path, params, not_found_ok=not_found_ok)
            return normalize(payload) if normalize else payload

        return await cache.cached(key, ttl or settings.cache_ttl_list, load)

    # Lists

    async def get_latest_movies(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        return await self._get(
            f"/phim-moi/{self.version}",
            {"page": page, "limit": limit},
            ttl=settings.cache_ttl_list,
            normalize=normalize_list,
        )

    async def filter_movies(
        self,
        name: Optional[str] = None,
        type: Optional[str] = None,
        genre: Optional[str] = None,
        country: Optional[str] = None,
        year: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        params = {
            "name": name,
            "loai_phim": type,
            "the_loai": genre,
            "quoc_gia": country,
            "year": year,
            "page": page,
            "limit": limit,
        }
        params = {k: v for k, v in params.items() if v not in (None, "")}
        return await self._get("/phim-data/v1", params, ttl=settings.cache_ttl_list, normalize=normalize_list)

    async def search_movies(self, query: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        query = _require(query, "Search query")
        return await self.filter_movies(name=query, page=page, limit=limit)

    # Detail

    async def get_movie_detail(self, slug: str) -> Optional[Dict[str, Any]]:
        slug = _require(slug, "Slug")
        return await self._get(
            f"/phim-chi-tiet/{self.version}",
            {"slug": slug},
            ttl=settings.cache_ttl_detail,
            not_found_ok=True,
            normalize=normalize_detail,
        )

    async def get_tmdb(self, slug: str) -> Optional[Dict[str, Any]]:
        slug = _require(slug, "Slug")
        return await self._get(f"/get_tmdb/{slug}", ttl=settings.cache_ttl_detail, not_found_ok=True)

    async def get_actors(self, slug: str) -> Optional[Dict[str, Any]]:
        slug = _require(slug, "Slug")
        return await self._get(f"/get-dien-vien/{slug}", ttl=settings.cache_ttl_detail, not_found_ok=True)

    async def get_production(self, slug: str) -> Optional[Dict[str, Any]]:
        slug = _require(slug, "Slug")
        return await self._get(f"/get-nha-phat-hanh/{slug}", ttl=settings.cache_ttl_detail, not_found_ok=True)

    async def get_images(self, slug: str) -> Optional[Dict[str, Any]]:
        slug = _require(slug, "Slug")
        return await self._get(
            f"/get-img/{self.version}", {"slug": slug}, ttl=settings.cache_ttl_detail, not_found_ok=True
        )

    # Taxonomy

    async def get_genres(self) -> List[str]:
        return await self._get("/api/genres", ttl=settings.cache_ttl_taxonomy, normalize=normalize_names)

    async def get_countries(self) -> List[str]:
        return await self._get("/api/countries", ttl=settings.cache_ttl_taxonomy, normalize=normalize_names)

    async def get_movie_types(self) -> List[str]:
        return await self._get("/api/movie-types", ttl=settings.cache_ttl_taxonomy, normalize=normalize_names)


_client: Optional[MovieApiClient] = None


def get_movie_api_client() -> MovieApiClient:
    """FastAPI dependency returning the shared client."""
    global _client
    if _client is None:
        _client = MovieApiClient()
    return _client
