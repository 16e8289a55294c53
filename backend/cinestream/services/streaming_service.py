"""
streaming_service.py

Episode lookups over the cached movie rows.
"""
import logging
from typing import Any, Dict, List, Optional

from cinestream.core.errors import NotFoundError
from cinestream.models import CachedEpisode, CachedMovie
from cinestream.services.movie_service import episodes_by_server

logger = logging.getLogger(__name__)


def list_episodes(movie: CachedMovie) -> Dict[str, Any]:
    servers = episodes_by_server(movie)
    return {
        "movie_slug": movie.slug,
        "movie_name": movie.name,
        "episode_current": movie.episode_current,
        "episode_total": movie.episode_total,
        "total_episodes": sum(len(s["items"]) for s in servers),
        "servers": servers,
    }


def _server_episodes(movie: CachedMovie, server_name: str) -> List[CachedEpisode]:
    return sorted(
        (ep for ep in movie.episodes if ep.server_name == server_name),
        key=lambda ep: ep.position or 0,
    )


def get_episode(movie: CachedMovie, episode_slug: str, server: Optional[str] = None) -> Dict[str, Any]:
    """Find an episode (first server that has it unless `server` is given) with prev/next neighbours."""
    candidates = [ep for ep in movie.episodes if ep.slug == episode_slug]
    if server:
        candidates = [ep for ep in candidates if ep.server_name == server]
    if not candidates:
        where = f" on server '{server}'" if server else ""
        raise NotFoundError(f"Episode '{episode_slug}'{where} not found for movie '{movie.slug}'")

    episode = sorted(candidates, key=lambda ep: (ep.server_name, ep.position or 0))[0]
    siblings = _server_episodes(movie, episode.server_name)
    index = siblings.index(episode)
    previous_ep = siblings[index - 1] if index > 0 else None
    next_ep = siblings[index + 1] if index + 1 < len(siblings) else None

    return {
        "movie_slug": movie.slug,
        "movie_name": movie.name,
        "server_name": episode.server_name,
        "name": episode.name,
        "slug": episode.slug,
        "embed": episode.embed_url or "",
        "m3u8": episode.m3u8_url or "",
        "position": index + 1,
        "total_in_server": len(siblings),
        "previous_episode": previous_ep.slug if previous_ep else None,
        "next_episode": next_ep.slug if next_ep else None,
        "available_servers": sorted({ep.server_name for ep in movie.episodes if ep.slug == episode_slug}),
    }
