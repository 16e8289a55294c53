"""
cache.py

Redis-backed JSON response cache. Redis problems degrade to cache misses
instead of failing the request.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from cinestream.core.redis_client import get_redis
from cinestream.core import metrics

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache"


def cache_key(*parts: Any, **params: Any) -> str:
    """Build a deterministic key; None-valued params are dropped."""
    key = ":".join([CACHE_PREFIX] + [str(p) for p in parts])
    clean = {k: v for k, v in params.items() if v is not None and v != ""}
    if clean:
        key += ":" + "&".join(f"{k}={clean[k]}" for k in sorted(clean))
    return key


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, dict)) and not value:
        return True
    if isinstance(value, dict) and "data" in value and not value.get("data"):
        return True
    return False


async def get_json(key: str) -> Optional[Any]:
    try:
        raw = await get_redis().get(key)
    except Exception as e:
        logger.warning(f"Redis cache get failed for {key}: {e}")
        return None
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse cached value for {key}: {e}")
        return None


async def set_json(key: str, value: Any, ttl: int) -> None:
    try:
        await get_redis().set(key, json.dumps(value, default=str), ex=ttl)
    except Exception as e:
        logger.warning(f"Redis cache set failed for {key}: {e}")


async def invalidate(prefix: str) -> int:
    """Delete every key starting with prefix. Returns number of keys removed."""
    removed = 0
    try:
        r = get_redis()
        async for key in r.scan_iter(match=f"{prefix}*"):
            removed += await r.delete(key)
    except Exception as e:
        logger.warning(f"Redis cache invalidate failed for {prefix}: {e}")
    return removed


async def cached(key: str, ttl: int, loader: Callable[[], Awaitable[Any]]) -> Any:
    """Read-through cache: return cached JSON or call loader and store its result."""
    hit = await get_json(key)
    if hit is not None:
        await metrics.increment("cache_hits")
        logger.debug(f"Cache hit: {key}")
        return hit
    await metrics.increment("cache_misses")
    value = await loader()
    if not _is_empty(value):
        await set_json(key, value, ttl)
    return value
