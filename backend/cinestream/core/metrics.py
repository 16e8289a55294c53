from __future__ import annotations
import time
import logging
from typing import Any, Dict

from cinestream.core.redis_client import get_redis


COUNTERS_KEY = "metrics:counters"
logger = logging.getLogger(__name__)


async def increment(name: str, amount: int = 1) -> None:
    r = get_redis()
    try:
        await r.hincrby(COUNTERS_KEY, name, amount)
    except Exception as e:
        logger.debug(f"Metric increment failed for {name}: {e}")


async def timing(name: str, milliseconds: float) -> None:
    """Record latency aggregates (count/sum/min/max)."""
    r = get_redis()
    try:
        key = f"metrics:latency:{name}"
        ms = float(milliseconds)
        pipe = r.pipeline()
        pipe.hincrby(key, "count", 1)
        pipe.hincrbyfloat(key, "sum", ms)
        pipe.hget(key, "min")
        pipe.hget(key, "max")
        res = await pipe.execute()
        # res: [count, sum, min, max]
        cur_min = res[2]
        cur_max = res[3]
        if cur_min is None or ms < float(cur_min):
            await r.hset(key, "min", ms)
        if cur_max is None or ms > float(cur_max):
            await r.hset(key, "max", ms)
    except Exception as e:
        logger.debug(f"Metric timing failed for {name}: {e}")


async def counters_snapshot() -> Dict[str, int]:
    r = get_redis()
    out: Dict[str, int] = {}
    try:
        data = await r.hgetall(COUNTERS_KEY)
        for k, v in (data or {}).items():
            try:
                out[str(k)] = int(v)
            except (TypeError, ValueError):
                out[str(k)] = 0
    except Exception as e:
        logger.warning(f"Counters snapshot failed: {e}")
    return out


async def latency_snapshot() -> Dict[str, Dict[str, Any]]:
    r = get_redis()
    out: Dict[str, Dict[str, Any]] = {}
    try:
        async for key in r.scan_iter(match="metrics:latency:*"):
            name = str(key).split(":", 2)[-1]
            stats = await r.hgetall(key)
            count = int(stats.get("count", 0) or 0)
            total = float(stats.get("sum", 0.0) or 0.0)
            out[name] = {
                "count": count,
                "sum": total,
                "min": float(stats.get("min", 0.0) or 0.0),
                "max": float(stats.get("max", 0.0) or 0.0),
                "avg": (total / count) if count else 0.0,
            }
    except Exception as e:
        logger.warning(f"Latency snapshot failed: {e}")
    return out


class Timer:
    """Async context manager that records elapsed milliseconds under `name`."""

    def __init__(self, name: str):
        self.name = name
        self._start = None
        self.elapsed_ms = 0.0

    async def __aenter__(self):
        self._start = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
        await timing(self.name, self.elapsed_ms)
        return False
