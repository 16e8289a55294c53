"""
health.py

Dependency health for load balancers: database, Redis and the upstream
circuit breaker. Only a database failure makes the service unhealthy.
"""
import asyncio
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import logging

from cinestream.core.database import ping_db
from cinestream.core.redis_client import get_redis
from cinestream.services.movie_api_client import movie_api_breaker
from cinestream.services.resilience import CircuitBreaker
from cinestream.utils.timezone import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


def _check(name: str, status: str, description: str, start: float) -> dict:
    return {
        "name": name,
        "status": status,
        "description": description,
        "duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
    }


async def check_database() -> dict:
    start = time.perf_counter()
    try:
        await asyncio.get_running_loop().run_in_executor(None, ping_db)
        return _check("database", "healthy", "Database connection OK", start)
    except Exception as e:
        logger.error(f"Health check: database failed: {e}")
        return _check("database", "unhealthy", f"Database error: {e}", start)


async def check_redis() -> dict:
    start = time.perf_counter()
    try:
        await get_redis().ping()
        return _check("cache", "healthy", "Redis connection OK", start)
    except Exception as e:
        logger.warning(f"Health check: redis failed: {e}")
        return _check("cache", "degraded", f"Redis error: {e}", start)


def check_movie_api(breaker: CircuitBreaker = movie_api_breaker) -> dict:
    start = time.perf_counter()
    snap = breaker.snapshot()
    status = "healthy" if snap["state"] == CircuitBreaker.CLOSED else "degraded"
    return _check("movie_api", status, f"Circuit {snap['state']} ({snap['consecutive_failures']} consecutive failures)", start)


@router.get("/health")
async def health():
    checks = [await check_database(), await check_redis(), check_movie_api()]
    if any(c["status"] == "unhealthy" for c in checks):
        overall = "unhealthy"
    elif any(c["status"] == "degraded" for c in checks):
        overall = "degraded"
    else:
        overall = "healthy"
    body = {"status": overall, "timestamp": utc_now().isoformat(), "checks": checks}
    return JSONResponse(status_code=503 if overall == "unhealthy" else 200, content=body)
