from typing import Any, Dict
from fastapi import APIRouter
import logging

from cinestream.core.metrics import counters_snapshot, latency_snapshot
from cinestream.services.movie_api_client import movie_api_breaker


router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/metrics/snapshot")
async def get_metrics_snapshot() -> Dict[str, Any]:
    counters = await counters_snapshot()
    lat = await latency_snapshot()
    logger.info(f"[METRICS] Snapshot counters={len(counters)} latency={len(lat)}")
    return {"counters": counters, "latency": lat, "circuit": movie_api_breaker.snapshot()}
