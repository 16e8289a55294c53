from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.cors import CORSMiddleware

from cinestream.utils.logger import logger
from cinestream.core.config import settings
from cinestream.core.database import init_db
from cinestream.core.redis_client import close_redis
from cinestream.core.middleware import register_exception_handlers, register_middleware

from cinestream.api import (
    auth, movies, streaming, favorites, watch_later, watch_history, comments, ratings, statistics,
    recommendations, analytics,
)
from cinestream.api.health import router as health_router
from cinestream.api.metrics_api import router as metrics_api_router


app = FastAPI(title="CineStream API", version="1.0.0")

register_exception_handlers(app)
register_middleware(app)

# Add GZip compression middleware for better transfer performance
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-Response-Time"],
)

# Core API routers
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(movies.router, prefix="/api/movies", tags=["Movies"])
app.include_router(streaming.router, prefix="/api/streaming", tags=["Streaming"])
app.include_router(favorites.router, prefix="/api/favorites", tags=["Favorites"])
app.include_router(watch_later.router, prefix="/api/watch-later", tags=["Watch Later"])
app.include_router(watch_history.router, prefix="/api/watch-history", tags=["Watch History"])
app.include_router(comments.router, prefix="/api/comments", tags=["Comments"])
app.include_router(ratings.router, prefix="/api/ratings", tags=["Ratings"])
app.include_router(statistics.router, prefix="/api/statistics", tags=["Statistics"])
app.include_router(recommendations.router, prefix="/api/recommendations", tags=["Recommendations"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])
app.include_router(metrics_api_router, prefix="/api", tags=["Metrics"])
app.include_router(health_router, tags=["Health"])


@app.on_event("startup")
async def startup_event():
    await init_db()
    logger.info(f"CineStream API started; movie API at {settings.movie_api_base_url}")


@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()


@app.get("/")
def root():
    return {"status": "CineStream API Running"}
