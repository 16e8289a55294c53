from celery import Celery
from cinestream.core.config import settings

celery_app = Celery(
    "cinestream",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["cinestream.services.tasks"]
)

celery_app.conf.update(
    result_expires=3600,
    task_acks_late=True,
    worker_max_tasks_per_child=100,
    worker_prefetch_multiplier=1,

    # Connection settings
    broker_connection_retry_on_startup=True,
    broker_pool_limit=10,

    # RedBeat scheduler configuration
    beat_scheduler='redbeat.schedulers:RedBeatScheduler',
    redbeat_redis_url=settings.redis_url,
    redbeat_key_prefix='celery:beat:',

    task_routes={
        'cinestream.services.tasks.sync_latest_movies': {'queue': 'sync'},
        'cinestream.services.tasks.cleanup_stale_cache': {'queue': 'maintenance'},
    },

    # Scheduled tasks
    beat_schedule={
        "sync-latest-movies": {
            "task": "cinestream.services.tasks.sync_latest_movies",
            "schedule": 60 * 30,  # every 30 minutes
            "kwargs": {"pages": settings.sync_latest_pages},
        },
        "cleanup-stale-cache": {
            "task": "cinestream.services.tasks.cleanup_stale_cache",
            "schedule": 60 * 60 * 6,  # every 6 hours
        },
    },
    timezone="UTC",
)
