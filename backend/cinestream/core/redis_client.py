from redis import asyncio as aioredis  # Async client
import redis as redis_sync  # Sync client
from redis.asyncio.connection import ConnectionPool as AsyncConnectionPool
from redis.connection import ConnectionPool as SyncConnectionPool
from cinestream.core.config import settings
import asyncio
import weakref

# Async clients keyed by the event loop object; entries vanish with their loop
_redis_async_by_loop: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aioredis.Redis]" = weakref.WeakKeyDictionary()
# Used only when called outside a running loop (import-time helpers, sync tests)
_redis_async_default: aioredis.Redis | None = None

_redis_sync: redis_sync.Redis | None = None
_sync_pool: SyncConnectionPool | None = None


def _new_async_client() -> aioredis.Redis:
	pool = AsyncConnectionPool.from_url(
		settings.redis_url,
		decode_responses=True,
		max_connections=50,
		socket_connect_timeout=5,
		socket_timeout=5,
		retry_on_timeout=True,
	)
	return aioredis.Redis(connection_pool=pool)


def get_redis() -> aioredis.Redis:
	"""Get an async Redis client bound to the current event loop.

	A client created in one loop must not be awaited from another, so each
	running loop gets its own client and pool.
	"""
	global _redis_async_default
	try:
		loop = asyncio.get_running_loop()
	except RuntimeError:
		if _redis_async_default is None:
			_redis_async_default = _new_async_client()
		return _redis_async_default

	client = _redis_async_by_loop.get(loop)
	if client is None:
		client = _new_async_client()
		_redis_async_by_loop[loop] = client
	return client


async def close_redis() -> None:
	"""Close and forget the client of the running loop.

	Short-lived loops (one asyncio.run per Celery task) call this before the
	loop ends so their connections are released.
	"""
	client = _redis_async_by_loop.pop(asyncio.get_running_loop(), None)
	if client is None:
		return
	try:
		await client.aclose()
	finally:
		await client.connection_pool.disconnect()


def get_redis_sync() -> redis_sync.Redis:
	"""Get a singleton sync Redis client (redis) with connection pooling."""
	global _redis_sync, _sync_pool
	if _redis_sync is None:
		_sync_pool = SyncConnectionPool.from_url(
			settings.redis_url,
			decode_responses=True,
			max_connections=50,
			socket_connect_timeout=5,
			socket_timeout=5,
			retry_on_timeout=True,
		)
		_redis_sync = redis_sync.Redis(connection_pool=_sync_pool)
	return _redis_sync
