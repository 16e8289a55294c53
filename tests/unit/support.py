"""Shared test doubles: environment, in-memory async Redis, upstream API payloads."""
import os
import sys
import time
import fnmatch
from unittest import mock

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("LOG_LEVEL", "WARNING")

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend"))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import httpx
from redis.exceptions import ConnectionError as RedisConnectionError

from cinestream.core.database import engine
from cinestream.models import Base

REDIS_USERS = (
    "cinestream.services.cache.get_redis",
    "cinestream.services.rate_limit.get_redis",
    "cinestream.core.metrics.get_redis",
    "cinestream.api.health.get_redis",
)


class FakePipeline:
    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self
        return queue

    async def execute(self):
        results = []
        for name, args, kwargs in self._ops:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._ops = []
        return results


class FakeRedis:
    """Subset of redis.asyncio.Redis (decode_responses=True) kept in memory."""

    def __init__(self, broken=False):
        self.broken = broken
        self.data = {}
        self.expiry = {}

    def _check(self):
        if self.broken:
            raise RedisConnectionError("redis is down")

    def _live(self, key):
        exp = self.expiry.get(key)
        if exp is not None and exp <= time.time():
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.data

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.data[key] if self._live(key) else None

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = str(value)
        if ex:
            self.expiry[key] = time.time() + ex
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self._live(key):
                del self.data[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    async def incr(self, key):
        self._check()
        value = int(self.data[key]) + 1 if self._live(key) else 1
        self.data[key] = str(value)
        return value

    async def expire(self, key, seconds):
        self._check()
        if key in self.data:
            self.expiry[key] = time.time() + seconds
            return True
        return False

    async def ttl(self, key):
        exp = self.expiry.get(key)
        return int(exp - time.time()) if exp else -1

    async def hincrby(self, key, field, amount=1):
        self._check()
        h = self.data.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    async def hincrbyfloat(self, key, field, amount=1.0):
        self._check()
        h = self.data.setdefault(key, {})
        h[field] = str(float(h.get(field, 0.0)) + amount)
        return float(h[field])

    async def hget(self, key, field):
        self._check()
        return self.data.get(key, {}).get(field)

    async def hset(self, key, field, value):
        self._check()
        self.data.setdefault(key, {})[field] = str(value)
        return 1

    async def hgetall(self, key):
        self._check()
        return dict(self.data.get(key, {}))

    async def scan_iter(self, match="*"):
        self._check()
        for key in list(self.data):
            if fnmatch.fnmatch(key, match) and self._live(key):
                yield key

    def pipeline(self):
        return FakePipeline(self)


def use_fake_redis(testcase, fake=None):
    """Patch every get_redis import site with `fake` for the duration of the test."""
    fake = fake or FakeRedis()
    for target in REDIS_USERS:
        patcher = mock.patch(target, return_value=fake)
        patcher.start()
        testcase.addCleanup(patcher.stop)
    return fake


def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


async def no_sleep(delay):
    return None


def detail_payload(slug="tay-du-ky", name="Tây Du Ký", servers=None):
    if servers is None:
        servers = [
            {
                "server_name": "Vietsub #1",
                "server_data": [
                    {"name": f"Tập {i}", "slug": f"tap-{i}", "link_embed": f"https://embed.example/{slug}/{i}",
                     "link_m3u8": f"https://cdn.example/{slug}/{i}.m3u8"}
                    for i in (1, 2, 3)
                ],
            },
            {
                "server_name": "Thuyết Minh",
                "server_data": [
                    {"name": "Tập 1", "slug": "tap-1", "link_embed": f"https://embed.example/{slug}/tm1",
                     "link_m3u8": ""},
                ],
            },
        ]
    return {
        "status": True,
        "movie": {
            "name": name,
            "slug": slug,
            "origin_name": "Journey to the West",
            "content": "Monkey King escorts a monk westward.",
            "poster_url": f"https://img.example/{slug}-poster.jpg",
            "thumb_url": f"https://img.example/{slug}-thumb.jpg",
            "year": 1986,
            "time": "45 phút/tập",
            "quality": "HD",
            "lang": "Vietsub",
            "director": "Dương Khiết",
            "actors": "Lục Tiểu Linh Đồng, Trì Trọng Thụy",
            "genres": "Thần Thoại, Phiêu Lưu",
            "countries": "Trung Quốc",
            "type": "series",
            "status": "completed",
            "episode_current": "Hoàn Tất (25/25)",
            "episode_total": "25",
            "tmdb_id": 12345,
            "tmdb_vote_average": "8.4",
        },
        "episodes": servers,
    }


def list_payload(slugs=("tay-du-ky", "hong-lau-mong"), page=1, total_pages=5):
    return {
        "data": [
            {"name": slug.replace("-", " ").title(), "slug": slug, "year": 2024, "loai_phim": "phim-bo",
             "quoc_gia": "Trung Quốc", "poster_url": f"https://img.example/{slug}.jpg"}
            for slug in slugs
        ],
        "pagination": {"current_page": page, "total_pages": total_pages, "total_items": total_pages * 10, "limit": 10},
    }


class UpstreamStub:
    """httpx.MockTransport handler serving canned payloads; records every request."""

    def __init__(self, details=None):
        self.requests = []
        self.details = details if details is not None else {"tay-du-ky": detail_payload()}
        self.latest = list_payload()
        self.filtered = list_payload(slugs=("tay-du-ky",), total_pages=1)
        self.genres = [{"name": "Hành Động"}, {"name": "Thần Thoại"}]
        self.countries = ["Trung Quốc", "Hàn Quốc"]
        self.types = [{"name": "phim-bo"}, {"name": "phim-le"}]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/phim-moi/"):
            return httpx.Response(200, json=self.latest)
        if path == "/phim-data/v1":
            return httpx.Response(200, json=self.filtered)
        if path.startswith("/phim-chi-tiet/"):
            slug = request.url.params.get("slug")
            if slug in self.details:
                return httpx.Response(200, json=self.details[slug])
            return httpx.Response(404, json={"status": False, "msg": "Movie not found"})
        if path == "/api/genres":
            return httpx.Response(200, json=self.genres)
        if path == "/api/countries":
            return httpx.Response(200, json={"data": self.countries})
        if path == "/api/movie-types":
            return httpx.Response(200, json=self.types)
        if path.startswith("/get-img/"):
            return httpx.Response(200, json={"images": {"posters": ["https://img.example/p.jpg"]}})
        if path.startswith("/get-dien-vien/"):
            return httpx.Response(200, json={"actors": [{"name": "Lục Tiểu Linh Đồng"}]})
        if path.startswith("/get-nha-phat-hanh/"):
            return httpx.Response(200, json={"companies": [{"name": "CCTV"}]})
        if path.startswith("/get_tmdb/"):
            return httpx.Response(404, json={})
        return httpx.Response(404, json={})


def make_client(stub=None, breaker=None, retries=0):
    from cinestream.services.movie_api_client import MovieApiClient
    from cinestream.services.resilience import CircuitBreaker

    stub = stub or UpstreamStub()
    client = MovieApiClient(
        base_url="https://upstream.test",
        retries=retries,
        breaker=breaker or CircuitBreaker("test", failure_threshold=5, reset_timeout=30.0),
        transport=httpx.MockTransport(stub),
        sleep=no_sleep,
    )
    return client, stub
