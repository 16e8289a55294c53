import unittest

from support import FakeRedis, use_fake_redis

from cinestream.services import cache


class TestCacheKey(unittest.TestCase):
    def test_params_sorted_and_blank_dropped(self):
        a = cache.cache_key("movie_api", "/phim-data/v1", page=1, name="abc", year=None, genre="")
        b = cache.cache_key("movie_api", "/phim-data/v1", name="abc", page=1)
        self.assertEqual(a, b)
        self.assertEqual(a, "cache:movie_api:/phim-data/v1:name=abc&page=1")

    def test_without_params(self):
        self.assertEqual(cache.cache_key("movie_api", "/api/genres"), "cache:movie_api:/api/genres")


class TestCached(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.redis = use_fake_redis(self)
        self.loads = 0

    async def loader(self):
        self.loads += 1
        return {"data": [{"slug": "a"}], "pagination": {"current_page": 1}}

    async def test_read_through_hits_second_time(self):
        first = await cache.cached("cache:x", 60, self.loader)
        second = await cache.cached("cache:x", 60, self.loader)
        self.assertEqual(first, second)
        self.assertEqual(self.loads, 1)
        counters = self.redis.data["metrics:counters"]
        self.assertEqual(counters["cache_misses"], "1")
        self.assertEqual(counters["cache_hits"], "1")

    async def test_empty_results_not_stored(self):
        async def empty():
            self.loads += 1
            return {"data": [], "pagination": {}}

        await cache.cached("cache:empty", 60, empty)
        await cache.cached("cache:empty", 60, empty)
        self.assertEqual(self.loads, 2)
        self.assertNotIn("cache:empty", self.redis.data)

    async def test_ttl_applied(self):
        await cache.cached("cache:ttl", 120, self.loader)
        self.assertGreater(await self.redis.ttl("cache:ttl"), 100)

    async def test_invalidate_prefix(self):
        await cache.set_json("stats:top_viewed:10", [1], 60)
        await cache.set_json("stats:top_rated:10:1", [2], 60)
        await cache.set_json("cache:keep", [3], 60)
        removed = await cache.invalidate("stats:")
        self.assertEqual(removed, 2)
        self.assertEqual(await cache.get_json("cache:keep"), [3])


class TestCacheWithRedisDown(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        use_fake_redis(self, FakeRedis(broken=True))

    async def test_failures_degrade_to_miss(self):
        calls = []

        async def loader():
            calls.append(1)
            return ["value"]

        self.assertEqual(await cache.cached("cache:any", 60, loader), ["value"])
        self.assertEqual(await cache.cached("cache:any", 60, loader), ["value"])
        self.assertEqual(len(calls), 2)
        self.assertIsNone(await cache.get_json("cache:any"))
        self.assertEqual(await cache.invalidate("cache:"), 0)


if __name__ == "__main__":
    unittest.main()
