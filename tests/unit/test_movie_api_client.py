import unittest

from support import UpstreamStub, make_client, use_fake_redis
import httpx

from cinestream.core.errors import (
    MovieApiError, MovieApiNetworkError, MovieApiUnavailableError, ValidationError,
)
from cinestream.services.movie_api_client import normalize_detail, normalize_list, normalize_names
from cinestream.services.resilience import CircuitBreaker
from support import detail_payload


class TestNormalizers(unittest.TestCase):
    def test_list_defaults(self):
        self.assertEqual(
            normalize_list({}),
            {"data": [], "pagination": {"current_page": 0, "total_pages": 0, "total_items": 0, "limit": 0}},
        )

    def test_list_nested_items(self):
        payload = {"data": {"items": [{"name": "A", "slug": "a", "year": 2020}], "pagination": {"total_pages": 2}}}
        result = normalize_list(payload)
        self.assertEqual(result["data"][0]["slug"], "a")
        self.assertEqual(result["data"][0]["year"], "2020")
        self.assertEqual(result["pagination"]["total_pages"], 2)

    def test_detail_servers_and_fields(self):
        movie = normalize_detail(detail_payload())
        self.assertEqual(movie["slug"], "tay-du-ky")
        self.assertEqual(movie["year"], "1986")
        self.assertEqual(movie["description"], "Monkey King escorts a monk westward.")
        self.assertEqual(movie["language"], "Vietsub")
        self.assertEqual(movie["genres"], ["Thần Thoại", "Phiêu Lưu"])
        self.assertEqual(movie["tmdb_id"], "12345")
        self.assertAlmostEqual(movie["tmdb_vote_average"], 8.4)
        servers = movie["episodes"]
        self.assertEqual([s["server_name"] for s in servers], ["Vietsub #1", "Thuyết Minh"])
        self.assertEqual(servers[0]["items"][1], {
            "name": "Tập 2", "slug": "tap-2",
            "embed": "https://embed.example/tay-du-ky/2", "m3u8": "https://cdn.example/tay-du-ky/2.m3u8",
        })

    def test_detail_missing_movie(self):
        self.assertIsNone(normalize_detail({}))
        self.assertIsNone(normalize_detail({"status": False, "movie": {}}))

    def test_names(self):
        self.assertEqual(normalize_names([{"name": "A"}, "B", {"slug": "c"}, ""]), ["A", "B", "c"])
        self.assertEqual(normalize_names({"data": ["X"]}), ["X"])


class TestMovieApiClient(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.redis = use_fake_redis(self)
        self.client, self.stub = make_client()

    async def test_latest_movies_request_and_cache(self):
        first = await self.client.get_latest_movies(page=2, limit=5)
        second = await self.client.get_latest_movies(page=2, limit=5)
        self.assertEqual(first, second)
        self.assertEqual(len(self.stub.requests), 1)
        req = self.stub.requests[0]
        self.assertEqual(req.url.path, "/phim-moi/v1")
        self.assertEqual(req.url.params["page"], "2")
        self.assertEqual(req.url.params["limit"], "5")
        self.assertEqual(first["data"][0]["type"], "phim-bo")
        self.assertEqual(first["pagination"]["total_pages"], 5)

    async def test_filter_maps_upstream_params(self):
        await self.client.filter_movies(type="phim-le", genre="hanh-dong", country="han-quoc", year="2024")
        params = self.stub.requests[0].url.params
        self.assertEqual(self.stub.requests[0].url.path, "/phim-data/v1")
        self.assertEqual(params["loai_phim"], "phim-le")
        self.assertEqual(params["the_loai"], "hanh-dong")
        self.assertEqual(params["quoc_gia"], "han-quoc")
        self.assertEqual(params["year"], "2024")
        self.assertNotIn("name", params)

    async def test_search_uses_name(self):
        await self.client.search_movies("tây du")
        self.assertEqual(self.stub.requests[0].url.params["name"], "tây du")

    async def test_blank_inputs_rejected_without_io(self):
        with self.assertRaises(ValidationError):
            await self.client.get_movie_detail("  ")
        with self.assertRaises(ValidationError):
            await self.client.search_movies("")
        self.assertEqual(self.stub.requests, [])

    async def test_detail_not_found_returns_none(self):
        self.assertIsNone(await self.client.get_movie_detail("missing"))
        self.assertEqual(self.stub.requests[0].url.params["slug"], "missing")

    async def test_taxonomy(self):
        self.assertEqual(await self.client.get_genres(), ["Hành Động", "Thần Thoại"])
        self.assertEqual(await self.client.get_countries(), ["Trung Quốc", "Hàn Quốc"])
        self.assertEqual(await self.client.get_movie_types(), ["phim-bo", "phim-le"])

    async def test_extras_paths(self):
        await self.client.get_images("tay-du-ky")
        await self.client.get_actors("tay-du-ky")
        await self.client.get_production("tay-du-ky")
        self.assertIsNone(await self.client.get_tmdb("tay-du-ky"))
        paths = [r.url.path for r in self.stub.requests]
        self.assertEqual(paths, ["/get-img/v1", "/get-dien-vien/tay-du-ky", "/get-nha-phat-hanh/tay-du-ky",
                                 "/get_tmdb/tay-du-ky"])

    async def test_user_agent_sent(self):
        await self.client.get_genres()
        self.assertIn("User-Agent", self.stub.requests[0].headers)


class TestMovieApiClientFailures(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.redis = use_fake_redis(self)
        self.delays = []

    async def sleep(self, delay):
        self.delays.append(delay)

    def client_for(self, handler, retries=3, breaker=None):
        from cinestream.services.movie_api_client import MovieApiClient
        return MovieApiClient(
            base_url="https://upstream.test",
            retries=retries,
            breaker=breaker or CircuitBreaker("test", failure_threshold=10),
            transport=httpx.MockTransport(handler),
            sleep=self.sleep,
        )

    async def test_retries_transient_then_succeeds(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=["Hành Động"])

        result = await self.client_for(handler).get_genres()
        self.assertEqual(result, ["Hành Động"])
        self.assertEqual(len(calls), 3)
        self.assertEqual(self.delays, [2.0, 4.0])

    async def test_exhausted_retries_map_to_unavailable(self):
        def handler(request):
            return httpx.Response(500)

        with self.assertRaises(MovieApiUnavailableError):
            await self.client_for(handler).get_genres()
        self.assertEqual(self.delays, [2.0, 4.0, 8.0])
        self.assertEqual(self.redis.data["metrics:counters"]["movie_api_failures"], "1")

    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400)

        with self.assertRaises(MovieApiError) as ctx:
            await self.client_for(handler).get_genres()
        self.assertNotIsInstance(ctx.exception, MovieApiUnavailableError)
        self.assertEqual(len(calls), 1)

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(MovieApiNetworkError):
            await self.client_for(handler, retries=1).get_genres()
        self.assertEqual(self.delays, [2.0])

    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        with self.assertRaises(MovieApiError):
            await self.client_for(handler).get_genres()

    async def test_open_circuit_fails_fast(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        breaker = CircuitBreaker("test", failure_threshold=2, reset_timeout=30.0)
        client = self.client_for(handler, retries=0, breaker=breaker)
        for _ in range(2):
            with self.assertRaises(MovieApiUnavailableError):
                await client.get_genres()
        self.assertEqual(breaker.state, CircuitBreaker.OPEN)

        with self.assertRaises(MovieApiUnavailableError):
            await client.get_countries()
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.redis.data["metrics:counters"]["movie_api_rejected"], "1")

    async def test_stub_serves_detail(self):
        client, stub = make_client(UpstreamStub())
        movie = await client.get_movie_detail("tay-du-ky")
        self.assertEqual(movie["name"], "Tây Du Ký")


if __name__ == "__main__":
    unittest.main()
