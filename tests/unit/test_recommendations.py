import unittest
from datetime import timedelta

from support import reset_db

from cinestream.core.database import SessionLocal
from cinestream.core.errors import NotFoundError
from cinestream.models import CachedMovie, DailyView, FeaturedMovie, Genre, MovieStatistic, User, WatchHistory
from cinestream.services import recommendation_service
from cinestream.utils.timezone import utc_today


def seed(db):
    action, myth, drama = Genre(name="Hành Động"), Genre(name="Thần Thoại"), Genre(name="Tâm Lý")
    db.add_all([action, myth, drama])
    for slug, genres in (
        ("tay-du-ky", [myth, action]),
        ("phong-than", [myth, action]),
        ("bao-lien-dang", [myth]),
        ("hong-lau-mong", [drama]),
        ("thuy-hu", [action, drama]),
        ("khong-the-loai", []),
    ):
        db.add(CachedMovie(slug=slug, name=slug.replace("-", " ").title(), genres=genres))
    neo = User(username="neo", email="neo@example.com", password_hash="x")
    trinity = User(username="trinity", email="trinity@example.com", password_hash="x")
    db.add_all([neo, trinity])
    db.commit()
    return neo, trinity


def slugs(cards):
    return [c["slug"] for c in cards]


class RecommendationTestCase(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()
        self.addCleanup(self.db.close)
        self.neo, self.trinity = seed(self.db)

    def add_stats(self):
        self.db.add_all([
            MovieStatistic(movie_slug="tay-du-ky", views=10, favorite_count=0),
            MovieStatistic(movie_slug="phong-than", views=10, favorite_count=2),
            MovieStatistic(movie_slug="thuy-hu", views=0, favorite_count=1),
            MovieStatistic(movie_slug="bao-lien-dang", views=0, favorite_count=0),
        ])
        self.db.commit()


class TestPopularAndTrending(RecommendationTestCase):
    def test_popular_orders_by_views_then_favorites(self):
        self.add_stats()
        cards = recommendation_service.popular(self.db)
        self.assertEqual(slugs(cards), ["phong-than", "tay-du-ky", "thuy-hu"])
        self.assertEqual(cards[0]["statistics"]["favorite_count"], 2)
        self.assertCountEqual(cards[0]["genres"], ["Thần Thoại", "Hành Động"])

    def test_trending_sums_recent_daily_views(self):
        today = utc_today()
        self.db.add_all([
            DailyView(movie_slug="hong-lau-mong", view_date=today, views=5),
            DailyView(movie_slug="tay-du-ky", view_date=today, views=1),
            DailyView(movie_slug="tay-du-ky", view_date=today - timedelta(days=1), views=3),
            DailyView(movie_slug="thuy-hu", view_date=today - timedelta(days=10), views=50),
            DailyView(movie_slug="da-xoa", view_date=today, views=100),
        ])
        self.db.commit()

        cards = recommendation_service.trending(self.db)
        self.assertEqual(slugs(cards), ["hong-lau-mong", "tay-du-ky"])
        self.assertEqual([c["recent_views"] for c in cards], [5, 4])
        self.assertEqual(slugs(recommendation_service.trending(self.db, limit=1)), ["hong-lau-mong"])

    def test_trending_falls_back_to_popular(self):
        self.add_stats()
        self.assertEqual(slugs(recommendation_service.trending(self.db)), ["phong-than", "tay-du-ky", "thuy-hu"])


class TestFeatured(RecommendationTestCase):
    def test_curated_picks_in_display_order(self):
        self.db.add_all([
            FeaturedMovie(movie_slug="bao-lien-dang", category="home", display_order=2),
            FeaturedMovie(movie_slug="hong-lau-mong", category="home", display_order=1),
            FeaturedMovie(movie_slug="thuy-hu", category="series", display_order=1),
        ])
        self.db.commit()
        self.assertEqual(slugs(recommendation_service.featured(self.db, "home")), ["hong-lau-mong", "bao-lien-dang"])
        self.assertEqual(slugs(recommendation_service.featured(self.db, "series")), ["thuy-hu"])

    def test_empty_category_falls_back_to_popular(self):
        self.add_stats()
        self.assertEqual(slugs(recommendation_service.featured(self.db, "kids", limit=2)), ["phong-than", "tay-du-ky"])


class TestSimilar(RecommendationTestCase):
    def test_ranked_by_shared_genres(self):
        cards = recommendation_service.similar(self.db, "tay-du-ky")
        self.assertEqual(slugs(cards), ["phong-than", "bao-lien-dang", "thuy-hu"])
        self.assertEqual([c["shared_genres"] for c in cards], [2, 1, 1])
        self.assertEqual(slugs(recommendation_service.similar(self.db, "hong-lau-mong")), ["thuy-hu"])

    def test_unknown_or_genreless_movie(self):
        with self.assertRaises(NotFoundError):
            recommendation_service.similar(self.db, "khong-ton-tai")
        with self.assertRaises(NotFoundError):
            recommendation_service.similar(self.db, "khong-the-loai")


class TestForUser(RecommendationTestCase):
    def watch(self, user, *movie_slugs):
        for slug in movie_slugs:
            self.db.add(WatchHistory(user_id=user.id, movie_slug=slug, episode_slug="tap-1"))
        self.db.commit()

    def test_genres_of_watched_movies(self):
        self.watch(self.neo, "tay-du-ky")
        source, cards = recommendation_service.for_user(self.db, self.neo.id)
        self.assertEqual(source, "genres")
        self.assertEqual(slugs(cards), ["phong-than", "bao-lien-dang", "thuy-hu"])
        self.assertNotIn("tay-du-ky", slugs(cards))

    def test_no_history_uses_trending(self):
        self.add_stats()
        source, cards = recommendation_service.for_user(self.db, self.trinity.id)
        self.assertEqual(source, "trending")
        self.assertEqual(slugs(cards), ["phong-than", "tay-du-ky", "thuy-hu"])

    def test_everything_watched_uses_trending(self):
        self.watch(self.neo, "tay-du-ky", "phong-than", "bao-lien-dang", "hong-lau-mong", "thuy-hu")
        source, _ = recommendation_service.for_user(self.db, self.neo.id)
        self.assertEqual(source, "trending")


if __name__ == "__main__":
    unittest.main()
