import unittest
from datetime import timedelta
from unittest import mock

from sqlalchemy.exc import IntegrityError

from support import reset_db

from cinestream.core.database import SessionLocal
from cinestream.core.errors import NotFoundError, ValidationError
from cinestream.models import (
    CachedMovie, DailyView, MovieRating, User, UserComment, UserFavorite, UserWatchLater,
)
from cinestream.services import history_service, statistics_service
from cinestream.utils.timezone import utc_today


def seed(db):
    user = User(username="neo", email="neo@example.com", password_hash="x", display_name="Neo")
    other = User(username="trinity", email="trinity@example.com", password_hash="x")
    db.add_all([user, other])
    for slug, name in (("tay-du-ky", "Tây Du Ký"), ("hong-lau-mong", "Hồng Lâu Mộng"), ("thuy-hu", "Thủy Hử")):
        db.add(CachedMovie(slug=slug, name=name, poster_url=f"https://img.example/{slug}.jpg"))
    db.commit()
    return user, other


class TestWatchedPercentage(unittest.TestCase):
    def test_clamped_and_rounded(self):
        self.assertEqual(history_service.watched_percentage(30, 90), 33.33)
        self.assertEqual(history_service.watched_percentage(200, 100), 100.0)
        self.assertEqual(history_service.watched_percentage(0, 100), 0.0)
        self.assertEqual(history_service.watched_percentage(10, 0), 0.0)

    def test_validation(self):
        with self.assertRaises(ValidationError):
            history_service.validate_progress(-1, 100)
        with self.assertRaises(ValidationError):
            history_service.validate_progress(10, 0)
        for current_time, duration in ((float("nan"), 100), (float("inf"), 100), (10, float("nan")), (10, float("inf"))):
            with self.assertRaises(ValidationError):
                history_service.validate_progress(current_time, duration)
        history_service.validate_progress(0, 1)


class TestWatchHistory(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()
        self.addCleanup(self.db.close)
        self.user, self.other = seed(self.db)

    def test_upsert_single_record_per_episode(self):
        first = history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", 60, 600)
        second = history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", 300, 600,
                                                 server_name="Vietsub #1")
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.position_seconds, 300)
        self.assertEqual(second.watched_percentage, 50.0)
        self.assertEqual(second.server_name, "Vietsub #1")
        self.assertFalse(second.completed)
        self.assertEqual(history_service.count_history(self.db, self.user.id), 1)

    def test_completed_at_ninety_percent(self):
        entry = history_service.record_progress(self.db, self.user.id, "tay-du-ky", None, 90, 100)
        self.assertTrue(entry.completed)
        self.assertEqual(entry.episode_slug, "")
        entry = history_service.record_progress(self.db, self.user.id, "tay-du-ky", "", 89.99, 100)
        self.assertFalse(entry.completed)

    def test_invalid_progress_rejected(self):
        with self.assertRaises(ValidationError):
            history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", -5, 100)
        with self.assertRaises(ValidationError):
            history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", 5, 0)

    def test_integrity_error_without_row_propagates(self):
        failure = IntegrityError("INSERT INTO watch_history", {}, Exception("NOT NULL constraint failed"))
        with mock.patch.object(self.db, "commit", side_effect=failure):
            with self.assertRaises(IntegrityError):
                history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", 5, 100)

    def test_list_newest_first_and_paged(self):
        history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", 10, 100)
        history_service.record_progress(self.db, self.user.id, "hong-lau-mong", "tap-1", 10, 100)
        history_service.record_progress(self.db, self.user.id, "thuy-hu", "", 10, 100)
        rows = history_service.list_history(self.db, self.user.id, page=1, limit=2)
        self.assertEqual([r.movie_slug for r in rows], ["thuy-hu", "hong-lau-mong"])
        rows = history_service.list_history(self.db, self.user.id, page=2, limit=2)
        self.assertEqual([r.movie_slug for r in rows], ["tay-du-ky"])

    def test_continue_watching_skips_completed(self):
        history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", 120, 600)
        history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-2", 600, 600)
        entry = history_service.continue_watching(self.db, self.user.id, "tay-du-ky")
        self.assertEqual(entry.episode_slug, "tap-1")
        with self.assertRaises(NotFoundError):
            history_service.continue_watching(self.db, self.user.id, "thuy-hu")

    def test_delete_and_clear(self):
        history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", 10, 100)
        history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-2", 10, 100)
        history_service.record_progress(self.db, self.user.id, "thuy-hu", "", 10, 100)
        history_service.record_progress(self.db, self.other.id, "thuy-hu", "", 10, 100)

        self.assertEqual(history_service.delete_movie_history(self.db, self.user.id, "tay-du-ky"), 2)
        with self.assertRaises(NotFoundError):
            history_service.delete_movie_history(self.db, self.user.id, "tay-du-ky")
        self.assertEqual(history_service.clear_history(self.db, self.user.id), 1)
        self.assertEqual(history_service.count_history(self.db, self.other.id), 1)


class TestStatistics(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()
        self.addCleanup(self.db.close)
        self.user, self.other = seed(self.db)

    def test_views_and_daily_series(self):
        statistics_service.increment_views(self.db, "tay-du-ky")
        self.assertEqual(statistics_service.increment_views(self.db, "tay-du-ky"), 2)
        self.db.add(DailyView(movie_slug="tay-du-ky", view_date=utc_today() - timedelta(days=2), views=5))
        self.db.commit()

        series = statistics_service.daily_views(self.db, "tay-du-ky", days=7)
        self.assertEqual(len(series), 7)
        self.assertEqual(series[-1], {"date": utc_today().isoformat(), "views": 2})
        self.assertEqual(series[-3]["views"], 5)
        self.assertEqual(sum(d["views"] for d in series), 7)

    def test_rating_aggregate(self):
        self.db.add_all([
            MovieRating(user_id=self.user.id, movie_slug="tay-du-ky", rating=8.0),
            MovieRating(user_id=self.other.id, movie_slug="tay-du-ky", rating=7.4),
        ])
        self.db.flush()
        stat = statistics_service.recompute_rating(self.db, "tay-du-ky")
        self.db.commit()
        self.assertEqual(stat.rating_count, 2)
        self.assertEqual(statistics_service.stat_dict(stat)["average_rating"], 7.7)

    def test_leaderboards(self):
        for _ in range(3):
            statistics_service.increment_views(self.db, "thuy-hu")
        statistics_service.increment_views(self.db, "tay-du-ky")
        self.db.add(MovieRating(user_id=self.user.id, movie_slug="hong-lau-mong", rating=9.0))
        self.db.add(MovieRating(user_id=self.user.id, movie_slug="tay-du-ky", rating=6.0))
        self.db.add(MovieRating(user_id=self.other.id, movie_slug="tay-du-ky", rating=8.0))
        self.db.add(UserFavorite(user_id=self.user.id, movie_slug="tay-du-ky"))
        self.db.flush()
        for slug in ("hong-lau-mong", "tay-du-ky"):
            statistics_service.recompute_rating(self.db, slug)
            statistics_service.recompute_favorites(self.db, slug)
        self.db.commit()

        viewed = statistics_service.top_viewed(self.db, limit=10)
        self.assertEqual([m["slug"] for m in viewed], ["thuy-hu", "tay-du-ky"])
        self.assertEqual(viewed[0]["title"], "Thủy Hử")

        rated = statistics_service.top_rated(self.db, limit=10)
        self.assertEqual([m["slug"] for m in rated], ["hong-lau-mong", "tay-du-ky"])
        rated = statistics_service.top_rated(self.db, limit=10, min_ratings=2)
        self.assertEqual([m["slug"] for m in rated], ["tay-du-ky"])

        favorited = statistics_service.most_favorited(self.db)
        self.assertEqual([(m["slug"], m["favorite_count"]) for m in favorited], [("tay-du-ky", 1)])

    def test_user_summary(self):
        history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-1", 95, 100)
        history_service.record_progress(self.db, self.user.id, "tay-du-ky", "tap-2", 10, 100)
        self.db.add(UserFavorite(user_id=self.user.id, movie_slug="thuy-hu"))
        self.db.add(MovieRating(user_id=self.user.id, movie_slug="thuy-hu", rating=9.0))
        self.db.add(MovieRating(user_id=self.user.id, movie_slug="tay-du-ky", rating=6.0))
        self.db.add(UserComment(user_id=self.user.id, movie_slug="thuy-hu", content="Hay"))
        self.db.add(UserWatchLater(user_id=self.user.id, movie_slug="hong-lau-mong"))
        self.db.commit()

        summary = statistics_service.user_summary(self.db, self.user.id)
        self.assertEqual(summary["favorites"], 1)
        self.assertEqual(summary["watch_later"], 1)
        self.assertEqual(summary["history_entries"], 2)
        self.assertEqual(summary["completed_entries"], 1)
        self.assertEqual(summary["ratings"], 2)
        self.assertEqual(summary["average_given_rating"], 7.5)
        self.assertEqual(summary["comments"], 1)
        self.assertIsNotNone(summary["last_watched"])

        empty = statistics_service.user_summary(self.db, self.other.id)
        self.assertEqual(empty["average_given_rating"], 0.0)
        self.assertIsNone(empty["last_watched"])


if __name__ == "__main__":
    unittest.main()
