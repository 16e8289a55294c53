"""
models.py

SQLAlchemy models for users, the local movie cache (movies, episodes,
genres, countries), per-movie statistics and the per-user library
(favorites, watch later, watch history, comments, ratings) and curated
featured movies.
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, ForeignKey, DateTime, Date, Float, Text,
    UniqueConstraint, Index, Table,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from cinestream.utils.timezone import utc_now, utc_today

Base = declarative_base()


movie_genres = Table(
    "movie_genres",
    Base.metadata,
    Column("movie_id", Integer, ForeignKey("cached_movies.id", ondelete="CASCADE"), primary_key=True),
    Column("genre_id", Integer, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True),
)

movie_countries = Table(
    "movie_countries",
    Base.metadata,
    Column("movie_id", Integer, ForeignKey("cached_movies.id", ondelete="CASCADE"), primary_key=True),
    Column("country_id", Integer, ForeignKey("countries.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    display_name = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False)  # sha256 hex of the raw token
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    user = relationship("User", back_populates="refresh_tokens")


class CachedMovie(Base):
    """Local copy of an upstream movie detail, refreshed when older than the detail TTL."""
    __tablename__ = "cached_movies"
    id = Column(Integer, primary_key=True)
    slug = Column(String(500), unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    origin_name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    poster_url = Column(String, nullable=True)
    thumb_url = Column(String, nullable=True)
    year = Column(String(10), nullable=True, index=True)
    duration = Column(String(50), nullable=True)
    quality = Column(String(50), nullable=True)
    language = Column(String(100), nullable=True)
    director = Column(Text, nullable=True)
    actors = Column(Text, nullable=True)
    movie_type = Column(String(50), nullable=True, index=True)
    status = Column(String(50), nullable=True)
    episode_current = Column(String(100), nullable=True)
    episode_total = Column(String(100), nullable=True)
    trailer_url = Column(String, nullable=True)
    tmdb_id = Column(String(50), nullable=True, index=True)
    imdb_id = Column(String(50), nullable=True)
    tmdb_vote_average = Column(Float, nullable=True)
    raw_data = Column(Text, nullable=True)  # normalized upstream payload as JSON
    last_updated = Column(DateTime(timezone=True), default=utc_now, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    episodes = relationship(
        "CachedEpisode",
        back_populates="movie",
        cascade="all, delete-orphan",
        order_by="CachedEpisode.position",
    )
    genres = relationship("Genre", secondary=movie_genres, back_populates="movies")
    countries = relationship("Country", secondary=movie_countries, back_populates="movies")


class CachedEpisode(Base):
    __tablename__ = "cached_episodes"
    id = Column(Integer, primary_key=True)
    movie_id = Column(Integer, ForeignKey("cached_movies.id", ondelete="CASCADE"), nullable=False, index=True)
    server_name = Column(String(200), nullable=False)
    name = Column(String(200), nullable=False)
    slug = Column(String(500), nullable=False)
    embed_url = Column(String, nullable=True)
    m3u8_url = Column(String, nullable=True)
    position = Column(Integer, default=0)  # order within the server as returned upstream

    movie = relationship("CachedMovie", back_populates="episodes")

    __table_args__ = (
        UniqueConstraint("movie_id", "server_name", "slug", name="uq_cached_episodes_movie_server_slug"),
    )


class Genre(Base):
    __tablename__ = "genres"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    movies = relationship("CachedMovie", secondary=movie_genres, back_populates="genres")


class Country(Base):
    __tablename__ = "countries"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    movies = relationship("CachedMovie", secondary=movie_countries, back_populates="countries")


class MovieStatistic(Base):
    __tablename__ = "movie_statistics"
    id = Column(Integer, primary_key=True)
    movie_slug = Column(String(500), unique=True, nullable=False, index=True)
    views = Column(BigInteger, default=0, nullable=False, index=True)
    average_rating = Column(Float, default=0.0, nullable=False, index=True)
    rating_count = Column(Integer, default=0, nullable=False)
    favorite_count = Column(Integer, default=0, nullable=False, index=True)
    last_updated = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class DailyView(Base):
    __tablename__ = "daily_views"
    id = Column(Integer, primary_key=True)
    movie_slug = Column(String(500), nullable=False, index=True)
    view_date = Column(Date, default=utc_today, nullable=False)
    views = Column(Integer, default=0, nullable=False)

    __table_args__ = (UniqueConstraint("movie_slug", "view_date", name="uq_daily_views_movie_date"),)


class UserFavorite(Base):
    __tablename__ = "user_favorites"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_slug = Column(String(500), ForeignKey("cached_movies.slug"), nullable=False, index=True)
    added_at = Column(DateTime(timezone=True), default=utc_now)

    movie = relationship("CachedMovie")

    # One favorite per user per movie
    __table_args__ = (UniqueConstraint("user_id", "movie_slug", name="uq_user_favorites_user_movie"),)


class UserWatchLater(Base):
    """Queue of movies a user plans to watch, oldest first."""
    __tablename__ = "user_watch_later"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_slug = Column(String(500), ForeignKey("cached_movies.slug"), nullable=False, index=True)
    added_at = Column(DateTime(timezone=True), default=utc_now)

    movie = relationship("CachedMovie")

    __table_args__ = (UniqueConstraint("user_id", "movie_slug", name="uq_user_watch_later_user_movie"),)


class FeaturedMovie(Base):
    """Hand-picked movies per page section (category), shown in display_order."""
    __tablename__ = "featured_movies"
    id = Column(Integer, primary_key=True)
    movie_slug = Column(String(500), ForeignKey("cached_movies.slug"), nullable=False)
    category = Column(String(50), nullable=False, default="home")
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    movie = relationship("CachedMovie")

    __table_args__ = (
        UniqueConstraint("category", "movie_slug", name="uq_featured_movies_category_movie"),
        Index("ix_featured_movies_category_order", "category", "display_order"),
    )


class WatchHistory(Base):
    """Playback progress per user, movie and episode ('' is the movie itself)."""
    __tablename__ = "watch_history"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_slug = Column(String(500), ForeignKey("cached_movies.slug"), nullable=False, index=True)
    episode_slug = Column(String(500), nullable=False, default="")
    server_name = Column(String(200), nullable=True)
    position_seconds = Column(Float, default=0.0, nullable=False)
    duration_seconds = Column(Float, default=0.0, nullable=False)
    watched_percentage = Column(Float, default=0.0, nullable=False)
    completed = Column(Boolean, default=False, index=True)
    last_watched = Column(DateTime(timezone=True), default=utc_now, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    movie = relationship("CachedMovie")

    __table_args__ = (
        UniqueConstraint("user_id", "movie_slug", "episode_slug", name="uq_watch_history_user_movie_episode"),
        Index("ix_watch_history_user_last_watched", "user_id", "last_watched"),
    )


class UserComment(Base):
    __tablename__ = "user_comments"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_slug = Column(String(500), ForeignKey("cached_movies.slug"), nullable=False, index=True)
    content = Column(String(1000), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    user = relationship("User")


class MovieRating(Base):
    __tablename__ = "movie_ratings"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_slug = Column(String(500), ForeignKey("cached_movies.slug"), nullable=False, index=True)
    rating = Column(Float, nullable=False)  # 0..10
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Ensure one rating per user per movie
    __table_args__ = (UniqueConstraint("user_id", "movie_slug", name="uq_movie_ratings_user_movie"),)
