"""
schemas.py

Pydantic schemas for upstream movie API payloads, request bodies and
ORM-backed response objects.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Any
import datetime


def _as_text(value: Any) -> Optional[str]:
    """Upstream mixes numbers, strings and nulls for the same field."""
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(str(v.get("name", v)) if isinstance(v, dict) else str(v) for v in value)
    return str(value)


# Upstream payloads

class UpstreamModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class UpstreamMovieItem(UpstreamModel):
    id: Optional[str] = None
    name: str = ""
    slug: str = ""
    year: Optional[str] = None
    type: Optional[str] = Field(default=None, alias="loai_phim")
    tmdb_id: Optional[str] = None
    country: Optional[str] = Field(default=None, alias="quoc_gia")
    poster_url: Optional[str] = None
    thumb_url: Optional[str] = None
    modified: Optional[str] = None
    modified_time: Optional[str] = None

    @field_validator("id", "year", "tmdb_id", "country", "modified", "modified_time", "type", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        if isinstance(v, dict):
            return _as_text(v.get("time"))
        return _as_text(v)


class UpstreamPagination(UpstreamModel):
    current_page: int = 0
    total_pages: int = 0
    total_items: int = 0
    limit: int = 0


class UpstreamMovieList(UpstreamModel):
    data: List[UpstreamMovieItem] = []
    pagination: UpstreamPagination = UpstreamPagination()

    @field_validator("data", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []

    @field_validator("pagination", mode="before")
    @classmethod
    def _none_to_pagination(cls, v):
        return v or {}


class UpstreamEpisodeItem(UpstreamModel):
    name: str = ""
    slug: str = ""
    embed: str = ""
    m3u8: str = ""

    @field_validator("name", "slug", "embed", "m3u8", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return _as_text(v) or ""


class UpstreamEpisodeServer(UpstreamModel):
    server_name: str = ""
    items: List[UpstreamEpisodeItem] = []

    @field_validator("items", mode="before")
    @classmethod
    def _accept_server_data(cls, v):
        return v or []


class UpstreamMovieDetail(UpstreamModel):
    id: Optional[str] = None
    name: str = ""
    slug: str = ""
    origin_name: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    thumb_url: Optional[str] = None
    poster_url: Optional[str] = None
    year: Optional[str] = None
    time: Optional[str] = None
    quality: Optional[str] = None
    language: Optional[str] = None
    lang: Optional[str] = None
    director: Optional[str] = None
    actors: Optional[str] = None
    casts: Optional[str] = None
    genres: Optional[str] = None
    categories: Optional[str] = None
    countries: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    episode_current: Optional[str] = None
    episode_total: Optional[str] = None
    trailer_url: Optional[str] = None
    tmdb_id: Optional[str] = None
    imdb_id: Optional[str] = None
    tmdb_vote_average: Optional[float] = None
    view: int = 0
    episodes: List[UpstreamEpisodeServer] = []

    @field_validator(
        "id", "year", "time", "quality", "language", "lang", "director", "actors", "casts",
        "genres", "categories", "countries", "type", "status", "episode_current", "episode_total",
        "tmdb_id", "imdb_id", mode="before",
    )
    @classmethod
    def _coerce_text(cls, v):
        return _as_text(v)

    @field_validator("episodes", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []

    @field_validator("view", mode="before")
    @classmethod
    def _view_int(cls, v):
        try:
            return int(v or 0)
        except (TypeError, ValueError):
            return 0

    @field_validator("tmdb_vote_average", mode="before")
    @classmethod
    def _vote_float(cls, v):
        try:
            return float(v) if v not in (None, "") else None
        except (TypeError, ValueError):
            return None


# Auth payloads

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=100)
    password: str
    display_name: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    username_or_email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=100)


class UserSchema(BaseModel):
    id: int
    username: str
    email: str
    display_name: Optional[str] = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSchema


# Library payloads

class ProgressUpdate(BaseModel):
    movie_slug: str = Field(..., min_length=1, max_length=500)
    episode_slug: Optional[str] = Field(default=None, max_length=500)
    server_name: Optional[str] = None
    current_time: float = Field(..., allow_inf_nan=False)
    duration: float = Field(..., allow_inf_nan=False)


class WatchHistorySchema(BaseModel):
    id: int
    movie_slug: str
    episode_slug: str
    server_name: Optional[str] = None
    current_time: float = Field(validation_alias="position_seconds")
    duration: float = Field(validation_alias="duration_seconds")
    watched_percentage: float
    completed: bool
    last_watched: datetime.datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class CommentCreate(BaseModel):
    content: str


class RatingCreate(BaseModel):
    rating: float = Field(..., allow_inf_nan=False)


