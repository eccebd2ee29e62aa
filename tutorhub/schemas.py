"""
Record types mirrored from the remote store.

Field names are Python-side names; aliases match the store's column names so
rows coming back from the adapter validate directly and drafts dump straight
into insert payloads with ``by_alias=True``.
"""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    STUDENT = "student"
    TUTOR = "tutor"


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str


class Profile(Record):
    external_id: str
    email: str = ""
    display_name: str = Field(default="User", alias="name")
    role: Role = Role.STUDENT
    avatar_url: str | None = None
    created_at: datetime | None = None


class Video(Record):
    title: str
    description: str = ""
    thumbnail_url: str = ""
    media_url: str = Field(default="", alias="video_url")
    tutor_id: str
    duration_seconds: int = Field(default=0, ge=0, alias="duration")
    view_count: int = Field(default=0, ge=0, alias="views")
    like_count: int = Field(default=0, ge=0, alias="likes")
    category: str = "Other"
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_validator("duration_seconds", "view_count", "like_count", mode="before")
    @classmethod
    def floor_at_zero(cls, v):
        # Drifted counters below zero read as zero
        return 0 if v is None else max(0, int(v))


class Comment(Record):
    video_id: str
    user_id: str
    content: str
    created_at: datetime | None = None


class Like(Record):
    user_id: str
    video_id: str
    created_at: datetime | None = None


class Subscription(Record):
    student_id: str
    tutor_id: str
    created_at: datetime | None = None


class WatchHistory(Record):
    user_id: str
    video_id: str
    progress: float = 0
    watched_at: datetime | None = None


class Collection(str, Enum):
    """The five mirrored collections, valued by their store table name."""
    VIDEOS = "videos"
    COMMENTS = "comments"
    LIKES = "video_likes"
    SUBSCRIPTIONS = "subscriptions"
    HISTORY = "video_history"


RECORD_TYPES: dict[Collection, type[Record]] = {
    Collection.VIDEOS: Video,
    Collection.COMMENTS: Comment,
    Collection.LIKES: Like,
    Collection.SUBSCRIPTIONS: Subscription,
    Collection.HISTORY: WatchHistory,
}

PROFILES_TABLE = "profiles"


# ── Inputs ─────────────────────────────────────────────────────────────────

class Identity(BaseModel):
    """What the identity provider knows about the signed-in user.

    ``role`` is the provider-confirmed role; ``pending_role`` is the
    self-reported value the user picked but the provider has not confirmed.
    """
    external_id: str
    email: str | None = None
    name: str | None = None
    avatar_url: str | None = None
    role: str | None = None
    pending_role: str | None = None


class VideoDraft(BaseModel):
    """Payload for a new video; the tutor id is filled in by the engine."""
    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str = ""
    thumbnail_url: str = ""
    media_url: str = Field(alias="video_url")
    duration_seconds: int = Field(default=0, ge=0, alias="duration")
    category: str = "Other"
    tags: list[str] = Field(default_factory=list)
