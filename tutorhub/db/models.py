from uuid import uuid4

from sqlalchemy import (
    JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from tutorhub.db.postgres import Base


def _new_id() -> str:
    return uuid4().hex


class ProfileRow(Base):
    """One row per external identity."""
    __tablename__ = "profiles"

    id = Column(String(32), primary_key=True, default=_new_id)
    external_id = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(320), nullable=False, default="")
    name = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default="student")
    avatar_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class VideoRow(Base):
    __tablename__ = "videos"

    id = Column(String(32), primary_key=True, default=_new_id)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    thumbnail_url = Column(Text, nullable=False, default="")
    video_url = Column(Text, nullable=False, default="")
    tutor_id = Column(String(32), ForeignKey("profiles.id"), nullable=False, index=True)
    duration = Column(Integer, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    likes = Column(Integer, nullable=False, default=0)
    category = Column(String(100), nullable=False, default="Other")
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CommentRow(Base):
    __tablename__ = "comments"

    id = Column(String(32), primary_key=True, default=_new_id)
    video_id = Column(String(32), ForeignKey("videos.id"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("profiles.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class LikeRow(Base):
    __tablename__ = "video_likes"
    __table_args__ = (UniqueConstraint("user_id", "video_id"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    user_id = Column(String(32), ForeignKey("profiles.id"), nullable=False, index=True)
    video_id = Column(String(32), ForeignKey("videos.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SubscriptionRow(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (UniqueConstraint("student_id", "tutor_id"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    student_id = Column(String(32), ForeignKey("profiles.id"), nullable=False, index=True)
    tutor_id = Column(String(32), ForeignKey("profiles.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class WatchHistoryRow(Base):
    """At most one row per (user, video); repeat views update watched_at."""
    __tablename__ = "video_history"
    __table_args__ = (UniqueConstraint("user_id", "video_id"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    user_id = Column(String(32), ForeignKey("profiles.id"), nullable=False, index=True)
    video_id = Column(String(32), ForeignKey("videos.id"), nullable=False, index=True)
    progress = Column(Float, nullable=False, default=0)
    watched_at = Column(DateTime(timezone=True), server_default=func.now())


TABLES = {
    model.__tablename__: model
    for model in (ProfileRow, VideoRow, CommentRow, LikeRow, SubscriptionRow, WatchHistoryRow)
}
