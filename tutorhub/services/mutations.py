"""
Write operations.

Every operation writes to the remote store first and applies the
acknowledged row to the mirror afterwards. Where an operation also maintains
a counter on the video row, that second write is only issued after the
primary write succeeded. A failing counter write leaves the row-level change
in place and raises PartialApplyError; the next full refresh heals it.
"""
import logging
from datetime import datetime, timezone
from typing import Callable

from tutorhub.core.errors import (
    AuthorizationError, NotProvisionedError, PartialApplyError, RemoteWriteError, ValidationError,
)
from tutorhub.db.store import RemoteStore
from tutorhub.schemas import (
    Collection, Comment, Like, Profile, Role, Subscription, Video, VideoDraft, WatchHistory,
)
from tutorhub.services.mirror import MirrorStore

logger = logging.getLogger(__name__)


class MutationEngine:
    def __init__(self, store: RemoteStore, mirror: MirrorStore, current_profile: Callable[[], Profile | None]):
        self.store = store
        self.mirror = mirror
        self._current_profile = current_profile

    # ── Guards ─────────────────────────────────────────────────────────────

    def _require_profile(self) -> Profile:
        profile = self._current_profile()
        if profile is None:
            raise NotProvisionedError()
        return profile

    def _require_video(self, video_id: str) -> Video:
        video = self.mirror.get(Collection.VIDEOS, video_id)
        if video is None:
            raise ValidationError(f"Unknown video: {video_id}")
        return video

    async def _write_counter(self, video: Video, field: str, column: str, value: int):
        """Second write of a two-step operation; a rejection becomes PartialApplyError."""
        try:
            row = await self.store.update(Collection.VIDEOS.value, video.id, {column: value})
        except RemoteWriteError as e:
            logger.warning(
                f"Counter {column} for video {video.id} not written, mirror keeps "
                f"{getattr(video, field)} until the next refresh: {e}"
            )
            raise PartialApplyError(Collection.VIDEOS.value, video.id, column, cause=e) from e
        self.mirror.apply_update(Collection.VIDEOS, video.id, {field: row[column]})

    # ── Operations ─────────────────────────────────────────────────────────

    async def upload_video(self, draft: VideoDraft) -> Video:
        profile = self._require_profile()
        if profile.role != Role.TUTOR:
            raise AuthorizationError("Only tutors can upload videos")

        values = draft.model_dump(by_alias=True)
        values["tutor_id"] = profile.id
        row = await self.store.insert(Collection.VIDEOS.value, values)

        # Newest first, without waiting for a reload
        video = self.mirror.apply_insert(Collection.VIDEOS, row, prepend=True)
        logger.info(f"Tutor {profile.id} uploaded video {video.id}")
        return video

    async def add_comment(self, video_id: str, content: str) -> Comment:
        profile = self._require_profile()
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")
        self._require_video(video_id)

        row = await self.store.insert(Collection.COMMENTS.value, {
            "video_id": video_id,
            "user_id": profile.id,
            "content": content,
        })
        return self.mirror.apply_insert(Collection.COMMENTS, row, prepend=True)

    async def toggle_like(self, video_id: str) -> bool:
        """Like or unlike a video. Returns True if the video is now liked."""
        profile = self._require_profile()
        video = self._require_video(video_id)

        existing = next(
            (like for like in self.mirror.likes if like.video_id == video_id and like.user_id == profile.id),
            None,
        )

        if existing is not None:
            await self.store.delete(Collection.LIKES.value, existing.id)
            self.mirror.apply_delete(Collection.LIKES, existing.id)
            # Floor at zero in case the cached count was already stale
            await self._write_counter(video, "like_count", "likes", max(0, video.like_count - 1))
            logger.info(f"User {profile.id} unliked video {video_id}")
            return False

        row = await self.store.insert(Collection.LIKES.value, {
            "user_id": profile.id,
            "video_id": video_id,
        })
        self.mirror.apply_insert(Collection.LIKES, Like.model_validate(row))
        await self._write_counter(video, "like_count", "likes", video.like_count + 1)
        logger.info(f"User {profile.id} liked video {video_id}")
        return True

    async def toggle_subscription(self, tutor_id: str) -> bool:
        """Subscribe to or unsubscribe from a tutor. Returns True if now subscribed."""
        profile = self._require_profile()
        if profile.role != Role.STUDENT:
            raise AuthorizationError("Only students can subscribe")

        existing = next(
            (sub for sub in self.mirror.subscriptions if sub.tutor_id == tutor_id and sub.student_id == profile.id),
            None,
        )

        if existing is not None:
            await self.store.delete(Collection.SUBSCRIPTIONS.value, existing.id)
            self.mirror.apply_delete(Collection.SUBSCRIPTIONS, existing.id)
            logger.info(f"Student {profile.id} unsubscribed from {tutor_id}")
            return False

        row = await self.store.insert(Collection.SUBSCRIPTIONS.value, {
            "student_id": profile.id,
            "tutor_id": tutor_id,
        })
        self.mirror.apply_insert(Collection.SUBSCRIPTIONS, Subscription.model_validate(row))
        logger.info(f"Student {profile.id} subscribed to {tutor_id}")
        return True

    async def record_watch(self, video_id: str) -> WatchHistory:
        """Record a view: one history row per (user, video), one view count per call."""
        profile = self._require_profile()
        video = self._require_video(video_id)

        existing = next(
            (h for h in self.mirror.history if h.video_id == video_id and h.user_id == profile.id),
            None,
        )

        if existing is not None:
            row = await self.store.update(Collection.HISTORY.value, existing.id, {
                "watched_at": datetime.now(timezone.utc),
            })
            entry = WatchHistory.model_validate(row)
            self.mirror.apply_update(Collection.HISTORY, existing.id, {"watched_at": entry.watched_at})
        else:
            row = await self.store.insert(Collection.HISTORY.value, {
                "user_id": profile.id,
                "video_id": video_id,
                "progress": 0,
            })
            entry = self.mirror.apply_insert(Collection.HISTORY, WatchHistory.model_validate(row), prepend=True)

        # Views count watch events, history counts distinct videos watched
        await self._write_counter(video, "view_count", "views", video.view_count + 1)
        return entry
