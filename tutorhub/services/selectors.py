"""
Read-only queries over a mirror snapshot.

Nothing here is cached: counts are recomputed from the rows they count on
every call, so they can never disagree with the mirror.
"""
from dataclasses import dataclass
from typing import Iterable, TypeVar

from tutorhub.schemas import Comment, Profile, Record, Video
from tutorhub.services.mirror import MirrorStore

UNKNOWN_TUTOR = "Unknown Tutor"
UNKNOWN_USER = "Unknown User"

R = TypeVar("R", bound=Record)


@dataclass(slots=True)
class TutorStats:
    tutor_id: str
    video_count: int
    total_views: int
    total_likes: int
    total_comments: int
    subscriber_count: int


def by_id(rows: Iterable[R], row_id: str) -> R | None:
    return next((row for row in rows if row.id == row_id), None)


def comments_for_video(mirror: MirrorStore, video_id: str) -> list[Comment]:
    return [c for c in mirror.comments if c.video_id == video_id]


def videos_by_tutor(mirror: MirrorStore, tutor_id: str) -> list[Video]:
    return [v for v in mirror.videos if v.tutor_id == tutor_id]


def is_liked(mirror: MirrorStore, profile: Profile | None, video_id: str) -> bool:
    if profile is None:
        return False
    return any(like.video_id == video_id and like.user_id == profile.id for like in mirror.likes)


def is_subscribed(mirror: MirrorStore, profile: Profile | None, tutor_id: str) -> bool:
    if profile is None:
        return False
    return any(sub.tutor_id == tutor_id and sub.student_id == profile.id for sub in mirror.subscriptions)


def subscriber_count(mirror: MirrorStore, tutor_id: str) -> int:
    return sum(1 for sub in mirror.subscriptions if sub.tutor_id == tutor_id)


# ── Relations ──────────────────────────────────────────────────────────────

def tutor_name(mirror: MirrorStore, video: Video) -> str:
    tutor = mirror.profiles.get(video.tutor_id)
    return tutor.display_name if tutor else UNKNOWN_TUTOR


def author_name(mirror: MirrorStore, comment: Comment) -> str:
    author = mirror.profiles.get(comment.user_id)
    return author.display_name if author else UNKNOWN_USER


# ── Dashboard views ────────────────────────────────────────────────────────

def search_videos(mirror: MirrorStore, term: str = "", category: str | None = None) -> list[Video]:
    """Case-insensitive search over title, description and tutor name.

    A category of None or "all" matches every video.
    """
    needle = term.strip().lower()
    results = []
    for video in mirror.videos:
        if category not in (None, "all") and video.category != category:
            continue
        if needle and not (
            needle in video.title.lower()
            or needle in video.description.lower()
            or needle in tutor_name(mirror, video).lower()
        ):
            continue
        results.append(video)
    return results


def history_videos(mirror: MirrorStore, profile: Profile | None) -> list[Video]:
    """Videos the user has watched, most recently watched first."""
    if profile is None:
        return []
    entries = [h for h in mirror.history if h.user_id == profile.id]
    # Rows without a timestamp sort last
    entries.sort(key=lambda h: (h.watched_at is not None, h.watched_at.timestamp() if h.watched_at else 0), reverse=True)
    videos = {v.id: v for v in mirror.videos}
    return [videos[h.video_id] for h in entries if h.video_id in videos]


def subscribed_videos(mirror: MirrorStore, profile: Profile | None) -> list[Video]:
    if profile is None:
        return []
    tutor_ids = {s.tutor_id for s in mirror.subscriptions if s.student_id == profile.id}
    return [v for v in mirror.videos if v.tutor_id in tutor_ids]


def tutor_stats(mirror: MirrorStore, tutor_id: str) -> TutorStats:
    videos = videos_by_tutor(mirror, tutor_id)
    video_ids = {v.id for v in videos}
    return TutorStats(
        tutor_id=tutor_id,
        video_count=len(videos),
        total_views=sum(v.view_count for v in videos),
        total_likes=sum(v.like_count for v in videos),
        total_comments=sum(1 for c in mirror.comments if c.video_id in video_ids),
        subscriber_count=subscriber_count(mirror, tutor_id),
    )
