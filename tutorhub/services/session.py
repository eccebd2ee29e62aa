"""
The surface the presentation layer talks to.

A VideoSession follows the signed-in identity: a new identity is provisioned
and followed by a full load, signing out discards the mirror. Operations and
selectors are bound to the session's profile.
"""
import logging
from typing import Awaitable, Callable

from tutorhub.core.errors import ProvisioningError, ValidationError
from tutorhub.db.redis_client import cache_role, get_cached_role
from tutorhub.db.store import RemoteStore
from tutorhub.schemas import Comment, Identity, Profile, Role, Video, VideoDraft, WatchHistory
from tutorhub.services import selectors
from tutorhub.services.mirror import MirrorStore
from tutorhub.services.mutations import MutationEngine
from tutorhub.services.provisioning import ProfileProvisioner, RoleLookup

logger = logging.getLogger(__name__)


class VideoSession:
    def __init__(
        self,
        store: RemoteStore,
        role_lookup: RoleLookup = get_cached_role,
        role_writer: Callable[[str, str], Awaitable[None]] = cache_role,
    ):
        self.store = store
        self.mirror = MirrorStore(store)
        self.provisioner = ProfileProvisioner(store, role_lookup=role_lookup)
        self.mutations = MutationEngine(store, self.mirror, lambda: self.profile)
        self._role_writer = role_writer
        self.identity: Identity | None = None
        self.profile: Profile | None = None
        self.loading = False

    # ── Identity lifecycle ─────────────────────────────────────────────────

    async def _provision(self, identity: Identity) -> Profile:
        try:
            return await self.provisioner.ensure_profile(identity)
        except ProvisioningError as e:
            # Usually a concurrent session won the insert race; look once more
            logger.warning(f"Provisioning {identity.external_id} failed, retrying lookup: {e}")
            profile = await self.provisioner.lookup(identity.external_id)
            if profile is None:
                raise
            return profile

    async def set_identity(self, identity: Identity | None):
        """Switch to ``identity``; None signs out."""
        if identity is None:
            self.sign_out()
            return

        if self.identity is not None and self.identity.external_id != identity.external_id:
            self.sign_out()
        self.identity = identity

        self.loading = True
        try:
            profile = await self._provision(identity)
            if self.identity is not identity:
                # Superseded by a later set_identity or sign_out while provisioning
                logger.info(f"Dropping stale profile for {identity.external_id}")
                return
            self.profile = profile
            await self._load()
        finally:
            if self.identity is identity:
                self.loading = False

    def sign_out(self):
        self.identity = None
        self.profile = None
        self.loading = False
        self.mirror.clear()

    async def _load(self):
        try:
            await self.mirror.load_all()
        except Exception as e:
            logger.error(f"Error loading data: {e}")
            raise
        if self.profile is not None:
            self.mirror.apply_profile(self.profile)

    async def refresh(self):
        """Re-read every collection; also heals counters left stale by partial failures."""
        self.loading = True
        try:
            await self._load()
        finally:
            self.loading = False

    async def remember_role(self, role: Role | str):
        """Record the role the user picked, for when the identity provider cannot."""
        if self.identity is None:
            raise ValidationError("No signed-in identity")
        try:
            value = Role(role).value
        except ValueError as e:
            raise ValidationError(f"Unknown role: {role}") from e
        await self._role_writer(self.identity.external_id, value)

    # ── Collections ────────────────────────────────────────────────────────

    @property
    def videos(self):
        return self.mirror.videos

    @property
    def comments(self):
        return self.mirror.comments

    @property
    def likes(self):
        return self.mirror.likes

    @property
    def subscriptions(self):
        return self.mirror.subscriptions

    @property
    def history(self):
        return self.mirror.history

    # ── Operations ─────────────────────────────────────────────────────────

    async def upload_video(self, draft: VideoDraft) -> Video:
        return await self.mutations.upload_video(draft)

    async def add_comment(self, video_id: str, content: str) -> Comment:
        return await self.mutations.add_comment(video_id, content)

    async def toggle_like(self, video_id: str) -> bool:
        return await self.mutations.toggle_like(video_id)

    async def toggle_subscription(self, tutor_id: str) -> bool:
        return await self.mutations.toggle_subscription(tutor_id)

    async def record_watch(self, video_id: str) -> WatchHistory:
        return await self.mutations.record_watch(video_id)

    # ── Selectors ──────────────────────────────────────────────────────────

    def video(self, video_id: str) -> Video | None:
        return selectors.by_id(self.mirror.videos, video_id)

    def comments_for_video(self, video_id: str) -> list[Comment]:
        return selectors.comments_for_video(self.mirror, video_id)

    def tutor_videos(self, tutor_id: str) -> list[Video]:
        return selectors.videos_by_tutor(self.mirror, tutor_id)

    def is_liked(self, video_id: str) -> bool:
        return selectors.is_liked(self.mirror, self.profile, video_id)

    def is_subscribed(self, tutor_id: str) -> bool:
        return selectors.is_subscribed(self.mirror, self.profile, tutor_id)

    def subscriber_count(self, tutor_id: str) -> int:
        return selectors.subscriber_count(self.mirror, tutor_id)

    def tutor_name(self, video: Video) -> str:
        return selectors.tutor_name(self.mirror, video)

    def author_name(self, comment: Comment) -> str:
        return selectors.author_name(self.mirror, comment)

    def search(self, term: str = "", category: str | None = None) -> list[Video]:
        return selectors.search_videos(self.mirror, term, category)

    def history_videos(self) -> list[Video]:
        return selectors.history_videos(self.mirror, self.profile)

    def subscribed_videos(self) -> list[Video]:
        return selectors.subscribed_videos(self.mirror, self.profile)

    def tutor_stats(self, tutor_id: str | None = None) -> selectors.TutorStats:
        """Stats for ``tutor_id``, defaulting to the signed-in tutor."""
        if tutor_id is None:
            if self.profile is None:
                raise ValidationError("No tutor specified")
            tutor_id = self.profile.id
        return selectors.tutor_stats(self.mirror, tutor_id)
