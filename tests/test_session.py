import asyncio

import pytest
from unittest.mock import AsyncMock

from tutorhub.core.errors import RemoteReadError, ValidationError
from tutorhub.schemas import Identity, Role
from tutorhub.services.session import VideoSession
from tests.conftest import FakeRemoteStore, STUDENT_IDENTITY, TUTOR_IDENTITY, make_session


@pytest.mark.asyncio
class TestIdentityLifecycle:
    """Provisioning and loading follow the signed-in identity."""

    async def test_set_identity_provisions_then_loads(self, store):
        session = make_session(store)
        store.calls.clear()

        await session.set_identity(TUTOR_IDENTITY)

        assert store.calls[0] == ("select", "profiles")
        assert {table for op, table in store.calls[1:]} == {
            "videos", "comments", "video_likes", "subscriptions", "video_history",
        }
        assert session.profile.role == Role.TUTOR
        assert len(session.videos) == 3
        assert session.loading is False

    async def test_fresh_identity_defaults_to_student_and_can_subscribe(self, store):
        session = make_session(store)
        await session.set_identity(Identity(external_id="brand_new", email="new@example.com"))

        assert session.profile.role == Role.STUDENT
        tutor_id = session.videos[0].tutor_id
        assert await session.toggle_subscription(tutor_id) is True
        assert session.subscriber_count(tutor_id) == 1

    async def test_profile_id_is_store_id_not_external_id(self, student_session):
        assert student_session.profile.id != STUDENT_IDENTITY.external_id
        assert student_session.profile.external_id == STUDENT_IDENTITY.external_id

    async def test_sign_out_discards_mirror(self, student_session):
        await student_session.toggle_like(student_session.videos[0].id)

        await student_session.set_identity(None)

        assert student_session.profile is None
        assert student_session.videos == ()
        assert student_session.likes == ()
        assert student_session.is_liked("anything") is False

    async def test_switching_identity_reloads(self, student_session, store):
        video_id = student_session.videos[0].id
        await student_session.toggle_like(video_id)

        await student_session.set_identity(TUTOR_IDENTITY)

        assert student_session.profile.role == Role.TUTOR
        assert len(student_session.likes) == 1
        assert not student_session.is_liked(video_id)

    async def test_identity_change_during_provisioning_drops_stale_profile(self, store):
        session = make_session(store)
        entered, release = asyncio.Event(), asyncio.Event()
        plain_select = store.select

        async def select(table, **kwargs):
            if table == "profiles" and (kwargs.get("filters") or {}).get("external_id") == "user_tutor":
                entered.set()
                await release.wait()
            return await plain_select(table, **kwargs)

        store.select = select
        first = asyncio.create_task(session.set_identity(TUTOR_IDENTITY))
        await entered.wait()

        await session.set_identity(STUDENT_IDENTITY)
        release.set()
        await first

        assert session.identity is STUDENT_IDENTITY
        assert session.profile.external_id == STUDENT_IDENTITY.external_id
        assert session.loading is False
        assert await session.toggle_subscription(session.videos[0].tutor_id) is True
        assert store.tables["subscriptions"][0]["student_id"] == session.profile.id

    async def test_sign_out_during_provisioning_leaves_session_empty(self, store):
        session = make_session(store)
        entered, release = asyncio.Event(), asyncio.Event()
        plain_select = store.select

        async def select(table, **kwargs):
            if table == "profiles":
                entered.set()
                await release.wait()
            return await plain_select(table, **kwargs)

        store.select = select
        first = asyncio.create_task(session.set_identity(TUTOR_IDENTITY))
        await entered.wait()

        await session.set_identity(None)
        release.set()
        await first

        assert session.profile is None
        assert session.videos == ()
        assert session.loading is False

    async def test_tutor_stats_default_to_signed_in_tutor(self, tutor_session):
        stats = tutor_session.tutor_stats()
        assert stats.video_count == 3
        assert stats.total_views == 13
        assert stats.total_likes == 7


@pytest.mark.asyncio
class TestRefresh:

    async def test_loading_flag_set_during_load(self, store):
        session = make_session(store)
        seen = []
        original_select = store.select

        async def select(table, **kwargs):
            seen.append(session.loading)
            return await original_select(table, **kwargs)

        store.select = select
        await session.set_identity(STUDENT_IDENTITY)

        assert all(seen)
        assert session.loading is False

    async def test_failed_refresh_raises_and_clears_loading(self, student_session, store):
        before = student_session.videos
        store.failures.add(("select", "comments"))

        with pytest.raises(RemoteReadError):
            await student_session.refresh()

        assert student_session.loading is False
        assert student_session.videos == before

    async def test_refresh_heals_drifted_like_counter(self, student_session, store):
        row = store.tables["videos"][0]
        row["likes"] = -1

        await student_session.refresh()

        assert student_session.video(row["id"]).like_count == 0
        assert await student_session.toggle_like(row["id"]) is True
        assert store.get("videos", row["id"])["likes"] == 1

    async def test_refresh_picks_up_remote_changes(self, student_session, store):
        tutor_id = student_session.videos[0].tutor_id
        store.seed("videos", tutor_id=tutor_id, title="Fresh")

        await student_session.refresh()
        assert student_session.videos[0].title == "Fresh"


@pytest.mark.asyncio
class TestRememberRole:

    async def test_writes_role_cache(self):
        writer = AsyncMock()
        session = VideoSession(FakeRemoteStore(), role_lookup=AsyncMock(return_value=None), role_writer=writer)
        await session.set_identity(Identity(external_id="picker"))

        await session.remember_role("tutor")
        writer.assert_awaited_once_with("picker", "tutor")

    async def test_rejects_unknown_role(self, student_session):
        with pytest.raises(ValidationError):
            await student_session.remember_role("admin")

    async def test_requires_identity(self, store):
        session = make_session(store)
        with pytest.raises(ValidationError):
            await session.remember_role(Role.TUTOR)
