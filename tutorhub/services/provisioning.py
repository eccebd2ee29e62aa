"""
Profile provisioning: map an external identity to exactly one Profile row,
creating it the first time the identity is seen.
"""
import logging
from typing import Awaitable, Callable

from redis.exceptions import RedisError

from tutorhub.core.errors import DuplicateRowError, ProvisioningError, RemoteStoreError
from tutorhub.db.redis_client import get_cached_role
from tutorhub.db.store import RemoteStore
from tutorhub.schemas import PROFILES_TABLE, Identity, Profile, Role

logger = logging.getLogger(__name__)

RoleLookup = Callable[[str], Awaitable[str | None]]


def _as_role(value) -> Role | None:
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        try:
            return Role(value.strip().lower())
        except ValueError:
            return None
    return None


def resolve_role(identity: Identity, cached_role: str | None = None) -> Role:
    """Pick the role for a new profile.

    Precedence: provider-confirmed role, then the unconfirmed self-reported
    role, then the locally cached choice, then student. Unknown values are
    skipped rather than rejected.
    """
    for candidate in (identity.role, identity.pending_role, cached_role):
        role = _as_role(candidate)
        if role is not None:
            return role
    return Role.STUDENT


def _needs_cached_role(identity: Identity) -> bool:
    return _as_role(identity.role) is None and _as_role(identity.pending_role) is None


class ProfileProvisioner:
    def __init__(self, store: RemoteStore, role_lookup: RoleLookup = get_cached_role):
        self.store = store
        self.role_lookup = role_lookup

    async def lookup(self, external_id: str) -> Profile | None:
        try:
            rows = await self.store.select(PROFILES_TABLE, filters={"external_id": external_id})
        except RemoteStoreError as e:
            raise ProvisioningError(f"Could not look up profile for {external_id}") from e
        return Profile.model_validate(rows[0]) if rows else None

    async def _cached_role(self, external_id: str) -> str | None:
        try:
            return await self.role_lookup(external_id)
        except RedisError as e:
            # A cache outage only loses the fallback; the default still applies
            logger.warning(f"Role cache unavailable for {external_id}: {e}")
            return None

    async def ensure_profile(self, identity: Identity) -> Profile:
        """Return the identity's Profile, inserting one if none exists."""
        existing = await self.lookup(identity.external_id)
        if existing is not None:
            return existing

        cached_role = None
        if _needs_cached_role(identity):
            cached_role = await self._cached_role(identity.external_id)

        email = identity.email or ""
        new_profile = {
            "external_id": identity.external_id,
            "email": email,
            "name": identity.name or email or "User",
            "role": resolve_role(identity, cached_role).value,
            "avatar_url": identity.avatar_url,
        }

        try:
            row = await self.store.insert(PROFILES_TABLE, new_profile)
        except DuplicateRowError as e:
            # Another session created the same identity between lookup and insert
            raise ProvisioningError(f"Profile for {identity.external_id} was created concurrently") from e
        except RemoteStoreError as e:
            raise ProvisioningError(f"Could not create profile for {identity.external_id}") from e

        profile = Profile.model_validate(row)
        logger.info(f"Provisioned {profile.role.value} profile {profile.id} for {identity.external_id}")
        return profile
