import redis.asyncio as redis
from tutorhub.core.config import settings

redis_client = redis.from_url(
    settings.REDIS_URL,
    encoding="utf-8",
    decode_responses=True
)

async def get_redis():
    return redis_client

# ── Role Fallback Cache ────────────────────────────────────────────────────
# Holds the role a user picked when the identity provider could not store it.

ROLE_CACHE_PREFIX = "role:"

async def cache_role(external_id: str, role: str):
    """Remember the self-selected role for an external identity."""
    r = await get_redis()
    await r.setex(f"{ROLE_CACHE_PREFIX}{external_id}", settings.ROLE_CACHE_TTL, role)

async def get_cached_role(external_id: str) -> str | None:
    """Retrieve the cached role, returns None on miss."""
    r = await get_redis()
    return await r.get(f"{ROLE_CACHE_PREFIX}{external_id}")
