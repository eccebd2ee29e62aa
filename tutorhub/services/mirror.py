"""
Session-scoped, in-memory copy of the remote collections.

The mirror is filled wholesale by load_all() and afterwards only changes
through the apply_* edits, which the mutation engine calls once the remote
store has acknowledged a write. It never re-fetches on its own.
"""
import asyncio
import logging
from typing import Any

from pydantic import ValidationError as SchemaError

from tutorhub.core.errors import RemoteReadError
from tutorhub.db.store import RemoteStore
from tutorhub.schemas import RECORD_TYPES, Collection, Profile, Record

logger = logging.getLogger(__name__)

# Join key -> foreign key column, per collection that embeds a profile
_JOINS = {
    Collection.VIDEOS: {"tutor": "tutor_id"},
    Collection.COMMENTS: {"user": "user_id"},
}

# Newest-first ordering, per collection that has one
_ORDERING = {
    Collection.VIDEOS: "created_at",
    Collection.COMMENTS: "created_at",
    Collection.HISTORY: "watched_at",
}


class MirrorStore:
    def __init__(self, store: RemoteStore):
        self.store = store
        self._rows: dict[Collection, list[Record]] = {c: [] for c in Collection}
        self.profiles: dict[str, Profile] = {}

    # ── Read access ────────────────────────────────────────────────────────

    def rows(self, collection: Collection) -> tuple:
        return tuple(self._rows[collection])

    @property
    def videos(self):
        return self.rows(Collection.VIDEOS)

    @property
    def comments(self):
        return self.rows(Collection.COMMENTS)

    @property
    def likes(self):
        return self.rows(Collection.LIKES)

    @property
    def subscriptions(self):
        return self.rows(Collection.SUBSCRIPTIONS)

    @property
    def history(self):
        return self.rows(Collection.HISTORY)

    def get(self, collection: Collection, row_id: str) -> Record | None:
        for row in self._rows[collection]:
            if row.id == row_id:
                return row
        return None

    # ── Bulk load ──────────────────────────────────────────────────────────

    async def _fetch(self, collection: Collection) -> list[dict]:
        order_by = _ORDERING.get(collection)
        return await self.store.select(
            collection.value,
            join=_JOINS.get(collection),
            order_by=order_by,
            descending=order_by is not None,
        )

    async def load_all(self):
        """Replace every collection with a fresh read of the store.

        The five reads run concurrently. If any of them fails nothing is
        replaced, so callers never observe a half-refreshed mirror.
        """
        collections = list(Collection)
        results = await asyncio.gather(*(self._fetch(c) for c in collections))

        rows: dict[Collection, list[Record]] = {}
        profiles: dict[str, Profile] = {}
        try:
            for collection, raw_rows in zip(collections, results):
                record_type = RECORD_TYPES[collection]
                parsed = []
                for raw in raw_rows:
                    for join_key in _JOINS.get(collection, {}):
                        joined = raw.get(join_key)
                        if joined:
                            profile = Profile.model_validate(joined)
                            profiles[profile.id] = profile
                    parsed.append(record_type.model_validate(raw))
                rows[collection] = parsed
        except SchemaError as e:
            raise RemoteReadError(collection.value, f"malformed row: {e}") from e

        self._rows = rows
        self.profiles = profiles
        logger.info(
            f"Mirror loaded: {len(rows[Collection.VIDEOS])} videos, "
            f"{len(rows[Collection.COMMENTS])} comments, {len(rows[Collection.LIKES])} likes, "
            f"{len(rows[Collection.SUBSCRIPTIONS])} subscriptions, {len(rows[Collection.HISTORY])} history rows"
        )

    def clear(self):
        self._rows = {c: [] for c in Collection}
        self.profiles = {}

    # ── Incremental edits ──────────────────────────────────────────────────

    def apply_profile(self, profile: Profile):
        self.profiles[profile.id] = profile

    def apply_insert(self, collection: Collection, row: Record | dict[str, Any], prepend: bool = False) -> Record:
        """Add a confirmed row; a row whose id is already mirrored is replaced in place."""
        if not isinstance(row, Record):
            row = RECORD_TYPES[collection].model_validate(row)

        rows = self._rows[collection]
        for index, existing in enumerate(rows):
            if existing.id == row.id:
                rows[index] = row
                return row

        if prepend:
            rows.insert(0, row)
        else:
            rows.append(row)
        return row

    def apply_update(self, collection: Collection, row_id: str, patch: dict[str, Any]) -> Record | None:
        """Patch a mirrored row by field name. Unknown ids are ignored."""
        rows = self._rows[collection]
        for index, existing in enumerate(rows):
            if existing.id == row_id:
                rows[index] = existing.model_copy(update=patch)
                return rows[index]
        return None

    def apply_delete(self, collection: Collection, row_id: str):
        self._rows[collection] = [row for row in self._rows[collection] if row.id != row_id]
