import copy
import itertools
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from tutorhub.core.errors import DuplicateRowError, RemoteReadError, RemoteWriteError
from tutorhub.schemas import Identity
from tutorhub.services.session import VideoSession


# ── Sample Test Data ───────────────────────────────────────────────────────

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

TUTOR_IDENTITY = Identity(
    external_id="user_tutor",
    email="ada@example.com",
    name="Ada",
    avatar_url="https://img.example.com/ada.png",
    role="tutor",
)

STUDENT_IDENTITY = Identity(
    external_id="user_student",
    email="sam@example.com",
    name="Sam",
)

SAMPLE_VIDEOS = [
    {
        "title": "Intro to Python",
        "description": "Variables, loops and functions.",
        "category": "Programming",
        "tags": ["python", "basics"],
        "views": 10,
        "likes": 2,
    },
    {
        "title": "Color Theory",
        "description": "Why some palettes work.",
        "category": "Design",
        "tags": ["color"],
        "views": 3,
        "likes": 0,
    },
    {
        "title": "Async Python",
        "description": "Event loops explained.",
        "category": "Programming",
        "tags": ["python", "asyncio"],
        "views": 0,
        "likes": 5,
    },
]

UNIQUE_KEYS = {
    "profiles": [("external_id",)],
    "video_likes": [("user_id", "video_id")],
    "subscriptions": [("student_id", "tutor_id")],
    "video_history": [("user_id", "video_id")],
}

ROW_DEFAULTS = {
    "videos": {"description": "", "thumbnail_url": "", "video_url": "", "duration": 0,
               "views": 0, "likes": 0, "category": "Other", "tags": []},
    "profiles": {"email": "", "role": "student", "avatar_url": None},
}


class FakeRemoteStore:
    """In-memory RemoteStore with the store's uniqueness constraints.

    Add ``(operation, table)`` pairs to ``failures`` to make calls reject.
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.failures: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    def _now(self):
        return BASE_TIME + timedelta(minutes=next(self._clock))

    def _rows(self, table):
        return self.tables.setdefault(table, [])

    def _check(self, op, table):
        self.calls.append((op, table))
        if (op, table) in self.failures:
            if op == "select":
                raise RemoteReadError(table, "injected failure")
            raise RemoteWriteError(table, "injected failure")

    def _new_row(self, table, values):
        row = {"id": f"{table}-{next(self._ids)}", "created_at": self._now()}
        row.update(ROW_DEFAULTS.get(table, {}))
        if table == "video_history":
            row["watched_at"] = row["created_at"]
        row.update(copy.deepcopy(values))
        return row

    def seed(self, table, **values) -> dict:
        row = self._new_row(table, values)
        self._rows(table).append(row)
        return copy.deepcopy(row)

    def count(self, table, **filters) -> int:
        return sum(1 for row in self._rows(table) if all(row.get(k) == v for k, v in filters.items()))

    def get(self, table, row_id) -> dict | None:
        return next((r for r in self._rows(table) if r["id"] == row_id), None)

    async def select(self, table, *, filters=None, join=None, order_by=None, descending=False):
        self._check("select", table)
        rows = [
            copy.deepcopy(row) for row in self._rows(table)
            if all(row.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        profiles = {p["id"]: p for p in self._rows("profiles")}
        for key, foreign_key in (join or {}).items():
            for row in rows:
                joined = profiles.get(row.get(foreign_key))
                row[key] = copy.deepcopy(joined) if joined else None
        return rows

    async def insert(self, table, values):
        self._check("insert", table)
        for columns in UNIQUE_KEYS.get(table, []):
            key = tuple(values.get(c) for c in columns)
            if any(tuple(r.get(c) for c in columns) == key for r in self._rows(table)):
                raise DuplicateRowError(table, "row already exists")
        return self.seed(table, **values)

    async def update(self, table, row_id, patch):
        self._check("update", table)
        row = self.get(table, row_id)
        if row is None:
            raise RemoteWriteError(table, f"no row with id {row_id}")
        row.update(copy.deepcopy(patch))
        return copy.deepcopy(row)

    async def delete(self, table, row_id):
        self._check("delete", table)
        self.tables[table] = [r for r in self._rows(table) if r["id"] != row_id]


# ── Mock Fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def mock_redis():
    """Mock Redis client for testing the role cache."""
    redis_mock = AsyncMock()
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.setex = AsyncMock()
    redis_mock.delete = AsyncMock()
    return redis_mock


@pytest.fixture
def store():
    """A store holding one tutor with three videos and one student, no likes."""
    fake = FakeRemoteStore()
    tutor = fake.seed("profiles", external_id=TUTOR_IDENTITY.external_id, email="ada@example.com",
                      name="Ada", role="tutor")
    fake.seed("profiles", external_id=STUDENT_IDENTITY.external_id, email="sam@example.com",
              name="Sam", role="student")
    for video in SAMPLE_VIDEOS:
        fake.seed("videos", tutor_id=tutor["id"], **video)
    return fake


def make_session(store, cached_role=None) -> VideoSession:
    return VideoSession(
        store,
        role_lookup=AsyncMock(return_value=cached_role),
        role_writer=AsyncMock(),
    )


@pytest_asyncio.fixture
async def student_session(store):
    session = make_session(store)
    await session.set_identity(STUDENT_IDENTITY)
    return session


@pytest_asyncio.fixture
async def tutor_session(store):
    session = make_session(store)
    await session.set_identity(TUTOR_IDENTITY)
    return session
