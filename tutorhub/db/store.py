"""
Remote store adapter.

The engine only talks to the relational store through the RemoteStore
protocol: filtered select with optional profile join expansion,
insert-returning-row, update-by-id-returning-row and delete-by-id. Rows
cross the boundary as plain dicts keyed by column name.

SqlRemoteStore implements the protocol on top of async SQLAlchemy, one
session per call.
"""
import logging
from typing import Any, Protocol

from sqlalchemy import select as sa_select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tutorhub.core.errors import DuplicateRowError, RemoteReadError, RemoteWriteError
from tutorhub.db.models import TABLES, ProfileRow
from tutorhub.db.postgres import AsyncSessionLocal

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class RemoteStore(Protocol):
    async def select(
        self,
        table: str,
        *,
        filters: dict[str, Any] | None = None,
        join: dict[str, str] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        """Return rows matching every ``filters`` equality.

        ``join`` maps an output key to a foreign-key column; the referenced
        profile is embedded under that key, or None when it does not resolve.
        """
        ...

    async def insert(self, table: str, values: Row) -> Row: ...

    async def update(self, table: str, row_id: str, patch: Row) -> Row: ...

    async def delete(self, table: str, row_id: str) -> None: ...


def _model(table: str):
    try:
        return TABLES[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table}") from None


def _to_dict(row) -> Row:
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


def _is_unique_violation(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed", PostgreSQL: "duplicate key value violates unique constraint"
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate" in message


class SqlRemoteStore:
    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    async def select(self, table, *, filters=None, join=None, order_by=None, descending=False):
        model = _model(table)
        stmt = sa_select(model)
        for column, value in (filters or {}).items():
            stmt = stmt.where(getattr(model, column) == value)
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = [_to_dict(row) for row in result.scalars().all()]

                for key, foreign_key in (join or {}).items():
                    ids = {row[foreign_key] for row in rows if row.get(foreign_key)}
                    profiles: dict[str, Row] = {}
                    if ids:
                        found = await session.execute(
                            sa_select(ProfileRow).where(ProfileRow.id.in_(ids))
                        )
                        profiles = {p.id: _to_dict(p) for p in found.scalars().all()}
                    for row in rows:
                        row[key] = profiles.get(row.get(foreign_key))
        except SQLAlchemyError as exc:
            logger.error(f"Select on {table} failed: {exc}")
            raise RemoteReadError(table, "select failed") from exc

        return rows

    async def insert(self, table, values):
        model = _model(table)
        try:
            async with self._session_factory() as session:
                row = model(**values)
                session.add(row)
                await session.commit()
                # Pull server-side defaults (created_at) back into the row
                await session.refresh(row)
                return _to_dict(row)
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateRowError(table, "row already exists") from exc
            raise RemoteWriteError(table, "insert violates a constraint") from exc
        except SQLAlchemyError as exc:
            logger.error(f"Insert into {table} failed: {exc}")
            raise RemoteWriteError(table, "insert failed") from exc

    async def update(self, table, row_id, patch):
        model = _model(table)
        try:
            async with self._session_factory() as session:
                row = await session.get(model, row_id)
                if row is None:
                    raise RemoteWriteError(table, f"no row with id {row_id}")
                for column, value in patch.items():
                    setattr(row, column, value)
                await session.commit()
                await session.refresh(row)
                return _to_dict(row)
        except SQLAlchemyError as exc:
            logger.error(f"Update of {table}/{row_id} failed: {exc}")
            raise RemoteWriteError(table, "update failed") from exc

    async def delete(self, table, row_id):
        model = _model(table)
        try:
            async with self._session_factory() as session:
                row = await session.get(model, row_id)
                if row is None:
                    return
                await session.delete(row)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(f"Delete of {table}/{row_id} failed: {exc}")
            raise RemoteWriteError(table, "delete failed") from exc
