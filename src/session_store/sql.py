"""SQL-backed session store using SQLModel tables."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any, Mapping, Optional

from sqlalchemy import Index, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from session_timer.errors import StoreUnavailable
from session_timer.records import (
    ACTIVE_SESSION_STATES,
    SessionRecord,
    require_single_active,
)

_ACTIVE_STATE_VALUES = sorted(state.value for state in ACTIVE_SESSION_STATES)
_ACTIVE_ROW_PREDICATE = text("session_state IN ('focus', 'break')")
_SQLITE_MEMORY_URLS = frozenset({"sqlite://", "sqlite:///:memory:"})


class SessionRow(SQLModel, table=True):
    __tablename__ = "sessions"
    __table_args__ = (
        Index(
            "uq_sessions_active_user",
            "user_id",
            unique=True,
            sqlite_where=_ACTIVE_ROW_PREDICATE,
            postgresql_where=_ACTIVE_ROW_PREDICATE,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    session_state: str
    focus_start_time: Optional[dt.datetime] = None
    focus_end_time: Optional[dt.datetime] = None
    break_start_time: Optional[dt.datetime] = None
    break_end_time: Optional[dt.datetime] = None
    break_minutes_remaining: int = 0
    planned_minutes: int = 0
    total_minutes_done: Optional[int] = None


class SqlSessionStore:
    """Session store over any SQLAlchemy URL; blocking I/O runs in a worker thread."""

    def __init__(
        self,
        database_url: str,
        *,
        echo: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self._logger = logger or logging.getLogger("session_store")
        options: dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            options["connect_args"] = {"check_same_thread": False}
            if database_url in _SQLITE_MEMORY_URLS:
                # Worker threads must share the single in-memory database.
                options["poolclass"] = StaticPool
        self._engine = create_engine(database_url, echo=echo, **options)

    def create_schema(self) -> None:
        SQLModel.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    async def list_active(self, user_id: int) -> list[SessionRecord]:
        records = await self._run(self._list_active_sync, user_id)
        return require_single_active(records)

    async def create(self, record: SessionRecord) -> list[SessionRecord]:
        return await self._run(self._create_sync, record)

    async def update(
        self,
        session_id: int,
        fields: Mapping[str, Any],
    ) -> Optional[list[SessionRecord]]:
        return await self._run(self._update_sync, session_id, dict(fields))

    async def delete(self, session_id: int) -> None:
        await self._run(self._delete_sync, session_id)

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as error:
            self._logger.error("Session store query failed: %s", error)
            raise StoreUnavailable(str(error)) from error

    def _list_active_sync(self, user_id: int) -> list[SessionRecord]:
        with Session(self._engine) as db:
            return [_to_record(row) for row in self._active_rows(db, user_id)]

    def _create_sync(self, record: SessionRecord) -> list[SessionRecord]:
        with Session(self._engine) as db:
            existing = self._active_rows(db, record.user_id)
            if existing:
                return [_to_record(row) for row in existing]

            row = _to_row(record)
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                # Lost an insert race against another writer for this user.
                db.rollback()
                self._logger.info(
                    "Concurrent create for user %s; returning existing session",
                    record.user_id,
                )
                return [_to_record(row) for row in self._active_rows(db, record.user_id)]
            db.refresh(row)
            return [_to_record(row)]

    def _update_sync(
        self,
        session_id: int,
        fields: dict[str, Any],
    ) -> Optional[list[SessionRecord]]:
        with Session(self._engine) as db:
            row = db.get(SessionRow, session_id)
            if row is None:
                return None
            updated = _to_record(row).with_fields(fields)
            for name, value in _row_values(updated).items():
                setattr(row, name, value)
            db.add(row)
            db.commit()
            db.refresh(row)
            return [_to_record(row)]

    def _delete_sync(self, session_id: int) -> None:
        with Session(self._engine) as db:
            row = db.get(SessionRow, session_id)
            if row is None:
                return
            db.delete(row)
            db.commit()

    @staticmethod
    def _active_rows(db: Session, user_id: int) -> list[SessionRow]:
        statement = (
            select(SessionRow)
            .where(SessionRow.user_id == user_id)
            .where(col(SessionRow.session_state).in_(_ACTIVE_STATE_VALUES))
            .order_by(SessionRow.id)
        )
        return list(db.exec(statement).all())


def _row_values(record: SessionRecord) -> dict[str, Any]:
    return {
        "user_id": record.user_id,
        "session_state": record.session_state.value,
        "focus_start_time": record.focus_start_time,
        "focus_end_time": record.focus_end_time,
        "break_start_time": record.break_start_time,
        "break_end_time": record.break_end_time,
        "break_minutes_remaining": record.break_minutes_remaining,
        "planned_minutes": record.planned_minutes,
        "total_minutes_done": record.total_minutes_done,
    }


def _to_row(record: SessionRecord) -> SessionRow:
    return SessionRow(id=record.id, **_row_values(record))


def _to_record(row: SessionRow) -> SessionRecord:
    # SQLite drops tzinfo; from_row reads naive timestamps back as UTC.
    return SessionRecord.from_row(
        {
            "id": row.id,
            "user_id": row.user_id,
            "session_state": row.session_state,
            "focus_start_time": row.focus_start_time,
            "focus_end_time": row.focus_end_time,
            "break_start_time": row.break_start_time,
            "break_end_time": row.break_end_time,
            "break_minutes_remaining": row.break_minutes_remaining,
            "planned_minutes": row.planned_minutes,
            "total_minutes_done": row.total_minutes_done,
        }
    )
