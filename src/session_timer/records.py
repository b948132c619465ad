"""Persisted session record model and its lifecycle rules."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from .errors import CorruptSession, MissingTimestamp, MultipleActiveSessions
from .time_math import add_minutes, ensure_utc

_TIMESTAMP_FIELDS = (
    "focus_start_time",
    "focus_end_time",
    "break_start_time",
    "break_end_time",
)


class SessionState(str, Enum):
    """Wire values of `session_state`; shared with the store schema."""
    FOCUS = "focus"
    BREAK = "break"
    COMPLETE = "complete"


ACTIVE_SESSION_STATES: frozenset[SessionState] = frozenset(
    {SessionState.FOCUS, SessionState.BREAK}
)


@dataclass(frozen=True)
class SessionRecord:
    """One row of the sessions table."""
    user_id: int
    session_state: SessionState
    focus_start_time: Optional[dt.datetime]
    focus_end_time: Optional[dt.datetime]
    break_minutes_remaining: int
    planned_minutes: int
    break_start_time: Optional[dt.datetime] = None
    break_end_time: Optional[dt.datetime] = None
    total_minutes_done: Optional[int] = None
    id: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.session_state in ACTIVE_SESSION_STATES

    def with_fields(self, changes: Mapping[str, Any]) -> "SessionRecord":
        """Return a copy with wire-level partial fields applied."""
        unknown = set(changes) - _FIELD_NAMES
        if unknown:
            raise ValueError(f"Unknown session fields: {', '.join(sorted(unknown))}")
        return replace(self, **_coerce_row(changes))

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for name in _FIELD_NAMES_ORDERED:
            value = getattr(self, name)
            if isinstance(value, SessionState):
                value = value.value
            elif isinstance(value, dt.datetime):
                value = value.isoformat()
            row[name] = value
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SessionRecord":
        known = {key: value for key, value in row.items() if key in _FIELD_NAMES}
        return cls(**_coerce_row(known))


_FIELD_NAMES_ORDERED = tuple(field.name for field in fields(SessionRecord))
_FIELD_NAMES = frozenset(_FIELD_NAMES_ORDERED)


def new_focus_record(
    user_id: int,
    *,
    now: dt.datetime,
    planned_minutes: int,
    break_budget_minutes: int,
) -> SessionRecord:
    """Build the record inserted when a user has no active session."""
    return SessionRecord(
        user_id=user_id,
        session_state=SessionState.FOCUS,
        focus_start_time=now,
        focus_end_time=add_minutes(now, planned_minutes),
        break_minutes_remaining=break_budget_minutes,
        planned_minutes=planned_minutes,
    )


def validate_record(record: SessionRecord, *, break_increment_minutes: int) -> None:
    if record.focus_start_time is None or record.focus_end_time is None:
        raise MissingTimestamp(
            f"Session {record.id} has no focus window "
            f"(start={record.focus_start_time}, end={record.focus_end_time})"
        )

    if record.session_state == SessionState.BREAK and (
        record.break_start_time is None or record.break_end_time is None
    ):
        raise CorruptSession(
            f"Session {record.id} is on break without break_start_time/break_end_time"
        )

    budget = record.break_minutes_remaining
    if budget < 0:
        raise CorruptSession(f"Session {record.id} has a negative break budget: {budget}")
    if break_increment_minutes > 0 and budget % break_increment_minutes != 0:
        raise CorruptSession(
            f"Session {record.id} break budget {budget} is not a multiple of "
            f"{break_increment_minutes}"
        )


def require_single_active(records: Iterable[SessionRecord]) -> list[SessionRecord]:
    active = [record for record in records if record.is_active]
    if len(active) > 1:
        ids = ", ".join(str(record.id) for record in active)
        raise MultipleActiveSessions(
            f"User {active[0].user_id} has {len(active)} active sessions: {ids}"
        )
    return active


def _coerce_row(row: Mapping[str, Any]) -> dict[str, Any]:
    values = dict(row)
    if "session_state" in values:
        try:
            values["session_state"] = SessionState(values["session_state"])
        except ValueError as error:
            raise CorruptSession(
                f"Unknown session_state: {values['session_state']!r}"
            ) from error
    for name in _TIMESTAMP_FIELDS:
        if name in values and values[name] is not None:
            values[name] = _as_timestamp(values[name], name)
    return values


def _as_timestamp(value: Any, field: str) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            return ensure_utc(dt.datetime.fromisoformat(value))
        except ValueError as error:
            raise CorruptSession(f"{field} is not an ISO-8601 timestamp: {value!r}") from error
    raise CorruptSession(f"{field} must be a timestamp, got {type(value).__name__}")
