"""In-process session store keeping records in a dict."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import replace
from typing import Any, Mapping, Optional

from session_timer.errors import StoreUnavailable
from session_timer.records import SessionRecord, require_single_active


class InMemorySessionStore:
    """Async session store backed by process memory.

    Every operation yields to the event loop once, the way a network round
    trip would, so concurrent callers interleave realistically.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger("session_store")
        self._records: dict[int, SessionRecord] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()
        self._failures: list[StoreUnavailable] = []
        self.create_calls = 0

    def fail_next(self, error: Optional[StoreUnavailable] = None) -> None:
        """Make the next store operation raise `StoreUnavailable`."""
        self._failures.append(error or StoreUnavailable("session store unavailable"))

    def get(self, session_id: int) -> Optional[SessionRecord]:
        return self._records.get(session_id)

    def all_records(self) -> list[SessionRecord]:
        return [self._records[key] for key in sorted(self._records)]

    def put(self, record: SessionRecord) -> SessionRecord:
        """Insert a record as-is, bypassing the active-session check."""
        stored = record if record.id is not None else replace(record, id=next(self._ids))
        self._records[stored.id] = stored
        return stored

    async def list_active(self, user_id: int) -> list[SessionRecord]:
        async with self._lock:
            await self._round_trip()
            return require_single_active(self._for_user(user_id))

    async def create(self, record: SessionRecord) -> list[SessionRecord]:
        async with self._lock:
            await self._round_trip()
            self.create_calls += 1
            existing = require_single_active(self._for_user(record.user_id))
            if existing:
                self._logger.info(
                    "Create for user %s returned existing session %s",
                    record.user_id,
                    existing[0].id,
                )
                return existing
            stored = replace(record, id=next(self._ids))
            self._records[stored.id] = stored
            return [stored]

    async def update(
        self,
        session_id: int,
        fields: Mapping[str, Any],
    ) -> Optional[list[SessionRecord]]:
        async with self._lock:
            await self._round_trip()
            current = self._records.get(session_id)
            if current is None:
                return None
            updated = current.with_fields(fields)
            self._records[session_id] = updated
            return [updated]

    async def delete(self, session_id: int) -> None:
        async with self._lock:
            await self._round_trip()
            self._records.pop(session_id, None)

    async def _round_trip(self) -> None:
        await asyncio.sleep(0)
        if self._failures:
            raise self._failures.pop(0)

    def _for_user(self, user_id: int) -> list[SessionRecord]:
        return [
            record
            for record in self._records.values()
            if record.user_id == user_id and record.is_active
        ]
