"""Protocol describing the persistence collaborator used by the timer engine."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from session_timer.records import SessionRecord


class SessionStore(Protocol):
    """CRUD access to session records; at most one active record per user.

    Field names and `session_state` strings in `update` payloads are the wire
    contract shared with the backing schema.
    """
    async def list_active(self, user_id: int) -> list[SessionRecord]:
        ...

    async def create(self, record: SessionRecord) -> list[SessionRecord]:
        ...

    async def update(
        self,
        session_id: int,
        fields: Mapping[str, Any],
    ) -> Optional[list[SessionRecord]]:
        ...

    async def delete(self, session_id: int) -> None:
        ...
