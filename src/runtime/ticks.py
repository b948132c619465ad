"""Tick handlers that report session progress and phase transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from session_timer import SessionSnapshot

from .messages import completion_summary, session_status_message


@dataclass(frozen=True)
class TickDependencies:
    """Dependencies required for processing session updates."""
    logger: logging.Logger
    on_completed: Optional[Callable[[], None]] = None
    status_every_seconds: int = 60


class TickProcessor:
    """Logs periodic status lines and signals completion exactly once.

    Registered as an engine listener, so it sees both tick recomputations and
    command results.
    """
    def __init__(self, dependencies: TickDependencies):
        self._dependencies = dependencies
        self._last_state: Optional[str] = None

    def handle_session_update(self, snapshot: SessionSnapshot) -> None:
        deps = self._dependencies
        state_changed = snapshot.session_state != self._last_state
        self._last_state = snapshot.session_state
        if not state_changed and not snapshot.is_active:
            return

        if snapshot.is_completed:
            deps.logger.info(completion_summary(snapshot))
            if deps.on_completed is not None:
                deps.on_completed()
            return

        interval = max(1, deps.status_every_seconds)
        if state_changed or snapshot.seconds_remaining % interval == 0:
            deps.logger.info(session_status_message(snapshot))
