"""Status and command feedback text for the console presentation."""

from __future__ import annotations

from session_timer import SessionSnapshot
from session_timer.constants import (
    COMMAND_COMPLETE,
    COMMAND_DISCARD,
    COMMAND_INITIALIZE,
    COMMAND_RETURN_TO_FOCUS,
    COMMAND_TAKE_BREAK,
    REASON_ADOPTED,
    REASON_BREAK_EXTENDED,
    REASON_ENGINE_FAILED,
    REASON_INSUFFICIENT_BREAK_BUDGET,
    REASON_NOT_ACTIVE,
    REASON_STORE_UNAVAILABLE,
    STATE_BREAK,
    STATE_COMPLETE,
    STATE_FOCUS,
)


def session_status_message(snapshot: SessionSnapshot) -> str:
    """Build one status line for the current session snapshot."""
    if snapshot.session_state == STATE_FOCUS:
        return (
            f"Focus {snapshot.clock} left "
            f"(break budget {snapshot.break_minutes_remaining} min)"
        )
    if snapshot.session_state == STATE_BREAK:
        return (
            f"Break {snapshot.clock} left "
            f"(break budget {snapshot.break_minutes_remaining} min)"
        )
    if snapshot.session_state == STATE_COMPLETE:
        return completion_summary(snapshot)
    return "No active session"


def completion_summary(snapshot: SessionSnapshot) -> str:
    minutes = snapshot.total_minutes_done_rounded
    hours, remainder = divmod(minutes, 60)
    if hours and remainder:
        spent = f"{hours}h {remainder}min"
    elif hours:
        spent = f"{hours}h"
    else:
        spent = f"{remainder}min"
    return f"Session complete: {spent} of focus"


def command_feedback(command: str, reason: str, snapshot: SessionSnapshot) -> str:
    """Return feedback text for a command result reason."""
    if reason == REASON_STORE_UNAVAILABLE:
        return "Could not reach the session store. Try again."
    if reason == REASON_ENGINE_FAILED:
        return "Session data is inconsistent; restart the timer."
    if reason == REASON_INSUFFICIENT_BREAK_BUDGET:
        return f"Not enough break time left ({snapshot.break_minutes_remaining} min)."
    if reason == REASON_NOT_ACTIVE:
        return "There is no active session."
    if command == COMMAND_INITIALIZE:
        if reason == REASON_ADOPTED:
            return "Resumed your active session."
        return f"Started a {snapshot.planned_focus_minutes} minute focus session."
    if command == COMMAND_TAKE_BREAK:
        if reason == REASON_BREAK_EXTENDED:
            return f"Break extended ({snapshot.clock} left)."
        return f"Break started ({snapshot.clock} left)."
    if command == COMMAND_RETURN_TO_FOCUS:
        return f"Back to focus ({snapshot.clock} left)."
    if command == COMMAND_COMPLETE:
        return completion_summary(snapshot)
    if command == COMMAND_DISCARD:
        return "Session discarded."
    return session_status_message(snapshot)
