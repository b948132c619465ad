"""State, command, and reason constants used by the session timer engine."""

from __future__ import annotations

DEFAULT_FOCUS_MINUTES = 3 * 60
DEFAULT_BREAK_PHASE_MINUTES = 5
DEFAULT_BREAK_INCREMENT_MINUTES = 5
DEFAULT_BREAK_BUDGET_MINUTES = 15
DEFAULT_TICK_INTERVAL_SECONDS = 1.0
SUMMARY_ROUNDING_MINUTES = 15

STATE_UNINITIALIZED = "uninitialized"
STATE_FOCUS = "focus"
STATE_BREAK = "break"
STATE_COMPLETE = "complete"

ACTIVE_STATES: frozenset[str] = frozenset({STATE_FOCUS, STATE_BREAK})

COMMAND_INITIALIZE = "initialize"
COMMAND_TAKE_BREAK = "take_break"
COMMAND_RETURN_TO_FOCUS = "return_to_focus"
COMMAND_COMPLETE = "complete"
COMMAND_DISCARD = "discard"

REASON_CREATED = "created"
REASON_ADOPTED = "adopted"
REASON_ALREADY_INITIALIZED = "already_initialized"
REASON_IN_PROGRESS = "in_progress"
REASON_BREAK_STARTED = "break_started"
REASON_BREAK_EXTENDED = "break_extended"
REASON_RETURNED_TO_FOCUS = "returned_to_focus"
REASON_COMPLETED = "completed"
REASON_DISCARDED = "discarded"
REASON_NOT_ACTIVE = "not_active"
REASON_INSUFFICIENT_BREAK_BUDGET = "insufficient_break_budget"
REASON_STORE_UNAVAILABLE = "store_unavailable"
REASON_ENGINE_FAILED = "engine_failed"
