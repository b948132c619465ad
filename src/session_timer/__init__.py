from .engine import (
    SessionCommandResult,
    SessionSnapshot,
    SessionTick,
    TimerEngine,
    TimerSettings,
)
from .errors import (
    CorruptSession,
    MissingTimestamp,
    MultipleActiveSessions,
    SessionIntegrityError,
    SessionTimerError,
    StoreUnavailable,
)
from .records import SessionRecord, SessionState
from .ticker import PeriodicTicker
from .time_math import seconds_to_clock

__all__ = [
    "CorruptSession",
    "MissingTimestamp",
    "MultipleActiveSessions",
    "PeriodicTicker",
    "SessionCommandResult",
    "SessionIntegrityError",
    "SessionRecord",
    "SessionSnapshot",
    "SessionState",
    "SessionTick",
    "SessionTimerError",
    "StoreUnavailable",
    "TimerEngine",
    "TimerSettings",
    "seconds_to_clock",
]
