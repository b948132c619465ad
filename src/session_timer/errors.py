class SessionTimerError(Exception):
    """Base exception for the session timer engine and its stores."""


class StoreUnavailable(SessionTimerError):
    """Raised when the session store backend cannot be reached or fails."""


class SessionIntegrityError(SessionTimerError):
    """Raised when persisted session data violates the record contract."""


class MultipleActiveSessions(SessionIntegrityError):
    """Raised when more than one focus/break record exists for a user."""


class CorruptSession(SessionIntegrityError):
    """Raised when an adopted record is internally inconsistent."""


class MissingTimestamp(SessionIntegrityError):
    """Raised when a state requires a timestamp the record does not carry."""
