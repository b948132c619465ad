from .contracts import SessionStore
from .memory import InMemorySessionStore
from .sql import SessionRow, SqlSessionStore

__all__ = [
    "InMemorySessionStore",
    "SessionRow",
    "SessionStore",
    "SqlSessionStore",
]
