"""Dataclass schema objects used by runtime configuration loading."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from session_timer.constants import (
    DEFAULT_BREAK_BUDGET_MINUTES,
    DEFAULT_BREAK_INCREMENT_MINUTES,
    DEFAULT_BREAK_PHASE_MINUTES,
    DEFAULT_FOCUS_MINUTES,
    DEFAULT_TICK_INTERVAL_SECONDS,
)

DEFAULT_CONFIG_FILE = "config.toml"

STORE_BACKEND_MEMORY = "memory"
STORE_BACKEND_SQL = "sql"


class AppConfigurationError(Exception):
    """Raised when application configuration fails."""


@dataclass(frozen=True)
class TimerConfigSettings:
    """Session durations and break budget from `[timer]`."""
    focus_minutes: int = DEFAULT_FOCUS_MINUTES
    break_phase_minutes: int = DEFAULT_BREAK_PHASE_MINUTES
    break_increment_minutes: int = DEFAULT_BREAK_INCREMENT_MINUTES
    break_budget_minutes: int = DEFAULT_BREAK_BUDGET_MINUTES
    tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS


@dataclass(frozen=True)
class StoreSettings:
    """Session store backend selection from `[store]`."""
    backend: str = STORE_BACKEND_MEMORY
    echo: bool = False


@dataclass(frozen=True)
class LoggingSettings:
    """Root logging level from `[logging]`."""
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    """Complete typed runtime configuration loaded from `config.toml`."""
    timer: TimerConfigSettings
    store: StoreSettings
    logging: LoggingSettings
    source_file: str


@dataclass(frozen=True)
class SecretConfig:
    """Environment-provided values kept out of `config.toml`."""
    database_url: Optional[str]
    user_id: Optional[int]
