"""Typed parser for config.toml sections into immutable app settings."""

from __future__ import annotations

from typing import Any, Mapping

from app_config_schema import (
    STORE_BACKEND_MEMORY,
    STORE_BACKEND_SQL,
    AppConfig,
    AppConfigurationError,
    LoggingSettings,
    StoreSettings,
    TimerConfigSettings,
)
from session_timer.constants import (
    DEFAULT_BREAK_BUDGET_MINUTES,
    DEFAULT_BREAK_INCREMENT_MINUTES,
    DEFAULT_BREAK_PHASE_MINUTES,
    DEFAULT_FOCUS_MINUTES,
    DEFAULT_TICK_INTERVAL_SECONDS,
)

_ALLOWED_STORE_BACKENDS = {STORE_BACKEND_MEMORY, STORE_BACKEND_SQL}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def parse_app_config(
    raw: Mapping[str, Any],
    *,
    source_file: str,
) -> AppConfig:
    """Parse raw TOML mappings into strongly typed application settings."""
    timer = _parse_timer_settings(_section(raw, "timer"))
    store = _parse_store_settings(_section(raw, "store"))
    logging_settings = _parse_logging_settings(_section(raw, "logging"))

    return AppConfig(
        timer=timer,
        store=store,
        logging=logging_settings,
        source_file=source_file,
    )


def _parse_timer_settings(section: Mapping[str, Any]) -> TimerConfigSettings:
    focus_minutes = _as_positive_int(
        section.get("focus_minutes", DEFAULT_FOCUS_MINUTES),
        "timer.focus_minutes",
    )
    break_phase_minutes = _as_positive_int(
        section.get("break_phase_minutes", DEFAULT_BREAK_PHASE_MINUTES),
        "timer.break_phase_minutes",
    )
    break_increment_minutes = _as_positive_int(
        section.get("break_increment_minutes", DEFAULT_BREAK_INCREMENT_MINUTES),
        "timer.break_increment_minutes",
    )
    break_budget_minutes = _as_int(
        section.get("break_budget_minutes", DEFAULT_BREAK_BUDGET_MINUTES),
        "timer.break_budget_minutes",
    )
    if break_budget_minutes < 0:
        raise AppConfigurationError("timer.break_budget_minutes must not be negative.")
    if break_budget_minutes % break_increment_minutes != 0:
        raise AppConfigurationError(
            "timer.break_budget_minutes must be a multiple of "
            "timer.break_increment_minutes."
        )

    tick_interval_seconds = _as_float(
        section.get("tick_interval_seconds", DEFAULT_TICK_INTERVAL_SECONDS),
        "timer.tick_interval_seconds",
    )
    if tick_interval_seconds <= 0:
        raise AppConfigurationError("timer.tick_interval_seconds must be greater than zero.")

    return TimerConfigSettings(
        focus_minutes=focus_minutes,
        break_phase_minutes=break_phase_minutes,
        break_increment_minutes=break_increment_minutes,
        break_budget_minutes=break_budget_minutes,
        tick_interval_seconds=tick_interval_seconds,
    )


def _parse_store_settings(section: Mapping[str, Any]) -> StoreSettings:
    _forbid_secret_fields(section, "store", ("database_url",))
    backend = _as_str(section.get("backend", STORE_BACKEND_MEMORY), "store.backend").lower()
    if backend not in _ALLOWED_STORE_BACKENDS:
        allowed = ", ".join(sorted(_ALLOWED_STORE_BACKENDS))
        raise AppConfigurationError(f"store.backend must be one of: {allowed}.")
    return StoreSettings(
        backend=backend,
        echo=_as_bool(section.get("echo", False), "store.echo"),
    )


def _parse_logging_settings(section: Mapping[str, Any]) -> LoggingSettings:
    level = _as_str(section.get("level", "INFO"), "logging.level").upper()
    if level not in _ALLOWED_LOG_LEVELS:
        allowed = ", ".join(sorted(_ALLOWED_LOG_LEVELS))
        raise AppConfigurationError(f"logging.level must be one of: {allowed}.")
    return LoggingSettings(level=level)


def _section(root: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    raw = root.get(name, {})
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise AppConfigurationError(f"[{name}] must be a table.")
    return raw


def _as_str(value: Any, field: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    raise AppConfigurationError(f"{field} must be a string.")


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
    raise AppConfigurationError(f"{field} must be a boolean.")


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise AppConfigurationError(f"{field} must be an integer.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as error:
            raise AppConfigurationError(f"{field} must be an integer.") from error
    raise AppConfigurationError(f"{field} must be an integer.")


def _as_positive_int(value: Any, field: str) -> int:
    number = _as_int(value, field)
    if number <= 0:
        raise AppConfigurationError(f"{field} must be greater than zero.")
    return number


def _as_float(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise AppConfigurationError(f"{field} must be a float.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as error:
            raise AppConfigurationError(f"{field} must be a float.") from error
    raise AppConfigurationError(f"{field} must be a float.")


def _forbid_secret_fields(
    section: Mapping[str, Any],
    section_name: str,
    fields: tuple[str, ...],
) -> None:
    present = [field for field in fields if field in section]
    if present:
        joined = ", ".join(f"{section_name}.{field}" for field in present)
        raise AppConfigurationError(
            f"Secret values must not be stored in config.toml: {joined}. "
            "Move them to environment variables."
        )
