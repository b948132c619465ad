from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Mapping

from app_config_parser import parse_app_config
from app_config_schema import (
    DEFAULT_CONFIG_FILE,
    STORE_BACKEND_SQL,
    AppConfig,
    AppConfigurationError,
    SecretConfig,
)

__all__ = [
    "AppConfig",
    "AppConfigurationError",
    "SecretConfig",
    "load_app_config",
    "load_secret_config",
    "resolve_config_path",
]


def resolve_config_path(config_path: str | None = None) -> Path:
    env_path = os.getenv("APP_CONFIG_FILE")
    raw = config_path or env_path or DEFAULT_CONFIG_FILE
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (Path.cwd() / path).resolve()
    return path


def load_app_config(config_path: str | None = None) -> AppConfig:
    path = resolve_config_path(config_path)
    if not path.exists():
        raise AppConfigurationError(f"Config file not found: {path}")
    if not path.is_file():
        raise AppConfigurationError(f"Config path is not a file: {path}")

    try:
        with open(path, "rb") as fh:
            raw = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as error:
        raise AppConfigurationError(f"Failed to parse config TOML: {error}") from error

    if not isinstance(raw, Mapping):
        raise AppConfigurationError("Root config TOML object must be a table.")

    return parse_app_config(raw, source_file=str(path))


def load_secret_config(
    app_config: AppConfig | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> SecretConfig:
    env = environ if environ is not None else os.environ
    database_url = env.get("FOCUS_TIMER_DATABASE_URL", "").strip() or None
    if (
        app_config is not None
        and app_config.store.backend == STORE_BACKEND_SQL
        and not database_url
    ):
        raise AppConfigurationError(
            "FOCUS_TIMER_DATABASE_URL must be set as an environment secret "
            "when store.backend = \"sql\"."
        )

    raw_user_id = env.get("FOCUS_TIMER_USER_ID", "").strip()
    user_id = None
    if raw_user_id:
        try:
            user_id = int(raw_user_id)
        except ValueError as error:
            raise AppConfigurationError("FOCUS_TIMER_USER_ID must be an integer.") from error

    return SecretConfig(database_url=database_url, user_id=user_id)
