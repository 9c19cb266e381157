"""
Ledger settings (``stock_ledger.config``).

Responsibility
--------------
Loads runtime settings for the stock ledger from a YAML file and the
environment and returns a frozen ``LedgerSettings``.  No other module reads
environment variables or settings files directly; they receive settings (or
the individual values) from their caller.

Precedence, lowest to highest:

1. Dataclass defaults.
2. The YAML file passed to ``load_settings`` (or named by
   ``STOCK_LEDGER_CONFIG``).
3. ``STOCK_LEDGER_DATABASE_URL`` / ``STOCK_LEDGER_LOG_LEVEL`` /
   ``STOCK_LEDGER_ALLOW_NEGATIVE_STOCK``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or bad values  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

ENV_CONFIG_PATH = "STOCK_LEDGER_CONFIG"
ENV_DATABASE_URL = "STOCK_LEDGER_DATABASE_URL"
ENV_LOG_LEVEL = "STOCK_LEDGER_LOG_LEVEL"
ENV_ALLOW_NEGATIVE = "STOCK_LEDGER_ALLOW_NEGATIVE_STOCK"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger and its database engine."""

    database_url: str = "sqlite:///stock_ledger.db"
    echo_sql: bool = False
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: int = 30
    sqlite_busy_timeout: int = 30
    log_level: str = "INFO"
    # Permit unbatched write-offs to take the opening/adjustment pool below zero
    allow_negative_stock: bool = False
    # Days after which a pending batch is flagged as overdue in reports
    pending_overdue_days: int = 7

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.pool_size <= 0:
            raise ValueError("pool_size must be positive")
        if self.max_overflow < 0:
            raise ValueError("max_overflow cannot be negative")
        if self.pending_overdue_days < 0:
            raise ValueError("pending_overdue_days cannot be negative")
        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            raise ValueError(f"Unknown log_level '{self.log_level}'")

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level.upper())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping; an empty file yields ``{}``."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def settings_from_mapping(data: Mapping[str, Any]) -> LedgerSettings:
    """Build settings from a plain mapping, rejecting unknown keys."""
    known = {f.name: f for f in fields(LedgerSettings)}
    unknown = set(data) - set(known)
    if unknown:
        raise ValueError(f"Unknown settings keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        default = known[key].default
        if isinstance(default, bool):
            kwargs[key] = _parse_bool(key, value)
        elif isinstance(default, int):
            kwargs[key] = int(value)
        else:
            kwargs[key] = str(value)
    return LedgerSettings(**kwargs)


def apply_environment(
    settings: LedgerSettings,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """Overlay environment overrides onto ``settings``."""
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    if env.get(ENV_DATABASE_URL):
        overrides["database_url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_LOG_LEVEL):
        overrides["log_level"] = env[ENV_LOG_LEVEL]
    if env.get(ENV_ALLOW_NEGATIVE):
        overrides["allow_negative_stock"] = _parse_bool(
            ENV_ALLOW_NEGATIVE, env[ENV_ALLOW_NEGATIVE]
        )
    return replace(settings, **overrides) if overrides else settings


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Resolve the active settings.

    Args:
        path: YAML file to read.  Falls back to ``STOCK_LEDGER_CONFIG``;
            when neither is given only defaults and environment apply.
        environ: Environment mapping (defaults to ``os.environ``).
    """
    env = os.environ if environ is None else environ
    if path is None and env.get(ENV_CONFIG_PATH):
        path = env[ENV_CONFIG_PATH]

    settings = LedgerSettings()
    if path is not None:
        settings = settings_from_mapping(load_yaml_file(Path(path)))
    return apply_environment(settings, env)
