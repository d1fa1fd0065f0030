"""Configuration loading and validation.

Reads ``owner_schedule.toml``, resolves ``${VAR}`` references from the
environment, validates every section and returns a ``ScheduleConfig``.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from owner_schedule.scheduling.viewport import DEFAULT_AGENDA_LENGTH_DAYS, ViewGranularity

# Environment variable naming the config file used by the CLI.
CONFIG_PATH_ENV = "OWNER_SCHEDULE_CONFIG"
DEFAULT_CONFIG_FILENAME = "owner_schedule.toml"

# ${NAME} references, expanded from the environment at load time.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_URL_PATTERN = re.compile(r"^https?://[^\s/]+", re.IGNORECASE)


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [schedule.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class CalendarViewConfig:
    """Calendar behaviour from [schedule.calendar] section."""

    default_view: ViewGranularity = ViewGranularity.WEEK
    agenda_length_days: int = DEFAULT_AGENDA_LENGTH_DAYS
    default_event_minutes: int = 60
    refresh_after_mutation: bool = True


@dataclass
class ScheduleConfig:
    """Parsed and validated configuration."""

    base_url: str
    timezone: str = "UTC"
    request_timeout_s: float | None = None
    calendar: CalendarViewConfig = field(default_factory=CalendarViewConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def resolve_env_vars(value: Any, *, key_path: str = "") -> Any:
    """Expand ``${NAME}`` references anywhere inside a decoded TOML document.

    Tables and arrays are walked recursively; only strings are rewritten.
    Every unset variable in one string is reported together, along with the
    dotted key it was found under.
    """
    match value:
        case dict():
            return {
                key: resolve_env_vars(item, key_path=f"{key_path}.{key}" if key_path else key)
                for key, item in value.items()
            }
        case list():
            return [
                resolve_env_vars(item, key_path=f"{key_path}[{index}]")
                for index, item in enumerate(value)
            ]
        case str():
            return _expand_string(value, key_path)
        case _:
            return value


def _expand_string(text: str, key_path: str) -> str:
    names = _ENV_VAR_PATTERN.findall(text)
    unset = [name for name in dict.fromkeys(names) if name not in os.environ]
    if unset:
        where = f" at {key_path}" if key_path else ""
        raise ConfigError(
            f"Unset environment variable(s){where}: {', '.join(unset)} (value: {text!r})"
        )
    return _ENV_VAR_PATTERN.sub(lambda m: os.environ[m.group(1)], text)


def _positive_int(section: dict[str, Any], key: str, default: int, prefix: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise ConfigError(f"{prefix}.{key} must be a positive integer, got {raw!r}")
    return raw


def _parse_calendar(schedule_section: dict[str, Any]) -> CalendarViewConfig:
    """Parse the optional [schedule.calendar] sub-section."""
    section = schedule_section.get("calendar", {})
    if not isinstance(section, dict):
        raise ConfigError("schedule.calendar must be a table")

    raw_view = str(section.get("default_view", ViewGranularity.WEEK.value)).strip().lower()
    try:
        default_view = ViewGranularity(raw_view)
    except ValueError as exc:
        choices = ", ".join(v.value for v in ViewGranularity)
        raise ConfigError(
            f"Invalid schedule.calendar.default_view: {raw_view!r}. Expected one of: {choices}"
        ) from exc

    refresh = section.get("refresh_after_mutation", True)
    if not isinstance(refresh, bool):
        raise ConfigError("schedule.calendar.refresh_after_mutation must be a boolean")

    return CalendarViewConfig(
        default_view=default_view,
        agenda_length_days=_positive_int(
            section, "agenda_length_days", DEFAULT_AGENDA_LENGTH_DAYS, "schedule.calendar"
        ),
        default_event_minutes=_positive_int(
            section, "default_event_minutes", 60, "schedule.calendar"
        ),
        refresh_after_mutation=refresh,
    )


def _parse_logging(schedule_section: dict[str, Any]) -> LoggingConfig:
    """Parse the optional [schedule.logging] sub-section."""
    section = schedule_section.get("logging", {})
    if not isinstance(section, dict):
        raise ConfigError("schedule.logging must be a table")
    log_level = str(section.get("level", "INFO")).upper()
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid schedule.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    log_root = section.get("log_root")
    return LoggingConfig(
        level=log_level,
        format=log_format,
        log_root=str(log_root) if log_root else None,
    )


def parse_config(data: dict[str, Any]) -> ScheduleConfig:
    """Validate an already-decoded TOML document."""
    data = resolve_env_vars(data)

    schedule_section = data.get("schedule")
    if not isinstance(schedule_section, dict):
        raise ConfigError("Missing [schedule] section in config")

    base_url = schedule_section.get("base_url")
    if base_url is None:
        raise ConfigError("Missing required field: schedule.base_url")
    base_url = str(base_url).strip()
    if not _URL_PATTERN.match(base_url):
        raise ConfigError(f"schedule.base_url must be an http(s) URL, got {base_url!r}")

    timezone = str(schedule_section.get("timezone", "UTC")).strip()
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"schedule.timezone must be a valid IANA timezone: {timezone!r}") from exc

    timeout_raw = schedule_section.get("request_timeout_s")
    request_timeout_s: float | None = None
    if timeout_raw is not None:
        if isinstance(timeout_raw, bool) or not isinstance(timeout_raw, int | float):
            raise ConfigError("schedule.request_timeout_s must be a number")
        if timeout_raw <= 0:
            raise ConfigError("schedule.request_timeout_s must be greater than 0")
        request_timeout_s = float(timeout_raw)

    return ScheduleConfig(
        base_url=base_url,
        timezone=timezone,
        request_timeout_s=request_timeout_s,
        calendar=_parse_calendar(schedule_section),
        logging=_parse_logging(schedule_section),
    )


def load_config(config_path: Path | str) -> ScheduleConfig:
    """Read, expand and validate ``owner_schedule.toml``.

    *config_path* may name the file itself or the directory holding it.
    Every failure (missing file, malformed TOML, bad value) is a ``ConfigError``.
    """
    path = Path(config_path)
    if path.is_dir():
        path = path / DEFAULT_CONFIG_FILENAME

    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    return parse_config(data)
