"""Structured logging for the owner schedule.

Every module logs through ``logging.getLogger(__name__)``; ``configure_logging``
routes those records through structlog's ``ProcessorFormatter`` so the
console gets either coloured text or JSON lines, and optional log files are
always JSON.

Each record carries:
- ``session``: the calendar session name (ContextVar, asyncio-safe)
- ``trace_id`` / ``span_id``: the active OpenTelemetry span, zeroed outside one

Bearer tokens and URL credentials are scrubbed from the rendered event.

With ``log_root`` set, files land in::

    {log_root}/owner_schedule/{session}.log   # application records
    {log_root}/http/{session}.log             # httpx / httpcore records
"""

from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import structlog
from opentelemetry import trace

APP_LOG_DIR = "owner_schedule"
HTTP_LOG_DIR = "http"

# Transport loggers: kept at WARNING on the console, mirrored to http/ files.
_NOISE_LOGGERS = ("httpx", "httpcore")

_ZERO_TRACE_ID = "0" * 32
_ZERO_SPAN_ID = "0" * 16

_BEARER_PATTERN = re.compile(r"(?i)\b(bearer)\s+[^\s,;\"']+")
_URL_USERINFO_PATTERN = re.compile(r"(?i)\b(https?://)[^/\s:@]+:[^/\s@]+@")

_session_context: ContextVar[str | None] = ContextVar("schedule_session", default=None)


def set_session_context(name: str) -> None:
    """Name the calendar session for the current async context."""
    _session_context.set(name)


def get_session_context() -> str | None:
    return _session_context.get()


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def add_session_context(logger: Any, method_name: str, event_dict: dict) -> dict:  # noqa: ARG001
    event_dict["session"] = _session_context.get()
    return event_dict


def add_otel_context(logger: Any, method_name: str, event_dict: dict) -> dict:  # noqa: ARG001
    """Attach hex ``trace_id`` / ``span_id`` of the current span."""
    span_context = trace.get_current_span().get_span_context()
    if span_context is not None and span_context.trace_id:
        event_dict["trace_id"] = format(span_context.trace_id, "032x")
        event_dict["span_id"] = format(span_context.span_id, "016x")
    else:
        event_dict["trace_id"] = _ZERO_TRACE_ID
        event_dict["span_id"] = _ZERO_SPAN_ID
    return event_dict


def redact_credentials(logger: Any, method_name: str, event_dict: dict) -> dict:  # noqa: ARG001
    """Scrub bearer tokens and ``user:password@`` URL prefixes from the event text."""
    event = event_dict.get("event")
    if isinstance(event, str):
        event = _BEARER_PATTERN.sub(r"\1 [REDACTED]", event)
        event_dict["event"] = _URL_USERINFO_PATTERN.sub(r"\1[REDACTED]@", event)
    return event_dict


def _pre_chain(timestamp_fmt: str) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=timestamp_fmt),
        add_session_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def _formatter(
    renderer: structlog.types.Processor,
    pre_chain: list[structlog.types.Processor],
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            redact_credentials,
            renderer,
        ],
        foreign_pre_chain=pre_chain,
    )


def _json_file_handler(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer(), _pre_chain("iso")))
    return handler


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | str | None = None,
    session_name: str | None = None,
) -> None:
    """Install console (and optional file) logging for the process.

    Parameters
    ----------
    level:
        Root log level name, e.g. ``"DEBUG"``.
    fmt:
        ``"text"`` for the coloured console renderer, ``"json"`` for JSON lines.
    log_root:
        Directory for JSON log files; ``None`` disables file logging.
    session_name:
        Stored in the session ContextVar and used as the log file name.

    Calling it again replaces the previously installed root handlers.
    """
    if session_name:
        set_session_context(session_name)

    if fmt == "json":
        console_chain = _pre_chain("iso")
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        console_chain = _pre_chain("%H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(renderer, console_chain))

    root = logging.getLogger()
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISE_LOGGERS:
        noise_logger = logging.getLogger(name)
        for handler in noise_logger.handlers:
            handler.close()
        noise_logger.handlers.clear()
        noise_logger.setLevel(logging.WARNING)

    if log_root is not None:
        file_name = f"{session_name or APP_LOG_DIR}.log"
        root.addHandler(_json_file_handler(Path(log_root) / APP_LOG_DIR / file_name))
        http_handler = _json_file_handler(Path(log_root) / HTTP_LOG_DIR / file_name)
        for name in _NOISE_LOGGERS:
            logging.getLogger(name).addHandler(http_handler)

    # Direct structlog.get_logger() callers share the console chain.
    structlog.configure(
        processors=[*console_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
