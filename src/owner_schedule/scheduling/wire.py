"""Conversion between ``EventRecord`` and the event service's JSON shape.

Server field names are snake_case (``start_time``, ``event_type``...),
statuses travel as integer codes and timestamps as ISO-8601 strings.
Timestamps are converted to aware datetimes in the configured zone here and
nowhere else.  Anything the service returns that cannot be decoded raises
``DataShapeError``; nothing is coerced to a default except genuinely
optional fields that are absent.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Any

from pydantic import ValidationError

from owner_schedule.scheduling.errors import DataShapeError
from owner_schedule.scheduling.models import (
    EventPatch,
    EventRecord,
    EventStatus,
    EventType,
    Host,
    MeetingType,
    RecurrenceRule,
)

logger = logging.getLogger(__name__)

_REQUIRED_WIRE_FIELDS = ("id", "event_type", "start_time", "end_time")
# Placeholder titles sent for events saved without a title of their own.
_EVENT_TYPE_VALUES = frozenset(t.value for t in EventType)


def format_wire_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_wire_datetime(value: Any, *, tz: tzinfo, field_name: str = "timestamp") -> datetime:
    """Parse an ISO-8601 timestamp and express it in *tz*.

    Naive timestamps are read as wall-clock time in *tz*.
    """
    if not isinstance(value, str) or not value.strip():
        raise DataShapeError(f"{field_name} must be a non-empty ISO-8601 string, got {value!r}")
    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = f"{normalized[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise DataShapeError(f"{field_name} is not a valid ISO-8601 timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def record_to_wire(record: EventRecord) -> dict[str, Any]:
    """Build the create/replace request body for *record* (``id`` omitted)."""
    return {
        "title": record.title or record.event_type.value,
        "event_type": record.event_type.value,
        "meeting_type": record.meeting_type.value if record.meeting_type else None,
        "host": record.host.value if record.host else None,
        "location": record.location,
        "start_time": format_wire_datetime(record.start_time),
        "end_time": format_wire_datetime(record.end_time),
        "status": int(record.status),
        "notes": record.notes,
        "link": record.link or "",
        "recurrence_rule": record.recurrence_rule.value,
    }


def patch_to_wire(patch: EventPatch) -> dict[str, Any]:
    """Build a PATCH body containing only the fields set on *patch*.

    Changing ``event_type`` also nulls the companion fields the new type does
    not use, so stale values never survive a type switch.
    """
    body: dict[str, Any] = {}
    for name in patch.model_fields_set:
        value = getattr(patch, name)
        if value is None:
            body[name] = None
        elif isinstance(value, datetime):
            body[name] = format_wire_datetime(value)
        elif isinstance(value, EventStatus):
            body[name] = int(value)
        elif isinstance(value, EventType | MeetingType | Host | RecurrenceRule):
            body[name] = value.value
        else:
            body[name] = value

    if patch.event_type is not None:
        required = patch.event_type.companion_field.value
        for companion in ("meeting_type", "host", "location"):
            if companion != required:
                body[companion] = None
    return body


def record_from_wire(payload: Any, *, tz: tzinfo) -> EventRecord:
    """Decode one event from the service."""
    if not isinstance(payload, dict):
        raise DataShapeError(f"event payload must be a JSON object, got {type(payload).__name__}")

    missing = sorted(name for name in _REQUIRED_WIRE_FIELDS if payload.get(name) is None)
    if missing:
        raise DataShapeError(f"event payload is missing required field(s): {', '.join(missing)}")

    event_id = payload["id"]
    if isinstance(event_id, bool) or not isinstance(event_id, int | str):
        raise DataShapeError(f"event id must be an integer or string, got {event_id!r}")

    try:
        record = EventRecord(
            id=event_id,
            event_type=_decode_enum(EventType, payload, "event_type", required=True),
            meeting_type=_decode_enum(MeetingType, payload, "meeting_type"),
            host=_decode_enum(Host, payload, "host"),
            location=_decode_optional_text(payload, "location"),
            start_time=parse_wire_datetime(payload["start_time"], tz=tz, field_name="start_time"),
            end_time=parse_wire_datetime(payload["end_time"], tz=tz, field_name="end_time"),
            status=_decode_status(payload),
            notes=_decode_optional_text(payload, "notes") or "",
            link=_decode_optional_text(payload, "link"),
            recurrence_rule=(
                _decode_enum(RecurrenceRule, payload, "recurrence_rule") or RecurrenceRule.NONE
            ),
            title=_decode_title(payload),
        )
    except ValidationError as exc:
        message = _first_error(exc)
        raise DataShapeError(f"event {event_id!r} has an invalid shape: {message}") from exc
    return record


def records_from_wire(payload: Any, *, tz: tzinfo) -> list[EventRecord]:
    """Decode a list response; the first bad element fails the whole batch."""
    if not isinstance(payload, list):
        raise DataShapeError(
            f"event list response must be a JSON array, got {type(payload).__name__}"
        )
    records: list[EventRecord] = []
    for index, item in enumerate(payload):
        try:
            records.append(record_from_wire(item, tz=tz))
        except DataShapeError as exc:
            raise DataShapeError(f"event list item {index}: {exc}") from exc
    logger.debug("Decoded %d event(s) from list response", len(records))
    return records


def _decode_enum(
    enum_cls: Any, payload: dict[str, Any], key: str, *, required: bool = False
) -> Any:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise DataShapeError(f"event payload is missing required field: {key}")
        return None
    if not isinstance(value, str):
        raise DataShapeError(f"unrecognised {key}: {value!r}")
    try:
        return enum_cls(value.strip())
    except ValueError as exc:
        raise DataShapeError(f"unrecognised {key}: {value!r}") from exc


def _decode_status(payload: dict[str, Any]) -> EventStatus:
    value = payload.get("status")
    if value is None:
        return EventStatus.PENDING
    try:
        return EventStatus.parse(value)
    except ValueError as exc:
        raise DataShapeError(f"unrecognised status: {value!r}") from exc


def _decode_optional_text(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DataShapeError(f"{key} must be a string, got {type(value).__name__}")
    return value.strip() or None


def _decode_title(payload: dict[str, Any]) -> str | None:
    """Read a user-supplied title; a bare event-type value means no title."""
    title = _decode_optional_text(payload, "title")
    if title is not None and title.upper() in _EVENT_TYPE_VALUES:
        return None
    return title


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    message = errors[0].get("msg", "")
    return message.removeprefix("Value error, ")
