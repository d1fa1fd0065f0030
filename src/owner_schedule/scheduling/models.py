"""Event data model and validation.

This module defines:
- the closed enums an event is built from (``EventType``, ``MeetingType``,
  ``Host``, ``EventStatus``, ``RecurrenceRule``)
- ``EventRecord``: the canonical, immutable shape of a stored event
- ``EventDraft``: the loosely typed candidate the form edits
- ``validate`` / ``build_record``: draft -> FieldErrors / EventRecord
- ``Occurrence``: one materialised instance of a record inside a window

Each ``EventType`` requires exactly one companion field, looked up through
``EventType.companion_field``.  The other two companion fields must be empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from owner_schedule.scheduling.errors import EventValidationError, FieldErrors

_HTTP_URL_ADAPTER = TypeAdapter(AnyHttpUrl)


class CompanionField(StrEnum):
    """Type-conditional event fields; exactly one is populated per record."""

    MEETING_TYPE = "meeting_type"
    HOST = "host"
    LOCATION = "location"


class EventType(StrEnum):
    """Kind of calendar entry."""

    MEETING = "MEETING"
    FIRST_APPOINTMENT = "1ST_APPOINTMENT"
    PRESENTATION = "PRESENTATION"
    EVENT = "EVENT"

    @property
    def companion_field(self) -> CompanionField:
        """The one companion field this event type requires."""
        return _COMPANION_FIELDS[self]

    @property
    def label(self) -> str:
        return _EVENT_TYPE_LABELS[self]


_COMPANION_FIELDS: dict[EventType, CompanionField] = {
    EventType.MEETING: CompanionField.MEETING_TYPE,
    EventType.FIRST_APPOINTMENT: CompanionField.HOST,
    EventType.PRESENTATION: CompanionField.HOST,
    EventType.EVENT: CompanionField.LOCATION,
}

_EVENT_TYPE_LABELS: dict[EventType, str] = {
    EventType.MEETING: "Meeting",
    EventType.FIRST_APPOINTMENT: "1st App.",
    EventType.PRESENTATION: "Pres.",
    EventType.EVENT: "Event",
}


class MeetingType(StrEnum):
    """Sub-type for ``EventType.MEETING`` entries."""

    MORNING = "MORNING"
    LEADERS = "LEADERS"
    CLIENT = "CLIENT"
    OWNER = "OWNER"
    OTHER = "OTHER"

    @property
    def label(self) -> str:
        if self is MeetingType.OTHER:
            return "Other"
        return f"{self.value.capitalize()} meeting"


class Host(StrEnum):
    """Named hosts for first appointments and presentations."""

    ROBERT_MILLER = "ROBERT_MILLER"
    STIG_MILLER = "STIG_MILLER"
    TRACY_PEW = "TRACY_PEW"
    KLAUS_NOMI = "KLAUS_NOMI"
    ROSE_MCDOWALL = "ROSE_MCDOWALL"

    @property
    def label(self) -> str:
        if self is Host.ROSE_MCDOWALL:
            return "Rose McDowall"
        return " ".join(part.capitalize() for part in self.value.split("_"))


class EventStatus(IntEnum):
    """Lifecycle status; the integer value is the server's status code."""

    PENDING = 1
    CONFIRMED = 2
    IN_PROGRESS = 3
    COMPLETED = 4
    CANCELLED = 5

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()

    @property
    def color(self) -> str:
        """Legend colour used by calendar renderers."""
        return _STATUS_COLORS[self]

    @classmethod
    def parse(cls, value: Any) -> EventStatus:
        """Accept a member, its integer code (or digit string) or its name.

        Raises ``ValueError`` for anything else; values are never coerced to a
        default.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"unknown status: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            normalized = value.strip()
            if normalized.isdigit():
                return cls(int(normalized))
            try:
                return cls[normalized.upper()]
            except KeyError:
                pass
        raise ValueError(f"unknown status: {value!r}")


_STATUS_COLORS: dict[EventStatus, str] = {
    EventStatus.PENDING: "#718096",
    EventStatus.CONFIRMED: "#38A169",
    EventStatus.IN_PROGRESS: "#D69E2E",
    EventStatus.COMPLETED: "#3182CE",
    EventStatus.CANCELLED: "#9F7AEA",
}


class RecurrenceRule(StrEnum):
    """Repetition pattern applied to a base event."""

    NONE = "NONE"
    DAILY = "DAILY"
    WORKDAYS = "WORKDAYS"
    WEEKLY = "WEEKLY"
    FORTNIGHTLY = "FORTNIGHTLY"

    @property
    def step_days(self) -> int | None:
        """Calendar days between consecutive steps (``None`` for NONE)."""
        return _RECURRENCE_STEP_DAYS[self]

    @property
    def skips_weekends(self) -> bool:
        return self is RecurrenceRule.WORKDAYS

    @property
    def label(self) -> str:
        return _RECURRENCE_LABELS[self]


_RECURRENCE_STEP_DAYS: dict[RecurrenceRule, int | None] = {
    RecurrenceRule.NONE: None,
    RecurrenceRule.DAILY: 1,
    RecurrenceRule.WORKDAYS: 1,
    RecurrenceRule.WEEKLY: 7,
    RecurrenceRule.FORTNIGHTLY: 14,
}

_RECURRENCE_LABELS: dict[RecurrenceRule, str] = {
    RecurrenceRule.NONE: "Never",
    RecurrenceRule.DAILY: "Daily",
    RecurrenceRule.WORKDAYS: "Every Workday (Mon–Fri)",
    RecurrenceRule.WEEKLY: "Weekly",
    RecurrenceRule.FORTNIGHTLY: "Fortnightly",
}

EventId = int | str


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _is_naive(value: datetime) -> bool:
    return value.tzinfo is None or value.utcoffset() is None


class EventRecord(BaseModel):
    """Canonical event shape, as stored by the remote service."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: EventId | None = None
    event_type: EventType
    meeting_type: MeetingType | None = None
    host: Host | None = None
    location: str | None = None
    start_time: datetime
    end_time: datetime
    status: EventStatus = EventStatus.PENDING
    notes: str = ""
    link: str | None = None
    recurrence_rule: RecurrenceRule = RecurrenceRule.NONE
    title: str | None = None

    @field_validator("location", "link", "title")
    @classmethod
    def _normalize_optional_text(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _require_aware(cls, value: datetime) -> datetime:
        if _is_naive(value):
            raise ValueError("event timestamps must be timezone-aware")
        return value

    @model_validator(mode="after")
    def _validate_shape(self) -> EventRecord:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        required = self.event_type.companion_field
        for companion in CompanionField:
            populated = getattr(self, companion.value) is not None
            if companion is required and not populated:
                raise ValueError(f"{companion.value} is required for {self.event_type} events")
            if companion is not required and populated:
                raise ValueError(f"{companion.value} must be empty for {self.event_type} events")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def companion_value(self) -> str:
        """The populated companion field's value (meeting type, host or location)."""
        value = getattr(self, self.event_type.companion_field.value)
        return str(value)

    @property
    def display_title(self) -> str:
        return self.title or self.event_type.label


class EventDraft(BaseModel):
    """Mutable candidate edited by the scheduling form.

    Enum-valued fields keep their raw values so unknown values surface as
    field errors from ``validate`` instead of failing on assignment.
    """

    model_config = ConfigDict(extra="forbid")

    id: EventId | None = None
    event_type: str | None = EventType.MEETING.value
    meeting_type: str | None = None
    host: str | None = None
    location: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: int | str | None = Field(default=int(EventStatus.PENDING))
    notes: str = ""
    link: str | None = None
    recurrence_rule: str | None = RecurrenceRule.NONE.value
    title: str | None = None

    @classmethod
    def from_record(cls, record: EventRecord) -> EventDraft:
        return cls(
            id=record.id,
            event_type=record.event_type.value,
            meeting_type=record.meeting_type.value if record.meeting_type else None,
            host=record.host.value if record.host else None,
            location=record.location,
            start_time=record.start_time,
            end_time=record.end_time,
            status=int(record.status),
            notes=record.notes,
            link=record.link,
            recurrence_rule=record.recurrence_rule.value,
            title=record.title,
        )


def validate(candidate: EventDraft) -> FieldErrors:
    """Check *candidate* against the event rules without side effects.

    Returns an empty ``FieldErrors`` when the candidate is acceptable.
    """
    errors: dict[str, str] = {}

    event_type = _parse_enum_field(EventType, candidate.event_type, "event_type", errors)
    if event_type is None and "event_type" not in errors:
        errors["event_type"] = "event_type is required"

    if event_type is not None:
        required = event_type.companion_field
        for companion in CompanionField:
            value = getattr(candidate, companion.value)
            if companion is required:
                if _is_blank(value):
                    errors[companion.value] = (
                        f"{companion.value} is required for {event_type} events"
                    )
                elif companion is CompanionField.MEETING_TYPE:
                    _parse_enum_field(MeetingType, value, companion.value, errors)
                elif companion is CompanionField.HOST:
                    _parse_enum_field(Host, value, companion.value, errors)
            elif not _is_blank(value):
                errors[companion.value] = f"{companion.value} must be empty for {event_type} events"

    _validate_time_range(candidate.start_time, candidate.end_time, errors)

    if candidate.status is not None and not (
        isinstance(candidate.status, str) and not candidate.status.strip()
    ):
        try:
            EventStatus.parse(candidate.status)
        except ValueError:
            errors["status"] = f"unknown status: {candidate.status!r}"

    _parse_enum_field(RecurrenceRule, candidate.recurrence_rule, "recurrence_rule", errors)

    if not _is_blank(candidate.link):
        try:
            _HTTP_URL_ADAPTER.validate_python(candidate.link.strip())
        except ValidationError:
            errors["link"] = "link must be an absolute http(s) URL"

    return FieldErrors(errors)


def build_record(candidate: EventDraft) -> EventRecord:
    """Validate *candidate* and convert it into an ``EventRecord``.

    Raises ``EventValidationError`` carrying the field errors on failure.
    """
    errors = validate(candidate)
    if errors:
        raise EventValidationError(errors)

    event_type = EventType(candidate.event_type.strip())
    required = event_type.companion_field
    status = (
        EventStatus.PENDING
        if _is_blank(candidate.status)
        else EventStatus.parse(candidate.status)
    )
    recurrence = (
        RecurrenceRule.NONE
        if _is_blank(candidate.recurrence_rule)
        else RecurrenceRule(candidate.recurrence_rule.strip())
    )
    return EventRecord(
        id=candidate.id,
        event_type=event_type,
        meeting_type=(
            MeetingType(candidate.meeting_type.strip())
            if required is CompanionField.MEETING_TYPE
            else None
        ),
        host=Host(candidate.host.strip()) if required is CompanionField.HOST else None,
        location=candidate.location if required is CompanionField.LOCATION else None,
        start_time=candidate.start_time,
        end_time=candidate.end_time,
        status=status,
        notes=candidate.notes,
        link=candidate.link,
        recurrence_rule=recurrence,
        title=candidate.title,
    )


def _parse_enum_field(
    enum_cls: type[StrEnum],
    value: Any,
    field_name: str,
    errors: dict[str, str],
) -> Any:
    if _is_blank(value):
        return None
    if not isinstance(value, str):
        errors[field_name] = f"unknown {field_name}: {value!r}"
        return None
    try:
        return enum_cls(value.strip())
    except ValueError:
        errors[field_name] = f"unknown {field_name}: {value!r}"
        return None


def _validate_time_range(
    start_time: datetime | None,
    end_time: datetime | None,
    errors: dict[str, str],
) -> None:
    if start_time is None:
        errors["start_time"] = "start_time is required"
    elif _is_naive(start_time):
        errors["start_time"] = "start_time must be timezone-aware"
    if end_time is None:
        errors["end_time"] = "end_time is required"
    elif _is_naive(end_time):
        errors["end_time"] = "end_time must be timezone-aware"
    if "start_time" in errors or "end_time" in errors:
        return
    if end_time <= start_time:
        errors["end_time"] = "end_time must be after start_time"


@dataclass(frozen=True)
class Occurrence:
    """One rendered instance of an ``EventRecord`` inside a time window."""

    event_id: EventId | None
    start_time: datetime
    end_time: datetime
    record: EventRecord

    @property
    def is_recurring(self) -> bool:
        return self.record.recurrence_rule is not RecurrenceRule.NONE


class EventPatch(BaseModel):
    """Partial update payload; only explicitly set fields are sent."""

    model_config = ConfigDict(extra="forbid")

    event_type: EventType | None = None
    meeting_type: MeetingType | None = None
    host: Host | None = None
    location: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: EventStatus | None = None
    notes: str | None = None
    link: str | None = None
    recurrence_rule: RecurrenceRule | None = None
    title: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _require_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and _is_naive(value):
            raise ValueError("event timestamps must be timezone-aware")
        return value

    @model_validator(mode="after")
    def _validate_shape(self) -> EventPatch:
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.end_time <= self.start_time
        ):
            raise ValueError("end_time must be after start_time")
        if self.event_type is not None:
            companion = self.event_type.companion_field
            if getattr(self, companion.value) is None:
                raise ValueError(
                    f"{companion.value} is required when changing event_type to {self.event_type}"
                )
        return self

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set
