"""Scheduling core: event model, recurrence, cache, viewport, form and gateway."""

from owner_schedule.scheduling.errors import (
    DataShapeError,
    EventValidationError,
    FieldErrors,
    ScheduleError,
    TransportError,
)
from owner_schedule.scheduling.form import FormMode, FormSession, SchedulingFormController
from owner_schedule.scheduling.gateway import SyncGateway
from owner_schedule.scheduling.models import (
    CompanionField,
    EventDraft,
    EventPatch,
    EventRecord,
    EventStatus,
    EventType,
    Host,
    MeetingType,
    Occurrence,
    RecurrenceRule,
    build_record,
    validate,
)
from owner_schedule.scheduling.recurrence import (
    OccurrenceSequence,
    expand,
    expand_all,
    parse_recurrence_rule,
)
from owner_schedule.scheduling.session import CalendarSession
from owner_schedule.scheduling.store import EventStore, StoreStatus
from owner_schedule.scheduling.viewport import CalendarViewport, ViewGranularity

__all__ = [
    "CalendarSession",
    "CalendarViewport",
    "CompanionField",
    "DataShapeError",
    "EventDraft",
    "EventPatch",
    "EventRecord",
    "EventStatus",
    "EventStore",
    "EventType",
    "EventValidationError",
    "FieldErrors",
    "FormMode",
    "FormSession",
    "Host",
    "MeetingType",
    "Occurrence",
    "OccurrenceSequence",
    "RecurrenceRule",
    "ScheduleError",
    "SchedulingFormController",
    "StoreStatus",
    "SyncGateway",
    "TransportError",
    "ViewGranularity",
    "build_record",
    "expand",
    "expand_all",
    "parse_recurrence_rule",
    "validate",
]
