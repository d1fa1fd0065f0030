"""Create/edit workflow for a single event.

``SchedulingFormController`` sits between a selected calendar slot (or an
existing record) and a create/update call on the gateway.

Every ``open_*`` call starts a new ``FormSession``.  A submit whose response
arrives after its session was closed or replaced still returns the stored
record, since the request is never cancelled and the caller must reconcile
the store with it, but it leaves the controller's current mode and draft
alone so a reopened form is never overwritten by a stale result.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from enum import StrEnum
from typing import Any

from owner_schedule.scheduling.errors import FieldErrors
from owner_schedule.scheduling.gateway import SyncGateway
from owner_schedule.scheduling.models import (
    CompanionField,
    EventDraft,
    EventRecord,
    EventStatus,
    EventType,
    RecurrenceRule,
    build_record,
    validate,
)

logger = logging.getLogger(__name__)

DEFAULT_EVENT_DURATION = timedelta(hours=1)

_DATETIME_FIELDS = ("start_time", "end_time")
_READ_ONLY_FIELDS = ("id", "event_type")

_session_ids = itertools.count(1)


class FormMode(StrEnum):
    CREATE = "create"
    EDIT = "edit"


@dataclass
class FormSession:
    """Token for one opening of the form."""

    id: int
    mode: FormMode
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


def to_datetime_local(value: datetime | None) -> str:
    """Format *value* like an HTML ``datetime-local`` input (minute precision)."""
    if value is None:
        return ""
    return value.strftime("%Y-%m-%dT%H:%M")


class SchedulingFormController:
    """State holder for the event form: mode, draft and session token."""

    def __init__(
        self,
        gateway: SyncGateway,
        *,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
        default_duration: timedelta = DEFAULT_EVENT_DURATION,
    ) -> None:
        self._gateway = gateway
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(tz))
        self._default_duration = default_duration
        self._mode = FormMode.CREATE
        self._draft = EventDraft()
        self._session: FormSession | None = None

    @property
    def mode(self) -> FormMode:
        return self._mode

    @property
    def draft(self) -> EventDraft:
        return self._draft

    @property
    def session(self) -> FormSession | None:
        return self._session

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.cancelled

    def open_for_create(self, slot_start: datetime, slot_end: datetime) -> EventDraft:
        """Start a new MEETING draft prefilled from a calendar slot."""
        self._start_session(FormMode.CREATE)
        self._draft = EventDraft(
            event_type=EventType.MEETING.value,
            start_time=self._localize(slot_start),
            end_time=self._localize(slot_end),
            status=int(EventStatus.PENDING),
            recurrence_rule=RecurrenceRule.NONE.value,
        )
        return self._draft

    def open_for_new(self) -> EventDraft:
        """Start a new draft running from now for the default duration."""
        now = self._localize(self._clock()).replace(second=0, microsecond=0)
        return self.open_for_create(now, now + self._default_duration)

    def open_for_edit(self, record: EventRecord) -> EventDraft:
        if record.id is None:
            raise ValueError("cannot edit a record that has not been persisted")
        self._start_session(FormMode.EDIT)
        self._draft = EventDraft.from_record(record)
        return self._draft

    def set_event_type(self, event_type: EventType | str) -> None:
        """Change the event type and clear every type-conditional field."""
        value = event_type.value if isinstance(event_type, EventType) else event_type
        self._draft = self._draft.model_copy(
            update={
                "event_type": value,
                **{companion.value: None for companion in CompanionField},
            }
        )

    def update_draft(self, **fields: Any) -> EventDraft:
        """Set draft fields other than ``id`` and ``event_type``."""
        for name in fields:
            if name in _READ_ONLY_FIELDS:
                raise ValueError(f"{name} cannot be set through update_draft")
            if name not in EventDraft.model_fields:
                raise ValueError(f"unknown draft field: {name}")
        # datetime-local strings are parsed by the model, then read in the form's zone.
        draft = EventDraft.model_validate({**self._draft.model_dump(), **fields})
        localized = {
            name: self._localize(getattr(draft, name))
            for name in _DATETIME_FIELDS
            if name in fields and getattr(draft, name) is not None
        }
        self._draft = draft.model_copy(update=localized)
        return self._draft

    def field_errors(self) -> FieldErrors:
        """Validate the current draft without submitting it."""
        return validate(self._draft)

    def close(self) -> None:
        """Close the form; an in-flight submit still completes remotely."""
        if self._session is not None:
            self._session.cancel()

    async def submit(self) -> EventRecord:
        """Validate the draft and dispatch create or update.

        Raises ``EventValidationError`` (nothing is sent) when the draft is
        invalid, and lets ``TransportError`` / ``DataShapeError`` propagate
        with the draft untouched so the user can retry.
        """
        session = self._session
        if session is None or session.cancelled:
            raise RuntimeError("form is not open")

        record = build_record(self._draft)
        if session.mode is FormMode.CREATE:
            result = await self._gateway.create_event(record)
        elif record.id is None:
            raise RuntimeError("edit form lost the id of the record being edited")
        else:
            result = await self._gateway.update_event(record.id, record)

        if session is self._session and not session.cancelled:
            session.cancel()
            self._draft = EventDraft.from_record(result)
        else:
            logger.info(
                "Form session %d closed before %s completed; result not applied to the form",
                session.id,
                session.mode,
            )
        return result

    def _start_session(self, mode: FormMode) -> None:
        if self._session is not None:
            self._session.cancel()
        self._mode = mode
        self._session = FormSession(id=next(_session_ids), mode=mode)

    def _localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self._tz)
        return value
