"""Calendar session: wires viewport, store, expander, form and gateway.

Data flow::

    viewport.visible_range() -> store.list() -> expand_all() -> caller renders
    slot / event click -> form.open_* -> form.submit() -> gateway -> store.apply_*

One ``CalendarSession`` lives for one operator session; it owns the single
``EventStore`` instance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import httpx

from owner_schedule.scheduling.errors import ScheduleError
from owner_schedule.scheduling.form import FormMode, SchedulingFormController
from owner_schedule.scheduling.gateway import SyncGateway
from owner_schedule.scheduling.models import EventId, EventPatch, EventRecord, Occurrence
from owner_schedule.scheduling.recurrence import expand_all
from owner_schedule.scheduling.store import EventStore
from owner_schedule.scheduling.viewport import CalendarViewport

if TYPE_CHECKING:
    from owner_schedule.config import ScheduleConfig

logger = logging.getLogger(__name__)


class CalendarSession:
    """Operator-facing facade over the scheduling core."""

    def __init__(
        self,
        config: ScheduleConfig,
        *,
        gateway: SyncGateway | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.gateway = gateway or SyncGateway.from_config(config, http_client=http_client)
        tz = config.zone
        now = clock or (lambda: datetime.now(tz))
        self.store = EventStore(self.gateway, clock=now)
        self.viewport = CalendarViewport(
            granularity=config.calendar.default_view,
            tz=tz,
            clock=now,
            agenda_length_days=config.calendar.agenda_length_days,
        )
        self.form = SchedulingFormController(
            self.gateway,
            tz=tz,
            clock=now,
            default_duration=timedelta(minutes=config.calendar.default_event_minutes),
        )

    async def start(self) -> None:
        """Load the initial event listing."""
        await self.store.refresh()

    async def aclose(self) -> None:
        self.form.close()
        await self.gateway.aclose()

    async def __aenter__(self) -> CalendarSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def visible_occurrences(self) -> list[Occurrence]:
        """Occurrences of every cached record inside the current viewport."""
        window_start, window_end = self.viewport.visible_range()
        return expand_all(self.store.list(), window_start, window_end)

    def select_slot(self, slot_start: datetime, slot_end: datetime) -> None:
        self.form.open_for_create(slot_start, slot_end)

    def select_event(self, event_id: EventId) -> EventRecord:
        record = self.store.get(event_id)
        if record is None:
            raise KeyError(f"event {event_id!r} is not in the cache")
        self.form.open_for_edit(record)
        return record

    async def save(self) -> EventRecord:
        """Submit the form and reconcile the store with the stored record.

        The store is reconciled even when the form was closed while the
        request was in flight.
        """
        mode = self.form.mode
        record = await self.form.submit()
        if mode is FormMode.CREATE:
            self.store.apply_created(record)
        else:
            self.store.apply_updated(record)
        await self._refresh_after_mutation()
        return record

    async def update_fields(self, event_id: EventId, patch: EventPatch) -> EventRecord:
        """Apply a partial update outside the form (e.g. a status change)."""
        if patch.is_empty:
            raise ValueError("patch does not change any field")
        record = await self.gateway.update_event(event_id, patch)
        self.store.apply_updated(record)
        await self._refresh_after_mutation()
        return record

    async def delete_event(self, event_id: EventId) -> EventId:
        """Delete remotely and let the next listing drop the record.

        The server returns no record for a deletion, so the cache keeps the
        stale entry until a refresh succeeds. With refreshing disabled the
        entry is dropped locally instead.
        """
        deleted = await self.gateway.delete_event(event_id)
        if self.config.calendar.refresh_after_mutation:
            await self._refresh_after_mutation()
        else:
            self.store.apply_deleted(deleted)
        return deleted

    async def _refresh_after_mutation(self) -> None:
        if not self.config.calendar.refresh_after_mutation:
            return
        try:
            await self.store.refresh()
        except ScheduleError:
            # The mutation itself succeeded; the stale cache is kept and the
            # failure is recorded on ``store.last_error``.
            logger.warning("Refresh after mutation failed; cache may be stale", exc_info=True)
