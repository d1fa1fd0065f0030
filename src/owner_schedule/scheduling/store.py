"""Client-side cache of event records.

``EventStore`` is created once per calendar session and discarded with it.
It is a cache, not a database: its contents are authoritative only between
two successful ``refresh()`` calls.  Local ``apply_*`` reconciliation keeps
views responsive after a successful remote mutation until the next refresh.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from enum import StrEnum

from owner_schedule.scheduling.errors import ScheduleError
from owner_schedule.scheduling.gateway import SyncGateway
from owner_schedule.scheduling.models import EventId, EventRecord

logger = logging.getLogger(__name__)


class StoreStatus(StrEnum):
    """Load state of the cache."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class EventStore:
    """Ordered, id-unique collection of ``EventRecord`` objects."""

    def __init__(
        self,
        gateway: SyncGateway,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._gateway = gateway
        self._clock = clock or (lambda: datetime.now(UTC))
        self._items: list[EventRecord] = []
        self.status = StoreStatus.IDLE
        self.last_error: ScheduleError | None = None
        self.last_refreshed_at: datetime | None = None

    def list(self) -> tuple[EventRecord, ...]:
        """Return the cached records in list order; never fetches."""
        return tuple(self._items)

    def get(self, event_id: EventId) -> EventRecord | None:
        index = self._index_of(event_id)
        return None if index is None else self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[EventRecord]:
        return iter(tuple(self._items))

    def __contains__(self, event_id: object) -> bool:
        return any(_same_id(item.id, event_id) for item in self._items)

    async def refresh(self) -> tuple[EventRecord, ...]:
        """Replace the whole cache with the service's current listing.

        On failure the cache is left exactly as it was and the error
        propagates to the caller.
        """
        previous_status = self.status
        self.status = StoreStatus.LOADING
        try:
            records = await self._gateway.list_events()
        except ScheduleError as exc:
            self.status = StoreStatus.FAILED
            self.last_error = exc
            logger.warning(
                "Event refresh failed; keeping %d cached record(s) (was %s): %s",
                len(self._items),
                previous_status,
                exc,
            )
            raise

        self._items = _dedupe(records)
        self.status = StoreStatus.SUCCEEDED
        self.last_error = None
        self.last_refreshed_at = self._clock()
        logger.info("Event cache refreshed with %d record(s)", len(self._items))
        return self.list()

    def apply_created(self, record: EventRecord) -> None:
        """Append a freshly created record (replacing in place if already cached)."""
        self._require_id(record)
        index = self._index_of(record.id)
        if index is not None:
            logger.debug("Created event id=%s already cached; replacing in place", record.id)
            self._items[index] = record
            return
        self._items.append(record)

    def apply_updated(self, record: EventRecord) -> None:
        """Replace the cached record with the same id, keeping its position."""
        self._require_id(record)
        index = self._index_of(record.id)
        if index is None:
            logger.debug("Updated event id=%s is not cached; waiting for next refresh", record.id)
            return
        self._items[index] = record

    def apply_deleted(self, event_id: EventId) -> None:
        """Drop the record with *event_id* if present."""
        self._items = [item for item in self._items if not _same_id(item.id, event_id)]

    def _index_of(self, event_id: EventId | None) -> int | None:
        for index, item in enumerate(self._items):
            if _same_id(item.id, event_id):
                return index
        return None

    @staticmethod
    def _require_id(record: EventRecord) -> None:
        if record.id is None:
            raise ValueError("only persisted records (with an id) can be applied to the store")


def _same_id(left: object, right: object) -> bool:
    if left is None or right is None:
        return False
    return str(left) == str(right)


def _dedupe(records: list[EventRecord]) -> list[EventRecord]:
    """Keep the last record per id, at the position of its first appearance."""
    positions: dict[str, int] = {}
    result: list[EventRecord] = []
    for record in records:
        key = str(record.id)
        if key in positions:
            result[positions[key]] = record
            continue
        positions[key] = len(result)
        result.append(record)
    return result
