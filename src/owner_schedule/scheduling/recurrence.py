"""Recurrence expansion: base event + rule -> occurrences inside a window.

Expansion is bounded by the visible window; rules have no end date, so
nothing is materialised past ``window_end``.

Stepping is wall-clock arithmetic in the base event's zone.  Across a
daylight-saving transition an occurrence keeps its time-of-day and its
wall-clock duration; an occurrence that straddles the transition therefore
lasts one offset-change longer or shorter in absolute (UTC) terms.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from owner_schedule.scheduling.errors import EventValidationError
from owner_schedule.scheduling.models import EventRecord, Occurrence, RecurrenceRule

_SATURDAY = 5


def parse_recurrence_rule(value: Any) -> RecurrenceRule:
    """Resolve a raw recurrence value; unknown values are rejected, never NONE."""
    if isinstance(value, RecurrenceRule):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        return RecurrenceRule.NONE
    if isinstance(value, str):
        try:
            return RecurrenceRule(value.strip().upper())
        except ValueError:
            pass
    raise EventValidationError({"recurrence_rule": f"unknown recurrence_rule: {value!r}"})


@dataclass(frozen=True)
class OccurrenceSequence:
    """Lazy, finite and restartable view of a record's occurrences in a window.

    Every ``iter()`` call starts a fresh walk, so the same instance can be
    consumed any number of times with identical results.
    """

    base: EventRecord
    window_start: datetime
    window_end: datetime

    def __iter__(self) -> Iterator[Occurrence]:
        return _iter_occurrences(self.base, self.window_start, self.window_end)


def expand(base: EventRecord, window_start: datetime, window_end: datetime) -> OccurrenceSequence:
    """Return the occurrences of *base* within ``[window_start, window_end)``.

    Non-recurring events are yielded once when they intersect the window.
    Recurring events yield every step whose start lies inside the window.
    """
    return OccurrenceSequence(base=base, window_start=window_start, window_end=window_end)


def expand_all(
    records: Iterable[EventRecord],
    window_start: datetime,
    window_end: datetime,
) -> list[Occurrence]:
    """Expand every record and order the result by start time."""
    occurrences = [
        occurrence
        for record in records
        for occurrence in expand(record, window_start, window_end)
    ]
    occurrences.sort(key=lambda occ: (occ.start_time, occ.end_time, str(occ.event_id)))
    return occurrences


def _iter_occurrences(
    base: EventRecord,
    window_start: datetime,
    window_end: datetime,
) -> Iterator[Occurrence]:
    if window_end <= window_start:
        return

    rule = base.recurrence_rule
    step_days = rule.step_days
    if step_days is None:
        if base.start_time < window_end and base.end_time > window_start:
            yield Occurrence(
                event_id=base.id,
                start_time=base.start_time,
                end_time=base.end_time,
                record=base,
            )
        return

    # Compare in the base zone so stepping and bounds share one wall clock.
    zone = base.start_time.tzinfo
    start_bound = window_start.astimezone(zone)
    end_bound = window_end.astimezone(zone)
    duration = base.end_time - base.start_time

    days_ahead = (start_bound.date() - base.start_time.date()).days
    step = max(0, days_ahead // step_days)
    while True:
        start = base.start_time + timedelta(days=step * step_days)
        step += 1
        if start >= end_bound:
            return
        if start < start_bound:
            continue
        if rule.skips_weekends and start.weekday() >= _SATURDAY:
            continue
        yield Occurrence(
            event_id=base.id,
            start_time=start,
            end_time=start + duration,
            record=base,
        )
