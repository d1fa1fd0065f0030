"""Calendar viewport: anchor date + view granularity.

A small explicit state machine.  The four granularities are the states,
``set_view`` is the only transition, and ``navigate`` / ``jump_to_today``
move the anchor within the current state.  Weeks start on Monday.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from enum import StrEnum

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

DEFAULT_AGENDA_LENGTH_DAYS = 30


class ViewGranularity(StrEnum):
    """Calendar views."""

    MONTH = "month"
    WEEK = "week"
    DAY = "day"
    AGENDA = "agenda"

    @property
    def step_days(self) -> int | None:
        """Day delta of one navigation step (``None``: month based)."""
        return _STEP_DAYS[self]


# Agenda steps like the week view.
_STEP_DAYS: dict[ViewGranularity, int | None] = {
    ViewGranularity.MONTH: None,
    ViewGranularity.WEEK: 7,
    ViewGranularity.DAY: 1,
    ViewGranularity.AGENDA: 7,
}


class CalendarViewport:
    """Current anchor and granularity of the calendar, plus navigation."""

    def __init__(
        self,
        *,
        anchor: datetime | None = None,
        granularity: ViewGranularity | str = ViewGranularity.WEEK,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
        agenda_length_days: int = DEFAULT_AGENDA_LENGTH_DAYS,
    ) -> None:
        if agenda_length_days < 1:
            raise ValueError("agenda_length_days must be at least 1")
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(tz))
        self._agenda_length_days = agenda_length_days
        self._granularity = ViewGranularity(granularity)
        self._anchor = self._localize(anchor if anchor is not None else self._clock())
        # Requested day-of-month while stepping by months, so that stepping
        # past a shorter month and back lands on the original day.
        self._month_day: int | None = None

    @property
    def anchor(self) -> datetime:
        return self._anchor

    @property
    def granularity(self) -> ViewGranularity:
        return self._granularity

    def navigate(self, direction: int) -> datetime:
        """Move the anchor one unit of the current granularity (-1 or +1)."""
        if direction not in (-1, 1):
            raise ValueError(f"direction must be -1 or +1, got {direction!r}")

        step_days = self._granularity.step_days
        if step_days is None:
            preferred_day = self._month_day or self._anchor.day
            self._anchor = self._anchor + relativedelta(months=direction, day=preferred_day)
            self._month_day = preferred_day
        else:
            self._anchor = self._anchor + timedelta(days=direction * step_days)
            self._month_day = None
        logger.debug("Viewport moved to %s (%s)", self._anchor.isoformat(), self._granularity)
        return self._anchor

    def jump_to_today(self) -> datetime:
        self._anchor = self._localize(self._clock())
        self._month_day = None
        return self._anchor

    def go_to(self, anchor: datetime) -> datetime:
        """Move the anchor to an explicit moment (e.g. a clicked date header)."""
        self._anchor = self._localize(anchor)
        self._month_day = None
        return self._anchor

    def set_view(self, granularity: ViewGranularity | str) -> None:
        """Switch granularity; the anchor does not move."""
        self._granularity = ViewGranularity(granularity)

    def visible_range(self) -> tuple[datetime, datetime]:
        """Return ``[window_start, window_end)`` at local midnight boundaries."""
        day = self._anchor.date()
        match self._granularity:
            case ViewGranularity.DAY:
                first, last_exclusive = day, day + timedelta(days=1)
            case ViewGranularity.WEEK:
                first = _week_start(day)
                last_exclusive = first + timedelta(days=7)
            case ViewGranularity.MONTH:
                month_first = day.replace(day=1)
                month_last = day + relativedelta(day=31)
                first = _week_start(month_first)
                last_exclusive = _week_start(month_last) + timedelta(days=7)
            case ViewGranularity.AGENDA:
                first = day
                last_exclusive = day + timedelta(days=self._agenda_length_days)
        return self._midnight(first), self._midnight(last_exclusive)

    def title(self) -> str:
        """Human-readable label for the visible range."""
        start, end = self.visible_range()
        last = (end - timedelta(days=1)).date()
        match self._granularity:
            case ViewGranularity.MONTH:
                return self._anchor.strftime("%B %Y")
            case ViewGranularity.DAY:
                return self._anchor.strftime("%A %d %B %Y")
            case ViewGranularity.WEEK:
                return f"{start.strftime('%d %b')} – {last.strftime('%d %b %Y')}"
            case _:
                return f"{start.strftime('%d/%m/%Y')} – {last.strftime('%d/%m/%Y')}"

    def _localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self._tz)
        return value.astimezone(self._tz)

    def _midnight(self, day: date) -> datetime:
        return datetime.combine(day, time(), tzinfo=self._tz)


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())
