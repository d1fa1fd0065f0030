"""Tests for the event model, enum helpers and draft validation."""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from conftest import make_record
from pydantic import ValidationError

from owner_schedule.scheduling.errors import EventValidationError, FieldErrors
from owner_schedule.scheduling.models import (
    CompanionField,
    EventDraft,
    EventPatch,
    EventRecord,
    EventStatus,
    EventType,
    Host,
    MeetingType,
    RecurrenceRule,
    build_record,
    validate,
)

pytestmark = pytest.mark.unit

ZONE = ZoneInfo("Europe/London")
START = datetime(2024, 3, 4, 9, 0, tzinfo=ZONE)
END = datetime(2024, 3, 4, 10, 0, tzinfo=ZONE)


def _draft(**overrides) -> EventDraft:
    fields = {
        "event_type": "MEETING",
        "meeting_type": "MORNING",
        "start_time": START,
        "end_time": END,
    }
    fields.update(overrides)
    return EventDraft(**fields)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TestEnums:
    @pytest.mark.parametrize(
        ("event_type", "companion"),
        [
            (EventType.MEETING, CompanionField.MEETING_TYPE),
            (EventType.FIRST_APPOINTMENT, CompanionField.HOST),
            (EventType.PRESENTATION, CompanionField.HOST),
            (EventType.EVENT, CompanionField.LOCATION),
        ],
    )
    def test_companion_field(self, event_type: EventType, companion: CompanionField):
        assert event_type.companion_field is companion

    def test_first_appointment_wire_value(self):
        assert EventType("1ST_APPOINTMENT") is EventType.FIRST_APPOINTMENT
        assert EventType.FIRST_APPOINTMENT.label == "1st App."

    def test_labels(self):
        assert MeetingType.LEADERS.label == "Leaders meeting"
        assert MeetingType.OTHER.label == "Other"
        assert Host.ROBERT_MILLER.label == "Robert Miller"
        assert Host.ROSE_MCDOWALL.label == "Rose McDowall"
        assert EventStatus.IN_PROGRESS.label == "In Progress"
        assert RecurrenceRule.WORKDAYS.label == "Every Workday (Mon–Fri)"
        assert RecurrenceRule.NONE.label == "Never"

    def test_recurrence_steps(self):
        assert RecurrenceRule.NONE.step_days is None
        assert RecurrenceRule.DAILY.step_days == 1
        assert RecurrenceRule.WEEKLY.step_days == 7
        assert RecurrenceRule.FORTNIGHTLY.step_days == 14
        assert RecurrenceRule.WORKDAYS.skips_weekends
        assert not RecurrenceRule.DAILY.skips_weekends

    def test_status_codes(self):
        assert [int(s) for s in EventStatus] == [1, 2, 3, 4, 5]
        assert all(s.color.startswith("#") for s in EventStatus)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (3, EventStatus.IN_PROGRESS),
            ("5", EventStatus.CANCELLED),
            ("confirmed", EventStatus.CONFIRMED),
            (EventStatus.COMPLETED, EventStatus.COMPLETED),
        ],
    )
    def test_status_parse(self, raw, expected):
        assert EventStatus.parse(raw) is expected

    @pytest.mark.parametrize("raw", [0, 6, "done", True, None, 2.0])
    def test_status_parse_rejects_unknown(self, raw):
        with pytest.raises(ValueError):
            EventStatus.parse(raw)


# ---------------------------------------------------------------------------
# EventRecord
# ---------------------------------------------------------------------------


class TestEventRecord:
    def test_defaults(self):
        record = make_record()
        assert record.status is EventStatus.PENDING
        assert record.recurrence_rule is RecurrenceRule.NONE
        assert record.notes == ""
        assert record.link is None
        assert record.duration == timedelta(minutes=30)
        assert record.companion_value == "MORNING"
        assert record.display_title == "Meeting"

    def test_title_overrides_display(self):
        assert make_record(title="Standup").display_title == "Standup"

    def test_blank_optional_text_normalized(self):
        record = make_record(title="   ", link="")
        assert record.title is None
        assert record.link is None

    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError, match="end_time must be after start_time"):
            make_record(end_time=START - timedelta(minutes=1), start_time=START)

    def test_zero_length_rejected(self):
        with pytest.raises(ValidationError):
            make_record(start_time=START, end_time=START)

    def test_missing_companion_rejected(self):
        with pytest.raises(ValidationError, match="host is required"):
            EventRecord(event_type=EventType.PRESENTATION, start_time=START, end_time=END)

    def test_extra_companion_rejected(self):
        with pytest.raises(ValidationError, match="location must be empty"):
            make_record(location="Boardroom")

    def test_naive_timestamps_rejected(self):
        with pytest.raises(ValidationError, match="timezone-aware"):
            make_record(start_time=datetime(2024, 3, 4, 9), end_time=datetime(2024, 3, 4, 10))

    def test_is_immutable(self):
        record = make_record()
        with pytest.raises(ValidationError):
            record.notes = "changed"

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            make_record(colour="red")


# ---------------------------------------------------------------------------
# validate / build_record
# ---------------------------------------------------------------------------


class TestValidate:
    def test_valid_meeting_has_no_errors(self):
        errors = validate(_draft())
        assert isinstance(errors, FieldErrors)
        assert errors.ok
        assert errors == {}

    def test_missing_event_type(self):
        errors = validate(_draft(event_type=None))
        assert errors["event_type"] == "event_type is required"

    def test_unknown_event_type(self):
        errors = validate(_draft(event_type="PARTY"))
        assert "event_type" in errors

    def test_required_companion_missing(self):
        errors = validate(_draft(event_type="EVENT", meeting_type=None))
        assert errors == {"location": "location is required for EVENT events"}

    def test_other_companions_must_be_empty(self):
        errors = validate(_draft(host="TRACY_PEW"))
        assert errors == {"host": "host must be empty for MEETING events"}

    def test_unknown_host(self):
        errors = validate(
            _draft(event_type="1ST_APPOINTMENT", meeting_type=None, host="NOBODY")
        )
        assert set(errors) == {"host"}

    def test_unknown_meeting_type(self):
        assert set(validate(_draft(meeting_type="BRUNCH"))) == {"meeting_type"}

    def test_times_required(self):
        errors = validate(_draft(start_time=None, end_time=None))
        assert errors["start_time"] == "start_time is required"
        assert errors["end_time"] == "end_time is required"

    def test_end_before_start(self):
        errors = validate(_draft(end_time=START - timedelta(hours=1)))
        assert errors == {"end_time": "end_time must be after start_time"}

    def test_naive_times_flagged(self):
        errors = validate(_draft(start_time=datetime(2024, 3, 4, 9)))
        assert errors["start_time"] == "start_time must be timezone-aware"

    def test_unknown_status_and_recurrence(self):
        errors = validate(_draft(status=9, recurrence_rule="MONTHLY"))
        assert set(errors) == {"status", "recurrence_rule"}

    @pytest.mark.parametrize("link", ["not a url", "ftp://files.example.com/x", "/relative"])
    def test_bad_link(self, link: str):
        assert validate(_draft(link=link)) == {"link": "link must be an absolute http(s) URL"}

    def test_good_link(self):
        assert validate(_draft(link="https://meet.example.com/abc")).ok

    def test_collects_every_error(self):
        errors = validate(
            _draft(event_type="PRESENTATION", meeting_type="MORNING", start_time=None)
        )
        assert set(errors) == {"host", "meeting_type", "start_time"}

    def test_validate_has_no_side_effects(self):
        draft = _draft(event_type="EVENT")
        before = draft.model_dump()
        validate(draft)
        assert draft.model_dump() == before

    @pytest.mark.parametrize(
        "draft",
        [
            _draft(),
            _draft(event_type="EVENT", meeting_type=None, location="Town hall"),
            _draft(event_type="PRESENTATION", meeting_type=None, host="KLAUS_NOMI"),
            _draft(status="3", recurrence_rule="WEEKLY", link="http://x.example.com"),
        ],
    )
    def test_valid_drafts_build_records(self, draft: EventDraft):
        assert validate(draft).ok
        record = build_record(draft)
        assert isinstance(record, EventRecord)

    @pytest.mark.parametrize(
        "draft",
        [
            _draft(meeting_type=None),
            _draft(location="Anywhere"),
            _draft(end_time=START),
            _draft(status="nope"),
        ],
    )
    def test_invalid_drafts_never_build(self, draft: EventDraft):
        errors = validate(draft)
        assert not errors.ok
        with pytest.raises(EventValidationError) as exc_info:
            build_record(draft)
        assert exc_info.value.errors == errors


class TestBuildRecord:
    def test_converts_raw_fields(self):
        record = build_record(
            _draft(
                event_type="PRESENTATION",
                meeting_type=None,
                host="ROSE_MCDOWALL",
                status="2",
                recurrence_rule="FORTNIGHTLY",
                notes="Quarterly review",
            )
        )
        assert record.event_type is EventType.PRESENTATION
        assert record.host is Host.ROSE_MCDOWALL
        assert record.meeting_type is None
        assert record.status is EventStatus.CONFIRMED
        assert record.recurrence_rule is RecurrenceRule.FORTNIGHTLY
        assert record.notes == "Quarterly review"

    def test_blank_status_and_recurrence_default(self):
        record = build_record(_draft(status="", recurrence_rule=""))
        assert record.status is EventStatus.PENDING
        assert record.recurrence_rule is RecurrenceRule.NONE

    def test_draft_round_trip_from_record(self):
        record = make_record(id=7, notes="n", recurrence_rule=RecurrenceRule.DAILY)
        assert build_record(EventDraft.from_record(record)) == record


# ---------------------------------------------------------------------------
# EventPatch
# ---------------------------------------------------------------------------


class TestEventPatch:
    def test_empty(self):
        assert EventPatch().is_empty
        assert not EventPatch(status=EventStatus.CANCELLED).is_empty

    def test_explicit_none_is_not_empty(self):
        assert not EventPatch(link=None).is_empty

    def test_rejects_inverted_times(self):
        with pytest.raises(ValidationError):
            EventPatch(start_time=END, end_time=START)

    def test_type_change_requires_companion(self):
        with pytest.raises(ValidationError, match="location is required"):
            EventPatch(event_type=EventType.EVENT)
        patch = EventPatch(event_type=EventType.EVENT, location="Hall")
        assert patch.location == "Hall"

    def test_rejects_naive_times(self):
        with pytest.raises(ValidationError):
            EventPatch(start_time=datetime(2024, 3, 4, 9))
