"""Root conftest — shared fixtures for the owner_schedule test suite.

Test modules import the helpers directly, e.g.
``from conftest import MockEventService, wire_event``.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx
import pytest

from owner_schedule.config import ScheduleConfig
from owner_schedule.scheduling.gateway import SyncGateway
from owner_schedule.scheduling.models import EventRecord, EventType, MeetingType

TEST_BASE_URL = "https://schedule.test/api"
TEST_TIMEZONE = "Europe/London"


def wire_event(event_id: int = 1, **overrides: Any) -> dict[str, Any]:
    """A valid event as the remote service returns it."""
    payload: dict[str, Any] = {
        "id": event_id,
        "title": "MEETING",
        "event_type": "MEETING",
        "meeting_type": "MORNING",
        "host": None,
        "location": None,
        "start_time": "2024-03-04T09:00:00Z",
        "end_time": "2024-03-04T09:30:00Z",
        "status": 1,
        "notes": "",
        "link": "",
        "recurrence_rule": "NONE",
    }
    payload.update(overrides)
    return payload


def make_record(**overrides: Any) -> EventRecord:
    """A valid persisted MEETING record; override any field."""
    zone = ZoneInfo(TEST_TIMEZONE)
    fields: dict[str, Any] = {
        "id": 1,
        "event_type": EventType.MEETING,
        "meeting_type": MeetingType.MORNING,
        "start_time": datetime(2024, 3, 4, 9, 0, tzinfo=zone),
        "end_time": datetime(2024, 3, 4, 9, 30, tzinfo=zone),
    }
    fields.update(overrides)
    return EventRecord(**fields)


@dataclass
class RecordedRequest:
    method: str
    path: str
    body: Any = None


@dataclass
class MockEventService:
    """In-memory stand-in for the remote ``/events/`` REST resource.

    Serves list/create/update/delete like the real backend, records every
    request, and can be told to fail the next N requests (optionally only
    those with a given HTTP method) with a given status.
    """

    events: dict[int, dict[str, Any]] = field(default_factory=dict)
    requests: list[RecordedRequest] = field(default_factory=list)
    next_id: int = 100
    _failures: list[tuple[int, str | None]] = field(default_factory=list)

    def seed(self, *payloads: dict[str, Any]) -> None:
        for payload in payloads:
            self.events[int(payload["id"])] = dict(payload)

    def fail_next(
        self, status_code: int = 500, times: int = 1, *, method: str | None = None
    ) -> None:
        self._failures.extend([(status_code, method)] * times)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path
        self.requests.append(RecordedRequest(method=request.method, path=path, body=body))

        if self._failures and self._failures[0][1] in (None, request.method):
            status, _ = self._failures.pop(0)
            return httpx.Response(status, json={"detail": f"simulated failure {status}"})

        prefix = "/api/events/"
        if not path.startswith(prefix):
            return httpx.Response(404, json={"detail": "Not found."})
        tail = path[len(prefix) :].strip("/")

        if not tail:
            if request.method == "GET":
                return httpx.Response(200, json=list(self.events.values()))
            if request.method == "POST":
                created = {**body, "id": self.next_id}
                self.events[self.next_id] = created
                self.next_id += 1
                return httpx.Response(201, json=created)
            return httpx.Response(405, json={"detail": "Method not allowed."})

        event_id = int(tail)
        if event_id not in self.events:
            return httpx.Response(404, json={"detail": "Not found."})
        if request.method == "PATCH":
            self.events[event_id] = {**self.events[event_id], **body}
            return httpx.Response(200, json=self.events[event_id])
        if request.method == "DELETE":
            del self.events[event_id]
            return httpx.Response(204)
        if request.method == "GET":
            return httpx.Response(200, json=self.events[event_id])
        return httpx.Response(405, json={"detail": "Method not allowed."})


@pytest.fixture
def zone() -> ZoneInfo:
    return ZoneInfo(TEST_TIMEZONE)


@pytest.fixture
def schedule_config() -> ScheduleConfig:
    return ScheduleConfig(base_url=TEST_BASE_URL, timezone=TEST_TIMEZONE)


@pytest.fixture
def event_service() -> MockEventService:
    return MockEventService()


@pytest.fixture
async def http_client(event_service: MockEventService) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(event_service.handler)) as client:
        yield client


@pytest.fixture
def gateway(http_client: httpx.AsyncClient, zone: ZoneInfo) -> SyncGateway:
    return SyncGateway(base_url=TEST_BASE_URL, tz=zone, http_client=http_client)
