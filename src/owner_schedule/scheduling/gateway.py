"""HTTP gateway to the remote event service.

All network I/O of the scheduling core goes through ``SyncGateway``.  Each
operation is exactly one round trip, nothing is retried and the gateway never
touches the ``EventStore``; callers reconcile the cache after a successful
response.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, tzinfo
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from owner_schedule.core.telemetry import gateway_span
from owner_schedule.scheduling.errors import DataShapeError, TransportError
from owner_schedule.scheduling.models import EventId, EventPatch, EventRecord
from owner_schedule.scheduling.wire import (
    patch_to_wire,
    record_from_wire,
    record_to_wire,
    records_from_wire,
)

if TYPE_CHECKING:
    from owner_schedule.config import ScheduleConfig

logger = logging.getLogger(__name__)

EVENTS_RESOURCE_PATH = "/events/"


def _safe_error_message(response: httpx.Response) -> str:
    """Extract a short, readable error message from an error response."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        detail = payload.get("detail")
        if isinstance(detail, str) and detail.strip():
            return detail
        parts: list[str] = []
        for key, value in payload.items():
            if isinstance(value, list):
                messages = ", ".join(str(item) for item in value)
            else:
                messages = str(value)
            parts.append(f"{key}: {messages}")
        if parts:
            return "; ".join(parts)

    raw_text = response.text.strip()
    if raw_text:
        return raw_text
    return f"HTTP {response.status_code} without an error payload"


class SyncGateway:
    """CRUD client for ``/events/`` on the event service."""

    def __init__(
        self,
        *,
        base_url: str,
        tz: tzinfo = UTC,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float | None = None,
    ) -> None:
        normalized = base_url.strip().rstrip("/")
        if not normalized:
            raise ValueError("base_url must be a non-empty string")
        self._base_url = normalized
        self._tz = tz
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout_s)

    @classmethod
    def from_config(
        cls,
        config: ScheduleConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> SyncGateway:
        return cls(
            base_url=config.base_url,
            tz=config.zone,
            http_client=http_client,
            timeout_s=config.request_timeout_s,
        )

    @property
    def events_url(self) -> str:
        return f"{self._base_url}{EVENTS_RESOURCE_PATH}"

    def event_url(self, event_id: EventId) -> str:
        encoded = quote(str(event_id).strip(), safe="")
        if not encoded:
            raise ValueError("event_id must be non-empty")
        return f"{self.events_url}{encoded}/"

    async def list_events(self) -> list[EventRecord]:
        """GET the full event listing."""
        with gateway_span("list"):
            payload = await self._request_json("GET", self.events_url)
            records = records_from_wire(payload, tz=self._tz)
        logger.debug("Listed %d event(s)", len(records))
        return records

    async def create_event(self, record: EventRecord) -> EventRecord:
        """POST *record* (its id, if any, is not sent); return the stored record."""
        with gateway_span("create"):
            payload = await self._request_json(
                "POST",
                self.events_url,
                json_body=record_to_wire(record),
            )
            created = record_from_wire(payload, tz=self._tz)
        logger.info("Created event id=%s type=%s", created.id, created.event_type)
        return created

    async def update_event(
        self,
        event_id: EventId,
        changes: EventRecord | EventPatch | Mapping[str, Any],
    ) -> EventRecord:
        """PATCH *event_id* with a full record, a typed patch or a raw wire mapping."""
        if isinstance(changes, EventRecord):
            body = record_to_wire(changes)
        elif isinstance(changes, EventPatch):
            body = patch_to_wire(changes)
        else:
            body = dict(changes)

        with gateway_span("update", event_id=event_id):
            payload = await self._request_json("PATCH", self.event_url(event_id), json_body=body)
            updated = record_from_wire(payload, tz=self._tz)
        logger.info("Updated event id=%s fields=%s", event_id, ",".join(sorted(body)))
        return updated

    async def delete_event(self, event_id: EventId) -> EventId:
        """DELETE *event_id*; the id is echoed back for cache reconciliation."""
        with gateway_span("delete", event_id=event_id):
            await self._request("DELETE", self.event_url(event_id))
        logger.info("Deleted event id=%s", event_id)
        return event_id

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> SyncGateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._request(method, url, json_body=json_body)
        try:
            return response.json()
        except ValueError as exc:
            raise DataShapeError(
                f"Event service returned invalid JSON for {method} {url}"
            ) from exc

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        logger.debug("%s %s", method, url)
        try:
            response = await self._http_client.request(
                method,
                url,
                json=json_body,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TransportError(status_code=None, message=f"{method} {url}: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise TransportError(
                status_code=response.status_code,
                message=_safe_error_message(response),
            )
        return response
