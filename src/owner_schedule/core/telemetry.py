"""OpenTelemetry initialization and span helpers for gateway round trips."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)

_TRACER_NAME = "owner_schedule"
_ENDPOINT_ENV = "OTEL_EXPORTER_OTLP_ENDPOINT"

_tracer_provider_installed: bool = False


def init_telemetry(service_name: str = _TRACER_NAME) -> trace.Tracer:
    """Install an OTLP-exporting tracer provider once per process.

    Without ``OTEL_EXPORTER_OTLP_ENDPOINT`` the global (no-op) provider is
    left alone.  The gRPC exporter ships in the ``otlp`` extra and is only
    imported when an endpoint is configured.
    """
    global _tracer_provider_installed

    endpoint = os.environ.get(_ENDPOINT_ENV)
    if endpoint and not _tracer_provider_installed:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)
        _tracer_provider_installed = True
        logger.info("Exporting traces for %s to %s", service_name, endpoint)
    elif not endpoint:
        logger.debug("%s not set; spans are not exported", _ENDPOINT_ENV)
    return trace.get_tracer(service_name)


@contextmanager
def gateway_span(operation: str, *, event_id: object | None = None) -> Iterator[trace.Span]:
    """Run one event-service round trip inside ``owner_schedule.gateway.<operation>``.

    Exceptions are recorded on the span and its status set to ERROR before
    the exception is re-raised.
    """
    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(
        f"{_TRACER_NAME}.gateway.{operation}",
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        span.set_attribute("schedule.operation", operation)
        if event_id is not None:
            span.set_attribute("schedule.event_id", str(event_id))
        try:
            yield span
        except Exception as exc:
            span.set_status(trace.StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise
