"""OpenTelemetry initialization and span helpers for collection loads."""

from __future__ import annotations

import logging
import os

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.util.types import AttributeValue

logger = logging.getLogger(__name__)

_TRACER_NAME = "itemdeck"

# Guard flag: True once the global TracerProvider has been installed.
_tracer_provider_installed: bool = False


def init_telemetry(service_name: str = "itemdeck") -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing for the engine.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, configures a real TracerProvider
    with OTLP gRPC exporter on the first call. Subsequent calls reuse the
    existing provider.  Without the variable a no-op tracer is returned.

    Args:
        service_name: Instrumentation scope name for the returned tracer.

    Returns:
        A Tracer instance (real or no-op depending on config)
    """
    global _tracer_provider_installed

    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.debug("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op tracer")
        return trace.get_tracer(service_name)

    if _tracer_provider_installed:
        return trace.get_tracer(service_name)

    # Import exporter only when needed (installed via the ``otlp`` extra)
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    resource = Resource.create({"service.name": "itemdeck"})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))

    trace.set_tracer_provider(provider)
    _tracer_provider_installed = True
    logger.info("Telemetry initialized: endpoint=%s", endpoint)
    return trace.get_tracer(service_name)


class load_span:
    """Context manager wrapping one load step in an OpenTelemetry span.

    Usage::

        with load_span("itemdeck.load_entities", **{"entity.type": "game"}) as span:
            entities = ...
            span.set_attribute("entity.count", len(entities))

    Exceptions are recorded on the span and the span status is set to ERROR
    before the exception is re-raised.
    """

    def __init__(self, span_name: str, **attributes: AttributeValue) -> None:
        self._span_name = span_name
        self._attributes = attributes
        self._span: trace.Span | None = None
        self._token: object | None = None

    def __enter__(self) -> trace.Span:
        tracer = trace.get_tracer(_TRACER_NAME)
        self._span = tracer.start_span(self._span_name, attributes=self._attributes)
        self._token = otel_context.attach(trace.set_span_in_context(self._span))
        return self._span

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._span is None:
            return
        if exc_val is not None:
            self._span.set_status(trace.StatusCode.ERROR, str(exc_val))
            self._span.record_exception(exc_val)
        self._span.end()
        if self._token is not None:
            otel_context.detach(self._token)
