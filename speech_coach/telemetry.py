"""Tracing for coach sessions.

Only the lifecycle commands are traced: ``coach.session.start`` covers
microphone acquisition, ``coach.session.stop`` carries the frozen report as
span attributes. Per-event folding and pause ticks are too frequent to be
worth a span each.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

from speech_coach import __version__
from speech_coach.constants import OTEL_EXPORTER_CONSOLE, OTEL_EXPORTER_OTLP
from speech_coach.session.state import ReportSnapshot

logger = logging.getLogger(__name__)

_TRACER_NAME = "speech_coach"
_initialized = False


def build_tracer_provider(exporter: str, endpoint: str = "") -> TracerProvider:
    """TracerProvider for *exporter* (``console``, ``otlp`` or ``none``)."""
    provider = TracerProvider(
        resource=Resource.create({"service.name": "speech-coach", "service.version": __version__})
    )
    if exporter == OTEL_EXPORTER_OTLP:
        # Shipped as the ``otlp`` extra; a missing install is a deployment error.
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        logger.info("[Telemetry] Exporting session spans to %s", endpoint)
    elif exporter == OTEL_EXPORTER_CONSOLE:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.info("[Telemetry] Printing session spans to stdout.")
    else:
        logger.info("[Telemetry] Session spans are not exported.")
    return provider


def init_telemetry(exporter: str, endpoint: str = "") -> None:
    """Install the process-wide provider once; later calls are ignored."""
    global _initialized
    if _initialized:
        return
    trace.set_tracer_provider(build_tracer_provider(exporter, endpoint))
    _initialized = True


@contextmanager
def session_span(
    name: str,
    *,
    source: str,
    session_id: str = "",
    tracer: trace.Tracer | None = None,
) -> Iterator[trace.Span]:
    tracer = tracer or trace.get_tracer(_TRACER_NAME)
    attributes = {"coach.source": source}
    if session_id:
        attributes["coach.session_id"] = session_id
    with tracer.start_as_current_span(name, attributes=attributes) as span:
        yield span


def record_report(span: trace.Span, report: ReportSnapshot) -> None:
    span.set_attributes({
        "coach.duration_s": report.duration_seconds,
        "coach.wpm": report.metrics.wpm,
        "coach.pause_count": report.metrics.pause_count,
        "coach.confidence_percent": report.metrics.confidence_percent,
    })


def trace_id(span: trace.Span) -> str:
    """Hex trace id of *span*, empty when tracing is a no-op."""
    ctx = span.get_span_context()
    return format(ctx.trace_id, "032x") if ctx.trace_id else ""
