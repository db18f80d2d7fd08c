"""OpenTelemetry tracing, off unless OTEL_ENABLED."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from threadspire.core.config import settings


_tracer = None
_enabled = False
_exporter = None


def setup_tracing(enabled: Optional[bool] = None, exporter_name: Optional[str] = None) -> None:
    global _tracer, _enabled, _exporter

    flag = settings.OTEL_ENABLED if enabled is None else bool(enabled)
    _enabled = flag
    if not flag:
        return

    provider = TracerProvider(resource=Resource.create({"service.name": "threadspire"}))
    exporter_choice = exporter_name or os.getenv("OTEL_EXPORTER", settings.OTEL_EXPORTER)
    if exporter_choice == "memory":
        _exporter = InMemorySpanExporter()
    else:
        _exporter = ConsoleSpanExporter()

    processor = SimpleSpanProcessor(_exporter)
    provider.add_span_processor(processor)
    # Use the provider directly; the global provider can only be set once per process
    _tracer = provider.get_tracer("threadspire")


@contextmanager
def start_span(name: str, attributes: Optional[Dict[str, object]] = None):
    """
    Span around a block; a no-op yielding None while tracing is disabled.

    Exceptions are recorded on the span (status ERROR) and re-raised; typed
    AppErrors also tag the span with their `error.code`.
    """
    if not _enabled or _tracer is None:
        yield None
        return
    span = _tracer.start_span(name)
    for key, value in (attributes or {}).items():
        if value is not None:
            span.set_attribute(key, value)
    with trace.use_span(span, end_on_exit=True):
        try:
            yield span
        except Exception as exc:
            code = getattr(exc, "code", None)
            if isinstance(code, str):
                span.set_attribute("error.code", code)
            raise


def get_exported_spans():
    if _exporter and hasattr(_exporter, "get_finished_spans"):
        return _exporter.get_finished_spans()
    return []


def reset_exported_spans():
    if _exporter and hasattr(_exporter, "clear"):
        _exporter.clear()
