"""OpenTelemetry spans around cycles, agent calls, health checks and the vision gate.

Off unless enabled in .tritium.json or with the OTEL_TRACING_ENABLED env
var. While off, ``TracingManager.span`` yields a NoOpSpan, so call sites
never branch on whether tracing is active.
"""

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

from .config import TracingSettings


SPAN_PREFIX = "tritium"

_ENV_ON = {"true", "1", "yes"}
_ENV_OFF = {"false", "0", "no"}


def tracing_enabled(settings: TracingSettings) -> bool:
    """OTEL_TRACING_ENABLED, when set, wins over the config file."""
    flag = os.environ.get("OTEL_TRACING_ENABLED", "").strip().lower()
    if flag in _ENV_ON:
        return True
    if flag in _ENV_OFF:
        return False
    return settings.enabled


def build_span_processor(settings: TracingSettings) -> SpanProcessor | None:
    """
    Processor for the configured exporter.

    Returns:
        A span processor, or None for the "none" exporter

    Raises:
        ImportError: If "otlp" is configured without opentelemetry-exporter-otlp
    """
    if settings.exporter == "console":
        return SimpleSpanProcessor(ConsoleSpanExporter())
    if settings.exporter == "otlp":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        endpoint = settings.otlp_endpoint or os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
        return BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint))
    return None


def _attribute_value(value: Any) -> str | bool | int | float:
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


class TracingManager:
    """Span factory for one run.

    Usage:
        tracing = TracingManager(config.tracing)
        tracing.initialize()

        with tracing.span("cycle", cycle=4, tier="mid") as span:
            span.set_attribute("cycle.phase", "improve")
    """

    def __init__(self, settings: TracingSettings | None = None) -> None:
        self.settings = settings or TracingSettings()
        self.is_enabled = tracing_enabled(self.settings)
        self._tracer: trace.Tracer | None = None

    def initialize(self) -> bool:
        """Install the tracer provider. Returns whether spans will be recorded."""
        if self._tracer is not None:
            return True
        if not self.is_enabled:
            return False

        try:
            processor = build_span_processor(self.settings)
        except ImportError:
            print("⚠️ TRACE  otlp exporter needs opentelemetry-exporter-otlp, tracing off")
            return False

        provider = TracerProvider(
            resource=Resource.create({SERVICE_NAME: self.settings.service_name})
        )
        if processor is not None:
            provider.add_span_processor(processor)
        trace.set_tracer_provider(provider)
        self._tracer = provider.get_tracer(SPAN_PREFIX)

        print(f"📡 TRACE  exporter={self.settings.exporter} service={self.settings.service_name}")
        return True

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Any]:
        """
        Span named ``tritium.<name>``.

        Attributes set to None are dropped and non-primitive values are
        stringified. Exceptions are recorded on the span and re-raised.
        """
        if self._tracer is None:
            yield NoOpSpan()
            return

        clean = {key: _attribute_value(v) for key, v in attributes.items() if v is not None}
        with self._tracer.start_as_current_span(f"{SPAN_PREFIX}.{name}", attributes=clean) as span:
            yield span


class NoOpSpan:
    """Stands in for a span while tracing is off."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, status: Any, description: str | None = None) -> None:
        pass

    def record_exception(self, exception: BaseException) -> None:
        pass

    def add_event(self, name: str, attributes: dict[str, Any] | None = None) -> None:
        pass
