"""OpenTelemetry tracing for the request pipeline.

Tracing is off by default. When enabled, spans are sampled by trace id ratio
and exported either through Loguru (local development) or over OTLP/gRPC to a
collector. Server spans carry the request's correlation id so a trace can be
joined with its log lines and with the ``requestId`` of the envelope.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from rua.core.context import RequestContext

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI

    from rua.core.config import Settings

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"
BUILD_VERSION_KEY: Final[str] = "service.build"
CORRELATION_ID_ATTRIBUTE: Final[str] = "correlation_id"

DEFAULT_OTLP_ENDPOINT: Final[str] = "http://localhost:4317"
UNTRACED_URLS: Final[str] = "/health,/docs,/redoc,/openapi.json"

# Transport-level spans that only add noise to the log stream
_NOISY_SPANS: Final[frozenset[str]] = frozenset(
    {"connect", "http send", "http receive", "cursor.execute"}
)


class LoguruSpanExporter(SpanExporter):
    """Span exporter that writes finished spans as Loguru debug records."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Log every finished span that is worth reading."""
        for span in spans:
            span_context = span.get_span_context()
            if span_context is None or span.name in _NOISY_SPANS:
                continue

            attributes = dict(span.attributes or {})
            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            logger.bind(
                trace_id=f"0x{span_context.trace_id:032x}",
                span_id=f"0x{span_context.span_id:016x}",
                correlation_id=attributes.get(
                    CORRELATION_ID_ATTRIBUTE, RequestContext.get_correlation_id()
                ),
                span_name=span.name,
                span_kind=span.kind.name,
                duration_ms=duration_ms,
                status=span.status.status_code.name,
            ).debug("Span finished: {}", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Build the exporter named by the observability configuration.

    Args:
        settings: Application settings.

    Returns:
        SpanExporter | None: The exporter, or None when export is disabled.
    """
    config = settings.observability_config

    if config.exporter_type == "console":
        return LoguruSpanExporter()

    if config.exporter_type == "otlp":
        endpoint = config.exporter_endpoint or DEFAULT_OTLP_ENDPOINT
        logger.info("Exporting spans over OTLP to {}", endpoint)
        return OTLPSpanExporter(
            endpoint=endpoint,
            insecure=settings.environment == "development",
        )

    return None


@lru_cache(maxsize=8)
def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for a component, typically ``__name__``."""
    return trace.get_tracer(name)


def setup_tracing(settings: Settings) -> None:
    """Install the global tracer provider.

    Args:
        settings: Application settings.
    """
    config = settings.observability_config
    if not config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return

    resource = Resource.create(
        {
            SERVICE_NAME_KEY: settings.app_name,
            SERVICE_VERSION_KEY: settings.app_version,
            BUILD_VERSION_KEY: settings.git_version,
            ENVIRONMENT_KEY: settings.environment,
        }
    )
    provider = TracerProvider(
        resource=resource,
        sampler=TraceIdRatioBased(config.trace_sample_rate),
    )
    if exporter := get_span_exporter(settings):
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    logger.info(
        "Tracing configured",
        exporter_type=config.exporter_type,
        sample_rate=config.trace_sample_rate,
    )


def shutdown_tracing() -> None:
    """Flush pending spans and stop the exporters.

    Does nothing when tracing was never configured.
    """
    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()
        logger.info("Tracing shut down")


def tag_current_span(correlation_id: str) -> None:
    """Attach the correlation id to the active span, if one is recording.

    Called by the correlation middleware, which runs inside the server span
    opened by the FastAPI instrumentation.

    Args:
        correlation_id: The id assigned to the current request.
    """
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(CORRELATION_ID_ATTRIBUTE, correlation_id)


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Instrument the application and the database driver.

    Args:
        app: FastAPI application to instrument.
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)
    SQLAlchemyInstrumentor().instrument(enable_commenter=False)
    logger.info("Application instrumented for tracing")


@contextmanager
def trace_operation(
    name: str, **attributes: str | int | float | bool
) -> Generator[trace.Span]:
    """Run a block inside a child span.

    Args:
        name: Span name.
        **attributes: Initial span attributes.

    Yields:
        trace.Span: The active span.

    Example:
        >>> with trace_operation("pipeline.authenticate", route="/api/users/me"):
        ...     identity = authenticator.authenticate(values)
    """
    tracer = get_tracer(__name__)
    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)
        if correlation_id := RequestContext.get_correlation_id():
            span.set_attribute(CORRELATION_ID_ATTRIBUTE, correlation_id)
        yield span
