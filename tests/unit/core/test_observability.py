"""Unit tests for OpenTelemetry tracing setup."""

import pytest
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, SpanExportResult
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)
from pytest_mock import MockerFixture

from rua.core.config import Settings
from rua.core.context import RequestContext
from rua.core.observability import (
    CORRELATION_ID_ATTRIBUTE,
    LoguruSpanExporter,
    get_span_exporter,
    instrument_app,
    setup_tracing,
    shutdown_tracing,
    trace_operation,
)


@pytest.fixture
def memory_exporter(mocker: MockerFixture) -> InMemorySpanExporter:
    """Route spans created by trace_operation into memory."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    mocker.patch(
        "rua.core.observability.get_tracer",
        side_effect=lambda name: provider.get_tracer(name),
    )
    return exporter


@pytest.mark.unit
class TestSpanExporter:
    """Exporter selection."""

    def test_console(self) -> None:
        """Development exports spans through Loguru."""
        assert isinstance(get_span_exporter(Settings()), LoguruSpanExporter)

    def test_otlp(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The OTLP exporter targets the configured collector."""
        monkeypatch.setenv("OBSERVABILITY_CONFIG__EXPORTER_TYPE", "otlp")
        monkeypatch.setenv(
            "OBSERVABILITY_CONFIG__EXPORTER_ENDPOINT", "http://collector:4317"
        )

        assert isinstance(get_span_exporter(Settings()), OTLPSpanExporter)

    def test_none(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Export can be switched off while tracing stays enabled."""
        monkeypatch.setenv("OBSERVABILITY_CONFIG__EXPORTER_TYPE", "none")

        assert get_span_exporter(Settings()) is None

    def test_loguru_exporter_skips_noise(
        self, memory_exporter: InMemorySpanExporter, mocker: MockerFixture
    ) -> None:
        """Transport-level spans are not logged."""
        with trace_operation("pipeline.handler"):
            pass
        with trace_operation("connect"):
            pass
        mock_logger = mocker.patch("rua.core.observability.logger")

        result = LoguruSpanExporter().export(memory_exporter.get_finished_spans())

        assert result is SpanExportResult.SUCCESS
        mock_logger.bind.assert_called_once()
        assert mock_logger.bind.call_args.kwargs["span_name"] == "pipeline.handler"


@pytest.mark.unit
class TestTraceOperation:
    """Child spans around pipeline stages."""

    def test_attributes_and_correlation_id(
        self, memory_exporter: InMemorySpanExporter
    ) -> None:
        """Spans carry their attributes and the request's correlation id."""
        RequestContext.set_correlation_id("abc")

        with trace_operation("pipeline.handler", handler="current_user"):
            pass

        (span,) = memory_exporter.get_finished_spans()
        assert span.name == "pipeline.handler"
        assert span.attributes is not None
        assert span.attributes["handler"] == "current_user"
        assert span.attributes[CORRELATION_ID_ATTRIBUTE] == "abc"


@pytest.mark.unit
class TestSetup:
    """Provider installation and app instrumentation."""

    def test_disabled_by_default(self, mocker: MockerFixture) -> None:
        """Nothing is installed unless tracing is enabled."""
        set_provider = mocker.patch("rua.core.observability.trace.set_tracer_provider")
        instrumentor = mocker.patch("rua.core.observability.FastAPIInstrumentor")

        setup_tracing(Settings())
        instrument_app(mocker.Mock(), Settings())

        set_provider.assert_not_called()
        instrumentor.instrument_app.assert_not_called()

    def test_enabled(
        self, mocker: MockerFixture, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Enabled tracing installs a provider stamped with the build version."""
        monkeypatch.setenv("OBSERVABILITY_CONFIG__ENABLE_TRACING", "true")
        monkeypatch.setenv("GIT_VERSION", "v1.2.3")
        set_provider = mocker.patch("rua.core.observability.trace.set_tracer_provider")

        setup_tracing(Settings())

        provider = set_provider.call_args.args[0]
        assert provider.resource.attributes["service.build"] == "v1.2.3"

    def test_instrument_app(
        self, mocker: MockerFixture, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The app and the SQLAlchemy driver are instrumented together."""
        monkeypatch.setenv("OBSERVABILITY_CONFIG__ENABLE_TRACING", "true")
        fastapi_instrumentor = mocker.patch(
            "rua.core.observability.FastAPIInstrumentor"
        )
        sqlalchemy_instrumentor = mocker.patch(
            "rua.core.observability.SQLAlchemyInstrumentor"
        )
        app = mocker.Mock()

        instrument_app(app, Settings())

        fastapi_instrumentor.instrument_app.assert_called_once()
        assert fastapi_instrumentor.instrument_app.call_args.args[0] is app
        sqlalchemy_instrumentor.return_value.instrument.assert_called_once_with(
            enable_commenter=False
        )


@pytest.mark.unit
class TestShutdownTracing:
    """Flushing at shutdown."""

    def test_shuts_down_sdk_provider(self, mocker: MockerFixture) -> None:
        """A configured provider is flushed and stopped."""
        provider = mocker.Mock(spec=TracerProvider)
        mocker.patch(
            "rua.core.observability.trace.get_tracer_provider", return_value=provider
        )

        shutdown_tracing()

        provider.shutdown.assert_called_once()

    def test_noop_without_provider(self, mocker: MockerFixture) -> None:
        """The default proxy provider is left alone."""
        provider = mocker.Mock()
        mocker.patch(
            "rua.core.observability.trace.get_tracer_provider", return_value=provider
        )

        shutdown_tracing()

        provider.shutdown.assert_not_called()
