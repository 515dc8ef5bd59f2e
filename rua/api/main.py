"""Application factory and lifespan.

Startup order matters: logging and tracing are configured before the app is
built, exception handlers are registered before middleware, and middleware is
added innermost first (Starlette runs the last one added first). The
resulting request path is::

    RequestContextMiddleware   correlation id, X-Request-Id, last-resort envelope
    RequestLoggingMiddleware   access log
    exception handlers         404/405 and framework errors as envelopes
    route                      RequestPipeline (auth, validation, handler, codec)
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from rua.api.middleware.error_handler import register_exception_handlers
from rua.api.middleware.request_context import RequestContextMiddleware
from rua.api.middleware.request_logging import RequestLoggingMiddleware
from rua.api.routes import api_router
from rua.api.routes.system import router as system_router
from rua.api.utils.responses import ORJSONResponse
from rua.core.config import Settings, get_settings
from rua.core.logging import setup_logging
from rua.core.observability import instrument_app, setup_tracing, shutdown_tracing
from rua.core.security import TokenAuthenticator
from rua.infrastructure.database.session import (
    check_database_connection,
    close_database,
)


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Verify the database on startup; release it and flush telemetry on shutdown.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Control while the application serves requests.

    Raises:
        RuntimeError: If the database is unreachable at startup.
    """
    is_healthy, error_msg = await check_database_connection()
    if not is_healthy:
        logger.error("Database connection failed during startup: {}", error_msg)
        msg = f"Database connection failed: {error_msg}"
        raise RuntimeError(msg)

    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )

    yield

    await close_database()
    shutdown_tracing()
    logger.info("Application shutdown complete")
    # Drain the enqueued sinks before the process exits
    await logger.complete()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of ``get_settings()``.

    Returns:
        FastAPI: The configured application.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Read once; shared read-only by every request
    application.state.settings = settings
    application.state.authenticator = TokenAuthenticator.from_config(
        settings.jwt_config
    )

    register_exception_handlers(application)

    application.add_middleware(RequestLoggingMiddleware, log_config=settings.log_config)
    application.add_middleware(
        RequestContextMiddleware, build_version=settings.git_version
    )

    application.include_router(api_router)
    application.include_router(system_router)

    instrument_app(application, settings)

    return application


app = create_app()
