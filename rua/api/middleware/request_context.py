"""Correlation tagging for every request.

Each inbound request gets a fresh UUID4 correlation id, whatever the caller
sent. The id is stored in the request context, bound to every log line of
the request with ``logger.contextualize``, attached to the active server
span and echoed in the ``X-Request-Id`` response header. The envelope codec
reads the same id for ``requestId``, so header and body always agree.

This middleware is also the last-resort error boundary. An exception that
escapes every inner layer is classified here and rendered as an Internal
envelope, so even those responses carry the ``X-Request-Id`` header.
"""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from rua.api.constants import REQUEST_ID_HEADER
from rua.api.utils.responses import error_response
from rua.core.context import RequestContext, generate_correlation_id
from rua.core.error_classifier import classify, log_classified_error
from rua.core.observability import tag_current_span


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign the correlation id and guarantee an enveloped response.

    Args:
        app: The wrapped application.
        build_version: Version stamped into envelopes built during the
            request. Defaults to the cached settings when not given.
    """

    def __init__(self, app: ASGIApp, *, build_version: str | None = None) -> None:
        super().__init__(app)
        self.build_version = build_version

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request inside its correlation context.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response carrying the X-Request-Id header.
        """
        correlation_id = generate_correlation_id()
        RequestContext.set_correlation_id(correlation_id)
        if self.build_version is not None:
            RequestContext.set_build_version(self.build_version)
        request.state.correlation_id = correlation_id
        tag_current_span(correlation_id)

        try:
            with logger.contextualize(correlation_id=correlation_id):
                try:
                    response = await call_next(request)
                except Exception as exc:  # noqa: BLE001 - last-resort boundary
                    error = classify(exc)
                    log_classified_error(
                        error, {"method": request.method, "path": request.url.path}
                    )
                    response = error_response(error)

            response.headers[REQUEST_ID_HEADER] = correlation_id
            return response
        finally:
            RequestContext.clear()
