"""Access logging with latency tracking.

Every request that is not on an excluded path produces a "Request started"
line and either a "Request completed" line (status, latency, sizes) or a
"Request failed" line. Runs inside the correlation middleware, so all of
them carry the request's correlation id.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from rua.api.constants import MAX_USER_AGENT_LENGTH
from rua.core.config import LogConfig, get_settings
from rua.core.constants import MILLISECONDS_PER_SECOND
from rua.core.error_context import sanitize_dict


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log the start and end of each request.

    Args:
        app: The ASGI application.
        log_config: Logging configuration.
    """

    def __init__(self, app: ASGIApp, *, log_config: LogConfig) -> None:
        super().__init__(app)
        self.log_config = log_config
        self.excluded_paths = set(log_config.excluded_paths)
        self.trust_proxy_headers = get_settings().environment == "production"

    def _client_host(self, request: Request) -> str:
        """Find the client address, honoring proxy headers in production."""
        if self.trust_proxy_headers:
            if forwarded_for := request.headers.get("x-forwarded-for"):
                return forwarded_for.split(",")[0].strip()
            if real_ip := request.headers.get("x-real-ip"):
                return real_ip.strip()

        return request.client.host if request.client else "unknown"

    @staticmethod
    def _content_length(value: str | None) -> int:
        """Parse a Content-Length header, treating junk as zero."""
        try:
            return int(value) if value else 0
        except ValueError:
            return 0

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Log around the rest of the request.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: The response from the application.

        Raises:
            Exception: Whatever the application raised, after logging it.
        """
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        user_agent = request.headers.get("user-agent") or "unknown"
        with logger.contextualize(
            method=request.method,
            path=request.url.path,
            client_host=self._client_host(request),
            user_agent=user_agent[:MAX_USER_AGENT_LENGTH],
        ):
            query = dict(request.query_params)
            logger.info(
                "Request started",
                query_params=sanitize_dict(query) if query else None,
                request_size=self._content_length(
                    request.headers.get("content-length")
                ),
            )
            start = time.perf_counter()

            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = (time.perf_counter() - start) * MILLISECONDS_PER_SECOND
                logger.error(
                    "Request failed",
                    duration_ms=round(duration_ms, 2),
                    error_type=type(exc).__name__,
                )
                raise

            duration_ms = (time.perf_counter() - start) * MILLISECONDS_PER_SECOND
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                response_size=self._content_length(
                    response.headers.get("content-length")
                ),
            )

            threshold_ms = self.log_config.slow_request_threshold_ms
            if duration_ms > threshold_ms:
                logger.warning(
                    "Slow request detected",
                    duration_ms=round(duration_ms, 2),
                    threshold_ms=threshold_ms,
                )

            return response
