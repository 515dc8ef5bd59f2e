"""Middleware and exception handlers wrapped around every request.

- **RequestContextMiddleware**: assigns the correlation id, echoes it in
  ``X-Request-Id`` and renders escaped exceptions as envelopes
- **RequestLoggingMiddleware**: access log with latency
- **error_handler**: envelopes for framework-level failures (404, 405)

Order, outermost first: request context, then request logging.
"""
