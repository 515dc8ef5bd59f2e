"""Exception handlers for failures raised outside the request pipeline.

Pipeline routes classify their own failures. What reaches these handlers
comes from the framework itself: unknown routes (404), wrong methods (405),
FastAPI's own request validation, or an application error raised by a plain
route. Each is classified, logged once and rendered as a failure envelope.

Anything not matched here propagates to the correlation middleware, which
renders it as an Internal envelope.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from rua.api.utils.responses import error_response
from rua.core.error_classifier import classify, log_classified_error
from rua.core.exceptions import RuaError

HANDLED_EXCEPTIONS: tuple[type[Exception], ...] = (
    RuaError,
    RequestValidationError,
    HTTPException,
)


async def classified_error_handler(request: Request, exc: Exception) -> Response:
    """Render any handled exception as a failure envelope.

    Args:
        request: The request that failed.
        exc: The exception to classify.

    Returns:
        Response: Failure envelope with the status derived from the error kind.

    Raises:
        TypeError: If registered for an exception type it does not handle.
    """
    if not isinstance(exc, HANDLED_EXCEPTIONS):
        msg = f"Unexpected exception type {type(exc).__name__}"
        raise TypeError(msg)

    error = classify(exc)
    log_classified_error(
        error,
        {"method": request.method, "path": request.url.path},
    )
    return error_response(error)


def register_exception_handlers(app: FastAPI) -> None:
    """Register the handlers on the application.

    Args:
        app: The FastAPI application instance
    """
    for exception_type in HANDLED_EXCEPTIONS:
        app.add_exception_handler(exception_type, classified_error_handler)

    logger.info("Exception handlers registered")
