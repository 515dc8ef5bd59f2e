"""Envelope construction and orjson rendering.

This is the only place where response bodies are assembled. Handlers return
plain payloads (or a ``Page``), errors are classified elsewhere, and both
end up here to be wrapped in an :class:`~rua.api.schemas.envelope.Envelope`
stamped with the current time, the request's correlation id and the build
version.
"""

import math
import time
from collections.abc import Sequence
from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rua.api.schemas.envelope import Envelope, FieldErrorDetail, PaginatedEnvelope
from rua.core.config import get_settings
from rua.core.constants import MILLISECONDS_PER_SECOND
from rua.core.context import RequestContext, generate_correlation_id
from rua.core.error_classifier import ClassifiedError
from rua.core.exceptions import BusinessCode, is_success_code

DEFAULT_SUCCESS_MESSAGE = "Success"


class ORJSONResponse(JSONResponse):
    """JSON response rendered with orjson.

    Attributes:
        media_type: The media type for the response.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        """Render envelopes and plain JSON content with orjson.

        Args:
            content: An envelope, another pydantic model or JSON-ready data.

        Returns:
            bytes: The JSON-encoded body.
        """
        if isinstance(content, Envelope):
            content = content.to_wire()
        elif isinstance(content, BaseModel):
            content = content.model_dump(mode="json", by_alias=True)

        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)


def _stamp() -> dict[str, Any]:
    """Fields shared by every envelope built for the current request."""
    return {
        "timestamp": int(time.time() * MILLISECONDS_PER_SECOND),
        "request_id": RequestContext.get_correlation_id() or generate_correlation_id(),
        "version": RequestContext.get_build_version() or get_settings().git_version,
    }


def success(
    data: Any = None,  # noqa: ANN401 - any serializable payload
    business_code: BusinessCode = BusinessCode.SUCCESS,
    message: str = DEFAULT_SUCCESS_MESSAGE,
) -> Envelope:
    """Wrap a successful payload.

    Args:
        data: The payload.
        business_code: A code from the success range.
        message: Human-readable outcome.

    Returns:
        Envelope: The success envelope.

    Raises:
        ValueError: If the business code is not a success code.
    """
    if not is_success_code(business_code):
        msg = f"{int(business_code)} is not a success code"
        raise ValueError(msg)

    return Envelope(
        success=True,
        code=int(business_code),
        message=message,
        data=data,
        **_stamp(),
    )


def failure(error: ClassifiedError) -> Envelope:
    """Wrap a classified error.

    Only the public message and field errors reach the body; the internal
    cause stays behind.

    Args:
        error: The classified error.

    Returns:
        Envelope: The failure envelope, without data.
    """
    errors = [
        FieldErrorDetail(field=item.field, message=item.message)
        for item in error.field_errors
    ]
    return Envelope(
        success=False,
        code=int(error.business_code),
        message=error.public_message,
        errors=errors or None,
        **_stamp(),
    )


def paginated(
    items: Sequence[Any],
    total: int,
    page: int,
    page_size: int,
    message: str = DEFAULT_SUCCESS_MESSAGE,
) -> PaginatedEnvelope:
    """Wrap one page of a listing.

    Only internal handlers call this, so a violated bound is a programming
    error and is raised as ``ValueError`` before anything is built.

    Args:
        items: Records on this page.
        total: Records across all pages.
        page: One-based page number.
        page_size: Maximum records per page.
        message: Human-readable outcome.

    Returns:
        PaginatedEnvelope: The paginated success envelope.

    Raises:
        ValueError: If the page bounds are violated.
    """
    if page < 1:
        msg = f"page must be >= 1, got {page}"
        raise ValueError(msg)
    if page_size < 1:
        msg = f"page_size must be >= 1, got {page_size}"
        raise ValueError(msg)
    if len(items) > page_size:
        msg = f"{len(items)} items do not fit in a page of {page_size}"
        raise ValueError(msg)
    if total < len(items):
        msg = f"total {total} is smaller than the {len(items)} items on the page"
        raise ValueError(msg)

    return PaginatedEnvelope(
        success=True,
        code=int(BusinessCode.SUCCESS),
        message=message,
        items=list(items),
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size),
        **_stamp(),
    )


def render(envelope: Envelope, status_code: int) -> ORJSONResponse:
    """Turn an envelope into an HTTP response.

    Args:
        envelope: The envelope to send.
        status_code: Transport status code.

    Returns:
        ORJSONResponse: The response.
    """
    return ORJSONResponse(content=envelope, status_code=status_code)


def error_response(error: ClassifiedError) -> ORJSONResponse:
    """Render a classified error with the status derived from its kind."""
    return render(failure(error), error.transport_status)
