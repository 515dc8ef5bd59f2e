"""Inbound payload validation.

Bodies and query strings are parsed into the pydantic model their route
declares before the handler runs. Two things can go wrong:

- the body is not JSON at all (``BAD_REQUEST``)
- the parsed data breaks a field rule (``VALIDATION_ERROR`` for bodies,
  ``PARAM_ERROR`` for query strings)

Both are raised as :class:`~rua.core.exceptions.ValidationError`. The
message names every failing field, not just the first, and the same detail
is carried per field in ``field_errors``.

An empty body is validated as ``{}``, so a caller that sends nothing learns
about every required field at once.
"""

from collections.abc import Mapping

import orjson
import pydantic
from pydantic import BaseModel

from rua.core.error_classifier import field_errors_from_details, summarize_field_errors
from rua.core.exceptions import BusinessCode, ValidationError
from rua.core.types import JsonValue

BODY_PREFIX = "Invalid request body"
QUERY_PREFIX = "Invalid query parameters"


def parse_json_body(raw: bytes) -> JsonValue:
    """Decode a raw request body.

    Args:
        raw: Body bytes as received.

    Returns:
        JsonValue: The decoded document, ``{}`` for an empty body.

    Raises:
        ValidationError: If the body is not valid JSON.
    """
    if not raw.strip():
        return {}

    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ValidationError(
            f"Malformed JSON body: {e.msg} at position {e.pos}",
            BusinessCode.BAD_REQUEST,
            cause=e,
        ) from e


def validate_payload[M: BaseModel](
    model: type[M],
    data: object,
    *,
    business_code: BusinessCode = BusinessCode.VALIDATION_ERROR,
    prefix: str = BODY_PREFIX,
) -> M:
    """Validate decoded data against a model.

    Args:
        model: The pydantic model declared by the route.
        data: Decoded input.
        business_code: Code to report on failure.
        prefix: Message lead-in naming the request part.

    Returns:
        M: The validated model instance.

    Raises:
        ValidationError: Listing every failing field.
    """
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        field_errors = field_errors_from_details(e.errors())
        raise ValidationError(
            summarize_field_errors(prefix, field_errors),
            business_code,
            context={"model": model.__name__, "error_count": e.error_count()},
            cause=e,
            field_errors=field_errors,
        ) from e


def validate_body[M: BaseModel](model: type[M], raw: bytes) -> M:
    """Parse and validate a JSON request body."""
    return validate_payload(model, parse_json_body(raw))


def validate_query[M: BaseModel](model: type[M], params: Mapping[str, str]) -> M:
    """Validate query string parameters.

    Repeated parameters keep their last value.
    """
    return validate_payload(
        model,
        dict(params),
        business_code=BusinessCode.PARAM_ERROR,
        prefix=QUERY_PREFIX,
    )
