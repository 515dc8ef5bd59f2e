"""Map any failure to exactly one classified error.

The mapping is closed and total: every exception, whether raised by the
application or escaping from a library, becomes a :class:`ClassifiedError`
with a kind, a business code, a transport status and a public message.

The public message is what the caller sees. The original exception is kept
in ``internal_cause`` for the log line only; it is excluded from ``repr`` and
never serialized. For the Internal kind the public message is always the
fixed generic text, whatever the cause said.

Mapping:
- ``RuaError`` subclasses keep their own kind, code and message
- SQLAlchemy ``NoResultFound`` is NotFound
- SQLAlchemy ``IntegrityError`` is Conflict (duplicate resource)
- any other SQLAlchemy error is Internal (database error)
- PyJWT errors are Unauthorized
- pydantic and FastAPI validation errors are Validation
- Starlette ``HTTPException`` is classified by its status code
- anything else is Internal
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final

import jwt
import pydantic
from fastapi import status
from fastapi.exceptions import RequestValidationError
from loguru import logger
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from rua.core.constants import INTERNAL_ERROR_MESSAGE
from rua.core.context import RequestContext
from rua.core.error_context import sanitize_error_context
from rua.core.exceptions import (
    TRANSPORT_STATUS,
    BusinessCode,
    ErrorKind,
    FieldError,
    RuaError,
    Severity,
)
from rua.core.types import ErrorContext

# Leading location segments that name the request part rather than a field
_LOCATION_PREFIXES: Final[frozenset[str]] = frozenset({"body", "query", "path"})

_HTTP_STATUS_CODES: Final[dict[int, tuple[ErrorKind, BusinessCode]]] = {
    status.HTTP_400_BAD_REQUEST: (ErrorKind.VALIDATION, BusinessCode.BAD_REQUEST),
    status.HTTP_401_UNAUTHORIZED: (ErrorKind.UNAUTHORIZED, BusinessCode.UNAUTHORIZED),
    status.HTTP_403_FORBIDDEN: (ErrorKind.FORBIDDEN, BusinessCode.FORBIDDEN),
    status.HTTP_404_NOT_FOUND: (ErrorKind.NOT_FOUND, BusinessCode.NOT_FOUND),
    status.HTTP_409_CONFLICT: (ErrorKind.CONFLICT, BusinessCode.CONFLICT),
}

_KIND_SEVERITY: Final[dict[ErrorKind, Severity]] = {
    ErrorKind.VALIDATION: Severity.LOW,
    ErrorKind.UNAUTHORIZED: Severity.HIGH,
    ErrorKind.FORBIDDEN: Severity.HIGH,
    ErrorKind.NOT_FOUND: Severity.LOW,
    ErrorKind.CONFLICT: Severity.MEDIUM,
    ErrorKind.INTERNAL: Severity.CRITICAL,
}


@dataclass(frozen=True)
class ClassifiedError:
    """A failure after classification.

    ``public_message`` and ``field_errors`` go on the wire. ``internal_cause``
    and ``context`` are for the log line only.
    """

    kind: ErrorKind
    business_code: BusinessCode
    public_message: str
    field_errors: tuple[FieldError, ...] = ()
    internal_cause: BaseException | None = field(default=None, repr=False)
    context: ErrorContext = field(default_factory=dict, repr=False)

    @property
    def transport_status(self) -> int:
        """HTTP status derived from the error kind alone."""
        return TRANSPORT_STATUS[self.kind]

    @property
    def severity(self) -> Severity:
        """Severity used to pick the log level."""
        return _KIND_SEVERITY[self.kind]


def _field_name(location: Sequence[str | int]) -> str | None:
    """Turn a pydantic error location into a dotted field name."""
    parts = [str(part) for part in location]
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts) or None


def field_errors_from_details(
    details: Iterable[Mapping[str, Any]],
) -> list[FieldError]:
    """Convert pydantic error details into field errors.

    Args:
        details: The items of ``ValidationError.errors()``.

    Returns:
        list[FieldError]: One entry per failing field, in pydantic's order.
    """
    return [
        FieldError(field=_field_name(detail.get("loc", ())), message=detail["msg"])
        for detail in details
    ]


def summarize_field_errors(prefix: str, field_errors: Sequence[FieldError]) -> str:
    """Build a message that names every failing field.

    Args:
        prefix: Lead-in naming the request part, e.g. ``"Invalid request body"``.
        field_errors: The failing fields.

    Returns:
        str: The summary, e.g. ``"Invalid request body: email: Field required"``.
    """
    if not field_errors:
        return prefix
    described = "; ".join(
        f"{error.field}: {error.message}" if error.field else error.message
        for error in field_errors
    )
    return f"{prefix}: {described}"


def _from_rua_error(exc: RuaError) -> ClassifiedError:
    public_message = (
        INTERNAL_ERROR_MESSAGE if exc.kind is ErrorKind.INTERNAL else exc.message
    )
    return ClassifiedError(
        kind=exc.kind,
        business_code=exc.business_code,
        public_message=public_message,
        field_errors=tuple(exc.field_errors),
        internal_cause=exc.cause or exc,
        context=exc.context,
    )


def _from_validation_details(
    exc: BaseException, details: Iterable[Mapping[str, Any]], prefix: str
) -> ClassifiedError:
    field_errors = field_errors_from_details(details)
    return ClassifiedError(
        kind=ErrorKind.VALIDATION,
        business_code=BusinessCode.VALIDATION_ERROR,
        public_message=summarize_field_errors(prefix, field_errors),
        field_errors=tuple(field_errors),
        internal_cause=exc,
    )


def _from_http_exception(exc: StarletteHTTPException) -> ClassifiedError:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return _internal(exc, BusinessCode.INTERNAL_ERROR)

    kind, code = _HTTP_STATUS_CODES.get(
        exc.status_code, (ErrorKind.VALIDATION, BusinessCode.BAD_REQUEST)
    )
    return ClassifiedError(
        kind=kind,
        business_code=code,
        public_message=str(exc.detail),
        internal_cause=exc,
        context={"http_status": exc.status_code},
    )


def _internal(exc: BaseException, code: BusinessCode) -> ClassifiedError:
    return ClassifiedError(
        kind=ErrorKind.INTERNAL,
        business_code=code,
        public_message=INTERNAL_ERROR_MESSAGE,
        internal_cause=exc,
    )


def classify(exc: BaseException) -> ClassifiedError:  # noqa: PLR0911
    """Classify any exception.

    Args:
        exc: The failure to classify.

    Returns:
        ClassifiedError: The single classification for the failure.
    """
    if isinstance(exc, RuaError):
        return _from_rua_error(exc)

    if isinstance(exc, NoResultFound):
        return ClassifiedError(
            kind=ErrorKind.NOT_FOUND,
            business_code=BusinessCode.RESOURCE_NOT_FOUND,
            public_message="Resource not found",
            internal_cause=exc,
        )

    if isinstance(exc, IntegrityError):
        return ClassifiedError(
            kind=ErrorKind.CONFLICT,
            business_code=BusinessCode.DUPLICATE_RESOURCE,
            public_message="Resource already exists",
            internal_cause=exc,
        )

    if isinstance(exc, SQLAlchemyError):
        return _internal(exc, BusinessCode.DATABASE_ERROR)

    if isinstance(exc, jwt.ExpiredSignatureError):
        return ClassifiedError(
            kind=ErrorKind.UNAUTHORIZED,
            business_code=BusinessCode.TOKEN_EXPIRED,
            public_message="Token has expired",
            internal_cause=exc,
        )

    if isinstance(exc, jwt.PyJWTError):
        return ClassifiedError(
            kind=ErrorKind.UNAUTHORIZED,
            business_code=BusinessCode.TOKEN_INVALID,
            public_message="Token is invalid",
            internal_cause=exc,
        )

    if isinstance(exc, pydantic.ValidationError):
        return _from_validation_details(exc, exc.errors(), "Validation failed")

    if isinstance(exc, RequestValidationError):
        return _from_validation_details(exc, exc.errors(), "Invalid request")

    if isinstance(exc, StarletteHTTPException):
        return _from_http_exception(exc)

    return _internal(exc, BusinessCode.INTERNAL_ERROR)


def log_classified_error(
    error: ClassifiedError, context: ErrorContext | None = None
) -> None:
    """Log a classified error once, at the boundary that produced the response.

    Internal errors are logged at ERROR with the cause's traceback. Rejected
    credentials and forbidden actions are logged at WARNING; the remaining
    kinds are expected caller mistakes and are logged at INFO.

    Args:
        error: The classified error.
        context: Request details to attach (sanitized before logging).
            The authenticated caller, if any, is attached as ``subject_id``.
    """
    cause = error.internal_cause
    log_context: ErrorContext = {
        "error_kind": error.kind.value,
        "business_code": int(error.business_code),
        "status_code": error.transport_status,
        "severity": error.severity.value,
    }
    identity = RequestContext.get_identity()
    if identity is not None:
        log_context["subject_id"] = identity.subject_id
    if cause is not None:
        log_context.update(
            sanitize_error_context(cause, {**error.context, **(context or {})})
        )
        if isinstance(cause, RuaError):
            log_context["fingerprint"] = cause.fingerprint

    bound = logger.bind(**log_context)
    if error.kind is ErrorKind.INTERNAL:
        bound.opt(exception=cause).error(
            "Unhandled failure classified as internal: {}",
            type(cause).__name__ if cause is not None else "unknown",
        )
    elif error.severity is Severity.HIGH:
        bound.warning("Request rejected: {}", error.public_message)
    else:
        bound.info("Request failed: {}", error.public_message)
