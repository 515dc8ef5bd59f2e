"""Unit tests for failure classification and error logging."""

from datetime import UTC, datetime

import jwt
import pydantic
import pytest
from fastapi.exceptions import RequestValidationError
from pytest_mock import MockerFixture
from sqlalchemy.exc import IntegrityError, NoResultFound, OperationalError
from starlette.exceptions import HTTPException

from rua.core.constants import INTERNAL_ERROR_MESSAGE
from rua.core.context import RequestContext
from rua.core.error_classifier import (
    ClassifiedError,
    classify,
    field_errors_from_details,
    log_classified_error,
    summarize_field_errors,
)
from rua.core.exceptions import (
    BusinessCode,
    ConflictError,
    ErrorKind,
    FieldError,
    InternalError,
    NotFoundError,
    Severity,
    UnauthorizedError,
    ValidationError,
)
from rua.core.security import AuthenticatedIdentity


class _Signup(pydantic.BaseModel):
    username: str
    email: str


def _pydantic_error() -> pydantic.ValidationError:
    try:
        _Signup.model_validate({"username": "ada"})
    except pydantic.ValidationError as e:
        return e
    msg = "validation unexpectedly passed"
    raise AssertionError(msg)


@pytest.mark.unit
class TestClassify:
    """The closed exception mapping."""

    def test_application_error_keeps_kind_and_message(self) -> None:
        """Application errors classify as themselves."""
        error = NotFoundError("User not found", BusinessCode.RESOURCE_NOT_FOUND)

        result = classify(error)

        assert result.kind is ErrorKind.NOT_FOUND
        assert result.business_code is BusinessCode.RESOURCE_NOT_FOUND
        assert result.public_message == "User not found"
        assert result.transport_status == 404

    def test_internal_application_error_is_masked(self) -> None:
        """Internal detail never becomes the public message."""
        cause = RuntimeError("pool exhausted at 10.0.0.3")
        error = InternalError("connection failed", cause=cause)

        result = classify(error)

        assert result.public_message == INTERNAL_ERROR_MESSAGE
        assert result.internal_cause is cause

    def test_validation_error_keeps_field_errors(self) -> None:
        """Field errors travel with the classification."""
        error = ValidationError(
            "Invalid request body: email: Field required",
            field_errors=[FieldError("email", "Field required")],
        )

        result = classify(error)

        assert result.field_errors == (FieldError("email", "Field required"),)

    @pytest.mark.parametrize(
        ("exc", "kind", "code"),
        [
            (NoResultFound(), ErrorKind.NOT_FOUND, BusinessCode.RESOURCE_NOT_FOUND),
            (
                IntegrityError("INSERT", {}, Exception("duplicate key")),
                ErrorKind.CONFLICT,
                BusinessCode.DUPLICATE_RESOURCE,
            ),
            (
                OperationalError("SELECT 1", {}, Exception("connection refused")),
                ErrorKind.INTERNAL,
                BusinessCode.DATABASE_ERROR,
            ),
            (
                jwt.ExpiredSignatureError("expired"),
                ErrorKind.UNAUTHORIZED,
                BusinessCode.TOKEN_EXPIRED,
            ),
            (
                jwt.InvalidSignatureError("bad"),
                ErrorKind.UNAUTHORIZED,
                BusinessCode.TOKEN_INVALID,
            ),
            (KeyError("x"), ErrorKind.INTERNAL, BusinessCode.INTERNAL_ERROR),
            (ZeroDivisionError(), ErrorKind.INTERNAL, BusinessCode.INTERNAL_ERROR),
        ],
    )
    def test_library_exceptions(
        self, exc: Exception, kind: ErrorKind, code: BusinessCode
    ) -> None:
        """Library exceptions map to a fixed kind and code."""
        result = classify(exc)

        assert result.kind is kind
        assert result.business_code is code
        assert result.internal_cause is exc

    def test_database_error_message_is_generic(self) -> None:
        """Driver messages never reach the caller."""
        exc = OperationalError("SELECT 1", {}, Exception("password auth failed"))

        assert classify(exc).public_message == INTERNAL_ERROR_MESSAGE

    def test_pydantic_error(self) -> None:
        """Model validation failures name every failing field."""
        result = classify(_pydantic_error())

        assert result.kind is ErrorKind.VALIDATION
        assert result.business_code is BusinessCode.VALIDATION_ERROR
        assert result.public_message == "Validation failed: email: Field required"
        assert result.field_errors == (FieldError("email", "Field required"),)

    def test_request_validation_error(self) -> None:
        """Framework validation errors drop the location prefix."""
        exc = RequestValidationError(
            [{"loc": ("query", "page"), "msg": "Input should be a valid integer"}]
        )

        result = classify(exc)

        assert result.public_message == (
            "Invalid request: page: Input should be a valid integer"
        )

    @pytest.mark.parametrize(
        ("status", "kind", "code"),
        [
            (400, ErrorKind.VALIDATION, BusinessCode.BAD_REQUEST),
            (401, ErrorKind.UNAUTHORIZED, BusinessCode.UNAUTHORIZED),
            (403, ErrorKind.FORBIDDEN, BusinessCode.FORBIDDEN),
            (404, ErrorKind.NOT_FOUND, BusinessCode.NOT_FOUND),
            (405, ErrorKind.VALIDATION, BusinessCode.BAD_REQUEST),
            (409, ErrorKind.CONFLICT, BusinessCode.CONFLICT),
            (503, ErrorKind.INTERNAL, BusinessCode.INTERNAL_ERROR),
        ],
    )
    def test_http_exceptions(
        self, status: int, kind: ErrorKind, code: BusinessCode
    ) -> None:
        """Framework HTTP errors are classified by status code."""
        result = classify(HTTPException(status_code=status, detail="Not Found"))

        assert result.kind is kind
        assert result.business_code is code

    def test_http_server_error_is_masked(self) -> None:
        """5xx details are internal."""
        result = classify(HTTPException(status_code=502, detail="upstream down"))

        assert result.public_message == INTERNAL_ERROR_MESSAGE

    def test_internal_cause_not_in_repr(self) -> None:
        """The cause never leaks through the dataclass repr."""
        result = classify(RuntimeError("secret detail"))

        assert "secret detail" not in repr(result)


@pytest.mark.unit
class TestFieldErrorHelpers:
    """Conversion and summary of pydantic error details."""

    def test_nested_location(self) -> None:
        """Nested locations become dotted names."""
        errors = field_errors_from_details(
            [
                {"loc": ("body", "profile", "bio"), "msg": "too long"},
                {"loc": ("items", 0), "msg": "bad"},
                {"loc": (), "msg": "whole body"},
            ]
        )

        assert errors == [
            FieldError("profile.bio", "too long"),
            FieldError("items.0", "bad"),
            FieldError(None, "whole body"),
        ]

    def test_summary_names_every_field(self) -> None:
        """The summary lists each failure in order."""
        summary = summarize_field_errors(
            "Invalid request body",
            [FieldError("email", "Field required"), FieldError(None, "bad shape")],
        )

        assert summary == "Invalid request body: email: Field required; bad shape"

    def test_summary_without_errors(self) -> None:
        """With nothing to list, only the prefix remains."""
        assert summarize_field_errors("Invalid", []) == "Invalid"


@pytest.mark.unit
class TestLogClassifiedError:
    """Log level selection."""

    @pytest.mark.parametrize(
        ("error", "method"),
        [
            (NotFoundError("gone"), "info"),
            (ConflictError("dup"), "info"),
            (UnauthorizedError("no"), "warning"),
        ],
    )
    def test_expected_errors(
        self, mocker: MockerFixture, error: Exception, method: str
    ) -> None:
        """Caller mistakes log at INFO, rejected credentials at WARNING."""
        mock_logger = mocker.patch("rua.core.error_classifier.logger")
        bound = mock_logger.bind.return_value

        log_classified_error(classify(error), {"path": "/api/users/me"})

        getattr(bound, method).assert_called_once()
        context = mock_logger.bind.call_args.kwargs
        assert context["path"] == "/api/users/me"
        assert "fingerprint" in context

    def test_internal_error_logs_traceback(self, mocker: MockerFixture) -> None:
        """Internal failures log at ERROR with the cause attached."""
        mock_logger = mocker.patch("rua.core.error_classifier.logger")
        bound = mock_logger.bind.return_value
        cause = RuntimeError("boom")

        log_classified_error(classify(cause))

        bound.opt.assert_called_once_with(exception=cause)
        bound.opt.return_value.error.assert_called_once()
        assert mock_logger.bind.call_args.kwargs["severity"] == "CRITICAL"

    def test_context_is_sanitized(self, mocker: MockerFixture) -> None:
        """Sensitive request details are redacted before logging."""
        mock_logger = mocker.patch("rua.core.error_classifier.logger")

        log_classified_error(
            ClassifiedError(
                kind=ErrorKind.VALIDATION,
                business_code=BusinessCode.VALIDATION_ERROR,
                public_message="bad",
                internal_cause=ValueError("bad"),
                context={"password": "hunter22"},
            )
        )

        assert mock_logger.bind.call_args.kwargs["password"] == "[REDACTED]"

    def test_authenticated_caller_is_attached(self, mocker: MockerFixture) -> None:
        """Failures on protected routes name the caller."""
        mock_logger = mocker.patch("rua.core.error_classifier.logger")
        RequestContext.set_identity(
            AuthenticatedIdentity(
                subject_id="42",
                issued_at=None,
                expires_at=datetime(2030, 1, 1, tzinfo=UTC),
            )
        )

        log_classified_error(classify(NotFoundError("User not found")))

        assert mock_logger.bind.call_args.kwargs["subject_id"] == "42"

    def test_anonymous_caller_has_no_subject(self, mocker: MockerFixture) -> None:
        """Public routes log no subject."""
        mock_logger = mocker.patch("rua.core.error_classifier.logger")

        log_classified_error(classify(NotFoundError("User not found")))

        assert "subject_id" not in mock_logger.bind.call_args.kwargs

    def test_severity_by_kind(self) -> None:
        """Severity is derived from the kind."""
        assert classify(UnauthorizedError("x")).severity is Severity.HIGH
        assert classify(KeyError("x")).severity is Severity.CRITICAL
