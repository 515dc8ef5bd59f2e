"""Error taxonomy, business codes and the exception hierarchy.

This module defines the closed set of failure kinds the API can report, the
published business codes that clients branch on, and the exceptions that
components raise to signal those failures.

Key components:
- **ErrorKind enum**: The closed failure taxonomy
- **BusinessCode enum**: Stable application-level status codes
- **BUSINESS_CODE_RANGES**: Range table tying every code to its kind
- **RuaError**: Base exception carrying a public message, an internal
  cause and structured context
- **Specialized exceptions**: One subclass per failure kind

Business codes are published. A new code may be added inside its kind's
range, but existing values are never renumbered.
"""

import hashlib
import traceback
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import ClassVar

from fastapi import status

from rua.core.types import ErrorContext


class ErrorKind(Enum):
    """Closed set of failure categories."""

    VALIDATION = "VALIDATION"
    """Input could not be parsed or broke a field rule."""

    UNAUTHORIZED = "UNAUTHORIZED"
    """Credential missing, malformed, expired or not verifiable."""

    FORBIDDEN = "FORBIDDEN"
    """Caller is authenticated but not allowed to perform the action."""

    NOT_FOUND = "NOT_FOUND"
    """The requested record or route does not exist."""

    CONFLICT = "CONFLICT"
    """The request clashes with existing state (e.g. a duplicate key)."""

    INTERNAL = "INTERNAL"
    """Anything unexpected. Never described to the caller."""


class BusinessCode(IntEnum):
    """Published business status codes."""

    # Success (200xx-202xx)
    SUCCESS = 20000
    CREATED = 20100
    ACCEPTED = 20200

    # Validation (400xx)
    BAD_REQUEST = 40000
    VALIDATION_ERROR = 40001
    PARAM_ERROR = 40002

    # Authentication (401xx)
    UNAUTHORIZED = 40100
    TOKEN_EXPIRED = 40101
    TOKEN_INVALID = 40102

    # Authorization (403xx)
    FORBIDDEN = 40300
    ACCESS_DENIED = 40301

    # Resources (404xx)
    NOT_FOUND = 40400
    RESOURCE_NOT_FOUND = 40401

    # State conflicts (409xx)
    CONFLICT = 40900
    DUPLICATE_RESOURCE = 40901

    # System (500xx)
    INTERNAL_ERROR = 50000
    SERVICE_UNAVAILABLE = 50001
    DATABASE_ERROR = 50002

    # Third parties (502xx)
    THIRD_PARTY_ERROR = 50200
    EXTERNAL_API_ERROR = 50201


# Inclusive lower bound, exclusive upper bound
SUCCESS_CODE_RANGE = range(20000, 30000)

BUSINESS_CODE_RANGES: dict[ErrorKind, range] = {
    ErrorKind.VALIDATION: range(40000, 40100),
    ErrorKind.UNAUTHORIZED: range(40100, 40200),
    ErrorKind.FORBIDDEN: range(40300, 40400),
    ErrorKind.NOT_FOUND: range(40400, 40500),
    ErrorKind.CONFLICT: range(40900, 41000),
    ErrorKind.INTERNAL: range(50000, 50202),
}

TRANSPORT_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def is_success_code(code: int) -> bool:
    """Check whether a business code belongs to the success range.

    Args:
        code: Business code to check.

    Returns:
        bool: True for success codes.
    """
    return code in SUCCESS_CODE_RANGE


def kind_for_code(code: int) -> ErrorKind | None:
    """Find the failure kind whose range contains a business code.

    Args:
        code: Business code to look up.

    Returns:
        ErrorKind | None: The owning kind, or None for success/unknown codes.
    """
    for kind, code_range in BUSINESS_CODE_RANGES.items():
        if code in code_range:
            return kind
    return None


class Severity(Enum):
    """Severity levels used to pick the log level and alerting."""

    LOW = "LOW"
    """Caller mistakes that are part of normal operation."""

    MEDIUM = "MEDIUM"
    """Conflicts with existing state; worth noticing, not alerting."""

    HIGH = "HIGH"
    """Security-relevant rejections such as failed authentication."""

    CRITICAL = "CRITICAL"
    """Unexpected failures that need immediate attention."""


@dataclass(frozen=True)
class FieldError:
    """A single failing field reported back to the caller."""

    field: str | None
    message: str


class RuaError(Exception):
    """Base exception class for all Rua application exceptions.

    ``message`` is the public text shown to the caller. Internal detail
    belongs in ``context`` or ``cause``, both of which are only logged.

    Args:
        message: Caller-facing error message
        business_code: Business code (defaults to the kind's generic code)
        context: Additional context information, logged only
        cause: The original exception that caused this error, logged only
        field_errors: Per-field failures for validation errors

    Raises:
        ValueError: If the business code is outside the kind's range.
    """

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL
    default_code: ClassVar[BusinessCode] = BusinessCode.INTERNAL_ERROR
    severity: ClassVar[Severity] = Severity.CRITICAL

    def __init__(
        self,
        message: str,
        business_code: BusinessCode | None = None,
        *,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        field_errors: list[FieldError] | None = None,
    ) -> None:
        code = business_code if business_code is not None else self.default_code
        if kind_for_code(code) is not self.kind:
            msg = f"Business code {int(code)} does not belong to {self.kind.value}"
            raise ValueError(msg)

        self.business_code = code
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.field_errors = list(field_errors or [])

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]
        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Returns:
            str: A hash of the error type, code and raising location
        """
        max_frames = 5
        fingerprint_data = f"{self.__class__.__name__}:{int(self.business_code)}"

        for frame in self.stack_trace[-max_frames:]:
            if "site-packages" not in frame and "rua/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether the error is part of normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    def __str__(self) -> str:
        """Return a string representation of the exception.

        Returns:
            str: The business code and message
        """
        return f"[{int(self.business_code)}] {self.message}"

    def __repr__(self) -> str:
        """Return a detailed representation of the exception.

        Returns:
            str: Class name, business code, message and severity
        """
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(business_code={int(self.business_code)}, "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(RuaError):
    """Raised when input cannot be parsed or breaks a field rule."""

    kind = ErrorKind.VALIDATION
    default_code = BusinessCode.VALIDATION_ERROR
    severity = Severity.LOW


class UnauthorizedError(RuaError):
    """Raised when the caller's credential is missing or cannot be verified."""

    kind = ErrorKind.UNAUTHORIZED
    default_code = BusinessCode.UNAUTHORIZED
    severity = Severity.HIGH


class ForbiddenError(RuaError):
    """Raised when an authenticated caller may not perform an action."""

    kind = ErrorKind.FORBIDDEN
    default_code = BusinessCode.FORBIDDEN
    severity = Severity.HIGH


class NotFoundError(RuaError):
    """Raised when a requested record does not exist."""

    kind = ErrorKind.NOT_FOUND
    default_code = BusinessCode.NOT_FOUND
    severity = Severity.LOW


class ConflictError(RuaError):
    """Raised when a request clashes with existing state."""

    kind = ErrorKind.CONFLICT
    default_code = BusinessCode.CONFLICT
    severity = Severity.MEDIUM


class InternalError(RuaError):
    """Raised for failures the caller cannot act on.

    The message is treated as internal detail; callers always receive the
    generic internal message instead.
    """
