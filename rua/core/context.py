"""Request context: correlation id, authenticated caller and build version."""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rua.core.security import AuthenticatedIdentity

# Context variables for storing request-scoped values across async boundaries
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_identity_var: ContextVar[AuthenticatedIdentity | None] = ContextVar(
    "identity", default=None
)
_build_version_var: ContextVar[str | None] = ContextVar("build_version", default=None)


class RequestContext:
    """Manages request context using contextvars for async-safe storage.

    Each request runs in its own task with its own copy of the context, so
    values stored here are never visible to concurrent requests.
    """

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        """Set the correlation ID for the current context.

        Args:
            correlation_id: The correlation ID to store in the context.
        """
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Get the correlation ID from the current context.

        Returns:
            str | None: The correlation ID if set, None otherwise.
        """
        return _correlation_id_var.get()

    @staticmethod
    def set_identity(identity: AuthenticatedIdentity) -> None:
        """Store the caller identity produced by token verification.

        Args:
            identity: The verified identity of the current caller.
        """
        _identity_var.set(identity)

    @staticmethod
    def get_identity() -> AuthenticatedIdentity | None:
        """Get the authenticated caller for the current request.

        Returns:
            AuthenticatedIdentity | None: The identity, or None on public routes.
        """
        return _identity_var.get()

    @staticmethod
    def set_build_version(build_version: str) -> None:
        """Set the build version of the application serving the request.

        Args:
            build_version: Version stamped into every envelope.
        """
        _build_version_var.set(build_version)

    @staticmethod
    def get_build_version() -> str | None:
        """Get the build version set for the current request, if any."""
        return _build_version_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables."""
        _correlation_id_var.set(None)
        _identity_var.set(None)
        _build_version_var.set(None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracking.

    Returns a UUID4 string; generation needs no coordination between
    processes and cannot fail.

    Returns:
        str: A string representation of a UUID4.

    Examples:
        >>> correlation_id = generate_correlation_id()
        >>> len(correlation_id)
        36
    """
    return str(uuid.uuid4())
