"""Stateless bearer token authentication.

A request moves through ``NoCredential -> Extracted -> Verified`` or ends in
``Rejected``. Extraction reads the single ``Authorization`` header; verification
checks the HMAC signature and the mandatory ``sub``/``exp`` claims against a
server-held secret. There is no session store and no revocation list: the
result depends only on the token, the current time and the secret.
"""

import re
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final

import jwt
from loguru import logger

from rua.core.config import JwtConfig
from rua.core.exceptions import BusinessCode, UnauthorizedError

BEARER_SCHEME: Final[str] = "bearer"
MANDATORY_CLAIMS: Final[tuple[str, ...]] = ("sub", "exp")

_LIFETIME_PATTERN: Final = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$", re.IGNORECASE)
_LIFETIME_UNITS: Final[dict[str, int]] = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}

type Clock = Callable[[], float]


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """The verified caller of the current request."""

    subject_id: str
    issued_at: datetime | None
    expires_at: datetime
    claims: Mapping[str, Any] = field(default_factory=dict)


def parse_expires_in(expires_in: str) -> int:
    """Convert a lifetime string such as ``"7d"`` into seconds.

    Args:
        expires_in: Number followed by one of s, m, h, d, w.

    Returns:
        int: Lifetime in seconds.

    Raises:
        ValueError: If the string is not a valid lifetime.
    """
    match = _LIFETIME_PATTERN.match(expires_in)
    if not match:
        msg = f"Invalid token lifetime: {expires_in!r}"
        raise ValueError(msg)

    amount, unit = match.groups()
    return int(amount) * _LIFETIME_UNITS[unit.lower()]


def extract_bearer_token(authorization_values: Sequence[str]) -> str:
    """Pull the token out of the request's Authorization header values.

    Args:
        authorization_values: Every Authorization header value on the request.

    Returns:
        str: The raw token.

    Raises:
        UnauthorizedError: If there is not exactly one well-formed bearer value.
    """
    if not authorization_values:
        raise UnauthorizedError("Missing bearer credential")

    if len(authorization_values) > 1:
        raise UnauthorizedError(
            "Multiple Authorization headers are not allowed",
            context={"header_count": len(authorization_values)},
        )

    expected_parts = 2
    parts = authorization_values[0].split()
    if len(parts) != expected_parts or parts[0].lower() != BEARER_SCHEME:
        raise UnauthorizedError("Authorization header must be 'Bearer <token>'")

    return parts[1]


class TokenAuthenticator:
    """Verify and issue HMAC-signed bearer tokens.

    The secret is read once at construction and never mutated, so one
    instance can be shared by all concurrent requests.

    Args:
        secret: Shared signing secret.
        expires_in: Lifetime of issued tokens (e.g. ``"7d"``).
        algorithm: HMAC algorithm name.
        clock: Returns the current time in epoch seconds.

    Raises:
        ValueError: If the secret is empty or the lifetime is invalid.
    """

    def __init__(
        self,
        secret: str,
        *,
        expires_in: str = "7d",
        algorithm: str = "HS256",
        clock: Clock = time.time,
    ) -> None:
        if not secret:
            msg = "Token secret must not be empty"
            raise ValueError(msg)

        self._secret = secret
        self.algorithm = algorithm
        self.lifetime_seconds = parse_expires_in(expires_in)
        self._clock = clock

    @classmethod
    def from_config(cls, config: JwtConfig) -> "TokenAuthenticator":
        """Build an authenticator from the token configuration section."""
        return cls(
            config.secret,
            expires_in=config.expires_in,
            algorithm=config.algorithm,
        )

    def issue_token(
        self,
        subject_id: str,
        *,
        now: float | None = None,
        extra_claims: Mapping[str, Any] | None = None,
    ) -> str:
        """Sign a new token for a subject.

        Args:
            subject_id: Value of the ``sub`` claim.
            now: Issue time in epoch seconds (defaults to the clock).
            extra_claims: Additional claims to embed.

        Returns:
            str: The encoded token.
        """
        issued_at = int(self._clock() if now is None else now)
        payload: dict[str, Any] = dict(extra_claims or {})
        payload.update(
            {
                "sub": subject_id,
                "iat": issued_at,
                "exp": issued_at + self.lifetime_seconds,
            }
        )
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str, *, now: float | None = None) -> AuthenticatedIdentity:
        """Verify a token and decode the caller identity.

        Expiry is checked against ``now`` with no leeway: a token whose
        ``exp`` equals the current second is already expired.

        Args:
            token: The raw bearer token.
            now: Current time in epoch seconds (defaults to the clock).

        Returns:
            AuthenticatedIdentity: The verified identity.

        Raises:
            UnauthorizedError: If the token is malformed, tampered, expired or
                lacks a mandatory claim.
        """
        current = self._clock() if now is None else now

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={
                    "require": list(MANDATORY_CLAIMS),
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.MissingRequiredClaimError as e:
            raise UnauthorizedError(
                "Token is missing a required claim",
                BusinessCode.TOKEN_INVALID,
                context={"claim": e.claim},
                cause=e,
            ) from e
        except jwt.InvalidTokenError as e:
            raise UnauthorizedError(
                "Token is invalid",
                BusinessCode.TOKEN_INVALID,
                cause=e,
            ) from e

        subject = claims["sub"]
        expires = claims["exp"]
        if not isinstance(subject, str) or not subject:
            raise UnauthorizedError("Token subject is invalid", BusinessCode.TOKEN_INVALID)
        if isinstance(expires, bool) or not isinstance(expires, int | float):
            raise UnauthorizedError("Token expiry is invalid", BusinessCode.TOKEN_INVALID)

        if current >= expires:
            raise UnauthorizedError(
                "Token has expired",
                BusinessCode.TOKEN_EXPIRED,
                context={"expired_at": expires},
            )

        issued = claims.get("iat")
        identity = AuthenticatedIdentity(
            subject_id=subject,
            issued_at=(
                datetime.fromtimestamp(issued, UTC)
                if isinstance(issued, int | float) and not isinstance(issued, bool)
                else None
            ),
            expires_at=datetime.fromtimestamp(expires, UTC),
            claims=claims,
        )
        logger.debug("Bearer token verified", subject_id=identity.subject_id)
        return identity

    def authenticate(
        self, authorization_values: Sequence[str], *, now: float | None = None
    ) -> AuthenticatedIdentity:
        """Extract and verify the credential of one request.

        Args:
            authorization_values: Every Authorization header value on the request.
            now: Current time in epoch seconds (defaults to the clock).

        Returns:
            AuthenticatedIdentity: The verified identity.
        """
        token = extract_bearer_token(authorization_values)
        return self.verify(token, now=now)
