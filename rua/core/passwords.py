"""Argon2id password hashing.

Parameters follow the OWASP minimum for Argon2id: 19 MiB of memory,
2 iterations, 1 degree of parallelism. Every hash gets a fresh random salt,
and the parameters travel inside the encoded hash, so raising them later
does not invalidate existing hashes.
"""

from functools import cache
from typing import Final

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from rua.core.exceptions import BusinessCode, InternalError

MEMORY_COST_KIB: Final[int] = 19456
TIME_COST: Final[int] = 2
PARALLELISM: Final[int] = 1

_hasher = PasswordHasher(
    time_cost=TIME_COST,
    memory_cost=MEMORY_COST_KIB,
    parallelism=PARALLELISM,
)


def hash_password(password: str) -> str:
    """Hash a plaintext password.

    Args:
        password: The plaintext password.

    Returns:
        str: The encoded Argon2id hash, including salt and parameters.
    """
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against a stored hash.

    Args:
        password: The plaintext password supplied by the caller.
        password_hash: The stored encoded hash.

    Returns:
        bool: True if the password matches.

    Raises:
        InternalError: If the stored hash cannot be parsed.
    """
    try:
        return _hasher.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError) as e:
        raise InternalError(
            "Stored password hash is malformed",
            BusinessCode.INTERNAL_ERROR,
            cause=e,
        ) from e


@cache
def _dummy_hash() -> str:
    return _hasher.hash("rua-dummy-password")


def reject_password(password: str) -> bool:
    """Spend one verification on a caller with no stored hash.

    Unknown usernames then cost as much as wrong passwords, so response
    timing does not reveal which usernames exist.

    Args:
        password: The plaintext password supplied by the caller.

    Returns:
        bool: Always False.
    """
    verify_password(password, _dummy_hash())
    return False
