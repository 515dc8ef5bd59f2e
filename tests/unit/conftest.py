"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator

import pytest

from rua.core.security import TokenAuthenticator

TEST_SECRET = "unit-test-secret-that-is-long-enough-for-hs256"
FIXED_NOW = 1_700_000_000


@pytest.fixture(autouse=True)
def clean_env(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[pytest.MonkeyPatch]:
    """Backup and restore environment variables to prevent test interference.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    original_env = os.environ.copy()

    env_prefixes = [
        "APP_",
        "API_",
        "GIT_VERSION",
        "ENVIRONMENT",
        "DEBUG",
        "LOG_CONFIG__",
        "OBSERVABILITY_CONFIG__",
        "DATABASE_CONFIG__",
        "JWT_CONFIG__",
        "K_SERVICE",
        "AWS_EXECUTION_ENV",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("JWT_CONFIG__SECRET", TEST_SECRET)

    yield monkeypatch

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def authenticator() -> TokenAuthenticator:
    """Provide an authenticator whose clock is frozen at FIXED_NOW."""
    return TokenAuthenticator(TEST_SECRET, expires_in="1h", clock=lambda: FIXED_NOW)
