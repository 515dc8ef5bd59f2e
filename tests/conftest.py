"""Root conftest.py for the Rua test suite.

This file contains project-wide fixtures and pytest configuration.
"""

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from rua.core.config import get_settings
from rua.core.context import RequestContext
from rua.core.error_context import _get_sensitive_fields
from rua.core.observability import get_tracer

TESTS_ROOT = Path(__file__).parent
SUITE_JWT_SECRET = "suite-wide-test-secret-of-at-least-32-bytes"


def pytest_configure() -> None:
    """Provide a signing secret before any test module is imported.

    ``rua.api.main`` builds the application at import time, and the
    application refuses to start without ``JWT_CONFIG__SECRET``.
    """
    os.environ.setdefault("JWT_CONFIG__SECRET", SUITE_JWT_SECRET)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark every test by the directory it lives in."""
    for item in items:
        relative = Path(item.fspath).relative_to(TESTS_ROOT)
        if relative.parts[0] == "unit":
            item.add_marker(pytest.mark.unit)
        elif relative.parts[0] == "integration":
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def clean_caches() -> Generator[None]:
    """Clear cached settings and derived lookups around each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    get_tracer.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    get_tracer.cache_clear()


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    """Ensure no correlation id or identity leaks between tests."""
    RequestContext.clear()
    yield
    RequestContext.clear()
