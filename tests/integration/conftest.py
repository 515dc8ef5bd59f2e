"""Shared fixtures for integration tests.

The application is assembled by ``create_app`` exactly as in production,
with its full middleware stack, exception handlers and routes. Only the
database layer is replaced: ``get_async_session`` is patched in each route
module to yield a mocked session, and ``UserRepository`` to return a mocked
repository, so the tests run without PostgreSQL.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture, MockType

from rua.api.main import create_app
from rua.core.config import Settings
from rua.core.security import TokenAuthenticator
from rua.infrastructure.database.models import User

TEST_SECRET = "integration-test-secret-that-is-long-enough"
ROUTE_MODULES = ("rua.api.routes.users", "rua.api.routes.auth")

type TokenFactory = Callable[..., str]


def make_user(user_id: int = 1, username: str = "ada", **fields: Any) -> User:
    """Build a persisted-looking user."""
    now = datetime(2025, 1, 1, tzinfo=UTC)
    values: dict[str, Any] = {
        "id": user_id,
        "username": username,
        "email": f"{username}@example.com",
        "password_hash": "$argon2id$v=19$m=19456,t=2,p=1$c2FsdA$aGFzaA",
        "created_at": now,
        "updated_at": now,
    }
    values.update(fields)
    return User(**values)


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings shared by the app under test and the token factory."""
    monkeypatch.setenv("JWT_CONFIG__SECRET", TEST_SECRET)
    monkeypatch.setenv("JWT_CONFIG__EXPIRES_IN", "1h")
    monkeypatch.setenv("GIT_VERSION", "v1.4.0-3-gabc1234")
    monkeypatch.setenv("OBSERVABILITY_CONFIG__ENABLE_TRACING", "false")
    return Settings()


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    """A freshly assembled application."""
    return create_app(settings)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """An HTTP client talking to the app in-process."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def token(settings: Settings) -> TokenFactory:
    """Issue tokens signed with the app's secret."""
    authenticator = TokenAuthenticator.from_config(settings.jwt_config)

    def issue(subject_id: str = "1", **kwargs: Any) -> str:
        return authenticator.issue_token(subject_id, **kwargs)

    return issue


@pytest.fixture
def session(mocker: MockerFixture) -> MockType:
    """The session every route receives, with the commit/rollback lifecycle."""
    session = mocker.AsyncMock()

    @asynccontextmanager
    async def fake_session() -> AsyncGenerator[MockType]:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    for module in ROUTE_MODULES:
        mocker.patch(f"{module}.get_async_session", fake_session)
    return session


@pytest.fixture
def repository(mocker: MockerFixture, session: MockType) -> MockType:
    """The UserRepository double used by every route."""
    repository = mocker.AsyncMock()
    repository.get_by_username.return_value = None
    repository.find_one_by.return_value = None
    for module in ROUTE_MODULES:
        mocker.patch(f"{module}.UserRepository", return_value=repository)
    return repository
