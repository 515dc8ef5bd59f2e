"""Unit tests for the repositories, against a mocked async session."""

from datetime import UTC, datetime

import pytest
from pytest_mock import MockerFixture, MockType
from sqlalchemy.ext.asyncio import AsyncSession

from rua.infrastructure.database.models import User
from rua.infrastructure.database.repository import UserRepository


def _user(user_id: int = 1, username: str = "ada") -> User:
    now = datetime(2025, 1, 1, tzinfo=UTC)
    return User(
        id=user_id,
        username=username,
        email=f"{username}@example.com",
        password_hash="$argon2id$...",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def session(mocker: MockerFixture) -> MockType:
    """An AsyncSession double."""
    return mocker.AsyncMock(spec=AsyncSession)


def _returns(
    mocker: MockerFixture,
    session: MockType,
    *,
    one: User | None = None,
    many: list[User] | None = None,
    scalar: int | None = None,
) -> None:
    result = mocker.Mock()
    result.scalar_one_or_none.return_value = one
    result.scalars.return_value.all.return_value = many or []
    result.scalar.return_value = scalar
    session.execute.return_value = result


@pytest.mark.unit
class TestUserRepository:
    """Queries over users."""

    async def test_get_by_id(self, mocker: MockerFixture, session: MockType) -> None:
        """A present record is returned."""
        user = _user()
        _returns(mocker, session, one=user)

        assert await UserRepository(session).get_by_id(1) is user
        session.execute.assert_awaited_once()

    async def test_get_by_username_missing(
        self, mocker: MockerFixture, session: MockType
    ) -> None:
        """A missing user is None, not an error."""
        _returns(mocker, session, one=None)

        assert await UserRepository(session).get_by_username("nobody") is None

    async def test_find_one_by_unknown_field(self, session: MockType) -> None:
        """Filters must name real columns."""
        with pytest.raises(ValueError, match="has no field 'nickname'"):
            await UserRepository(session).find_one_by(nickname="x")

        session.execute.assert_not_awaited()

    async def test_create_flushes_and_refreshes(self, session: MockType) -> None:
        """Created rows get their server-generated columns."""
        user = _user()

        result = await UserRepository(session).create(user)

        assert result is user
        session.add.assert_called_once_with(user)
        session.flush.assert_awaited_once()
        session.refresh.assert_awaited_once_with(user)
        session.commit.assert_not_awaited()

    async def test_update(self, mocker: MockerFixture, session: MockType) -> None:
        """Partial updates touch only the given fields."""
        user = _user()
        _returns(mocker, session, one=user)

        result = await UserRepository(session).update(1, {"bio": "Hello"})

        assert result is user
        assert user.bio == "Hello"
        assert user.username == "ada"
        session.flush.assert_awaited_once()

    async def test_update_missing(
        self, mocker: MockerFixture, session: MockType
    ) -> None:
        """Updating a missing record returns None."""
        _returns(mocker, session, one=None)

        assert await UserRepository(session).update(9, {"bio": "x"}) is None
        session.flush.assert_not_awaited()

    async def test_update_unknown_field(
        self, mocker: MockerFixture, session: MockType
    ) -> None:
        """Unknown fields are rejected."""
        _returns(mocker, session, one=_user())

        with pytest.raises(ValueError, match="has no field 'nickname'"):
            await UserRepository(session).update(1, {"nickname": "x"})

    async def test_list_newest(self, mocker: MockerFixture, session: MockType) -> None:
        """A page and the total count are returned together."""
        users = [_user(2, "bob"), _user(1, "ada")]
        page_result = mocker.Mock()
        page_result.scalars.return_value.all.return_value = users
        count_result = mocker.Mock()
        count_result.scalar.return_value = 7
        session.execute.side_effect = [page_result, count_result]

        page, total = await UserRepository(session).list_newest(page=2, page_size=2)

        assert list(page) == users
        assert total == 7
        statement = session.execute.await_args_list[0].args[0]
        compiled = str(statement.compile(compile_kwargs={"literal_binds": True}))
        assert "ORDER BY users.created_at DESC, users.id DESC" in compiled
        assert "LIMIT 2" in compiled
        assert "OFFSET 2" in compiled

    async def test_count_empty(self, mocker: MockerFixture, session: MockType) -> None:
        """An empty table counts zero."""
        _returns(mocker, session, scalar=None)

        assert await UserRepository(session).count() == 0

    def test_repr_hides_hash(self) -> None:
        """The password hash never appears in logs."""
        assert "argon2" not in repr(_user())
