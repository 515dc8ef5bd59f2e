"""Repositories over async SQLAlchemy sessions.

``BaseRepository`` implements the queries every model needs; model-specific
repositories add their own lookups on top. Repositories flush but never
commit: the session owner decides the transaction boundary.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from loguru import logger
from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rua.infrastructure.database.base import BaseModel
from rua.infrastructure.database.models import User


class BaseRepository[T: BaseModel]:
    """Generic create/read/update queries for one model.

    Args:
        session: The async session to run queries in.
        model_class: The model this repository manages.

    Example:
        class UserRepository(BaseRepository[User]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, User)
    """

    def __init__(self, session: AsyncSession, model_class: type[T]) -> None:
        self.session = session
        self.model_class = model_class

    @property
    def _name(self) -> str:
        return self.model_class.__name__

    def _conditions(self, filters: Mapping[str, Any]) -> list[ColumnElement[bool]]:
        """Turn ``field=value`` filters into equality conditions.

        Raises:
            ValueError: If a filter names a column the model does not have.
        """
        conditions = []
        for name, value in filters.items():
            column = getattr(self.model_class, name, None)
            if column is None:
                msg = f"{self._name} has no field {name!r}"
                raise ValueError(msg)
            conditions.append(column == value)
        return conditions

    async def get_by_id(self, entity_id: int) -> T | None:
        """Fetch one record by primary key, or None."""
        stmt = select(self.model_class).where(self.model_class.id == entity_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_page(
        self, offset: int, limit: int, *, newest_first: bool = False
    ) -> Sequence[T]:
        """Fetch a window of records in a stable order.

        Args:
            offset: Records to skip.
            limit: Maximum records to return.
            newest_first: Order by creation time descending instead of by id.

        Returns:
            Sequence[T]: The records.
        """
        order = (
            (self.model_class.created_at.desc(), self.model_class.id.desc())
            if newest_first
            else (self.model_class.id,)
        )
        stmt = select(self.model_class).order_by(*order).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count(self) -> int:
        """Count every record of the model."""
        stmt = select(func.count()).select_from(self.model_class)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def create(self, obj: T) -> T:
        """Insert a record and load its server-generated columns.

        Raises:
            IntegrityError: If a unique constraint is violated.
        """
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        logger.info("Created {} with ID {}", self._name, obj.id)
        return obj

    async def update(self, entity_id: int, data: Mapping[str, object]) -> T | None:
        """Apply a partial update.

        Args:
            entity_id: Primary key of the record.
            data: Field values to set.

        Returns:
            T | None: The updated record, or None if it does not exist.

        Raises:
            ValueError: If ``data`` names a column the model does not have.
        """
        instance = await self.get_by_id(entity_id)
        if instance is None:
            return None

        for name, value in data.items():
            if not hasattr(self.model_class, name):
                msg = f"{self._name} has no field {name!r}"
                raise ValueError(msg)
            setattr(instance, name, value)

        await self.session.flush()
        await self.session.refresh(instance)
        logger.info(
            "Updated {} with ID {}", self._name, entity_id, fields=sorted(data)
        )
        return instance

    async def find_one_by(self, **filters: object) -> T | None:
        """Fetch the first record matching every filter, or None."""
        stmt = (
            select(self.model_class)
            .where(*self._conditions(filters))
            .order_by(self.model_class.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class UserRepository(BaseRepository[User]):
    """Queries over registered users."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, User)

    async def get_by_username(self, username: str) -> User | None:
        """Look a user up by exact username."""
        return await self.find_one_by(username=username)

    async def list_newest(
        self, page: int, page_size: int
    ) -> tuple[Sequence[User], int]:
        """Fetch one page of users, most recently created first.

        Args:
            page: One-based page number.
            page_size: Users per page.

        Returns:
            tuple[Sequence[User], int]: The page and the total user count.
        """
        users = await self.list_page(
            (page - 1) * page_size, page_size, newest_first=True
        )
        return users, await self.count()
