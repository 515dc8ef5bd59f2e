"""ORM models."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rua.infrastructure.database.base import BaseModel

USERNAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 255
AVATAR_URL_MAX_LENGTH = 512


class User(BaseModel):
    """A registered account.

    ``password_hash`` holds an encoded Argon2id hash and is never exposed
    through the API.
    """

    __tablename__ = "users"
    # Listing pages newest first
    __table_args__ = (Index("ix_users_created_at", "created_at"),)

    username: Mapped[str] = mapped_column(
        String(USERNAME_MAX_LENGTH), unique=True, nullable=False
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH), unique=True, nullable=False
    )
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(AVATAR_URL_MAX_LENGTH))
    bio: Mapped[str | None] = mapped_column(Text)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        """Return the id and username, never the hash."""
        return f"<User(id={self.id}, username={self.username!r})>"
