"""User and authentication payloads."""

from datetime import datetime
from typing import Self

from pydantic import EmailStr, Field, field_validator, model_validator

from rua.api.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from rua.api.schemas.envelope import ApiModel
from rua.infrastructure.database.models import (
    AVATAR_URL_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
)

USERNAME_MIN_LENGTH = 3
PASSWORD_MIN_LENGTH = 8
BIO_MAX_LENGTH = 500


class CreateUserRequest(ApiModel):
    """Body of a sign-up request."""

    username: str = Field(
        ...,
        min_length=USERNAME_MIN_LENGTH,
        max_length=USERNAME_MAX_LENGTH,
        examples=["ada"],
    )
    email: EmailStr = Field(..., examples=["ada@example.com"])
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)


class LoginRequest(ApiModel):
    """Body of a token request."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UpdateProfileRequest(ApiModel):
    """Partial update of the caller's own profile."""

    email: EmailStr | None = None
    avatar_url: str | None = Field(default=None, max_length=AVATAR_URL_MAX_LENGTH)
    bio: str | None = Field(default=None, max_length=BIO_MAX_LENGTH)

    @field_validator("email", mode="after")
    @classmethod
    def email_not_null(cls, v: str | None) -> str | None:
        """Refuse an explicit null; every user keeps an email address."""
        _ = cls
        if v is None:
            msg = "Email cannot be null"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def require_one_field(self) -> Self:
        """Reject updates that change nothing."""
        if not self.model_fields_set:
            msg = "At least one of email, avatarUrl or bio must be provided"
            raise ValueError(msg)
        return self


class ListUsersQuery(ApiModel):
    """Query string of the user listing."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


class UserResponse(ApiModel):
    """A user as exposed by the API, without the password hash."""

    id: int
    username: str
    email: str
    avatar_url: str | None = None
    bio: str | None = None
    last_login: datetime | None = None
    created_at: datetime
    updated_at: datetime


class TokenResponse(ApiModel):
    """A freshly issued bearer token."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds")
