"""User registration, listing and profile endpoints."""

from fastapi import APIRouter, status
from starlette.concurrency import run_in_threadpool

from rua.api.pipeline import HandlerContext, Page, RouteSpec, pipeline_endpoint
from rua.api.schemas.users import (
    CreateUserRequest,
    ListUsersQuery,
    UpdateProfileRequest,
    UserResponse,
)
from rua.core.exceptions import (
    BusinessCode,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from rua.core.passwords import hash_password
from rua.core.security import AuthenticatedIdentity
from rua.infrastructure.database.models import User
from rua.infrastructure.database.repository import UserRepository
from rua.infrastructure.database.session import get_async_session

router = APIRouter(prefix="/users", tags=["users"])

CREATE_USER = RouteSpec(
    body_model=CreateUserRequest,
    success_status=status.HTTP_201_CREATED,
    success_code=BusinessCode.CREATED,
    success_message="User created",
)
LIST_USERS = RouteSpec(requires_auth=True, query_model=ListUsersQuery)
CURRENT_USER = RouteSpec(requires_auth=True)
UPDATE_PROFILE = RouteSpec(
    requires_auth=True,
    body_model=UpdateProfileRequest,
    success_message="Profile updated",
)


def user_id_of(identity: AuthenticatedIdentity) -> int:
    """Read the user id out of a verified token subject.

    Raises:
        UnauthorizedError: If the subject is not a user id.
    """
    try:
        return int(identity.subject_id)
    except ValueError as e:
        raise UnauthorizedError(
            "Token subject is not a user",
            BusinessCode.TOKEN_INVALID,
            cause=e,
        ) from e


def _user_not_found(user_id: int) -> NotFoundError:
    return NotFoundError(
        "User not found",
        BusinessCode.RESOURCE_NOT_FOUND,
        context={"user_id": user_id},
    )


@router.post("/create", status_code=status.HTTP_201_CREATED)
@pipeline_endpoint(CREATE_USER)
async def create_user(ctx: HandlerContext) -> UserResponse:
    """Register a new user."""
    payload: CreateUserRequest = ctx.body
    password_hash = await run_in_threadpool(hash_password, payload.password)

    async with get_async_session() as session:
        repository = UserRepository(session)
        if await repository.get_by_username(payload.username) is not None:
            raise ConflictError(
                "Username is already taken", BusinessCode.DUPLICATE_RESOURCE
            )
        if await repository.find_one_by(email=payload.email) is not None:
            raise ConflictError(
                "Email is already registered", BusinessCode.DUPLICATE_RESOURCE
            )

        user = await repository.create(
            User(
                username=payload.username,
                email=payload.email,
                password_hash=password_hash,
            )
        )
        return UserResponse.model_validate(user)


@router.get("/list")
@pipeline_endpoint(LIST_USERS)
async def list_users(ctx: HandlerContext) -> Page[UserResponse]:
    """List users, most recently registered first."""
    query: ListUsersQuery = ctx.query
    async with get_async_session() as session:
        users, total = await UserRepository(session).list_newest(
            query.page, query.page_size
        )

    return Page(
        items=[UserResponse.model_validate(user) for user in users],
        total=total,
        page=query.page,
        page_size=query.page_size,
    )


@router.get("/me")
@pipeline_endpoint(CURRENT_USER)
async def current_user(ctx: HandlerContext) -> UserResponse:
    """Return the caller's own profile."""
    user_id = user_id_of(ctx.require_identity())
    async with get_async_session() as session:
        user = await UserRepository(session).get_by_id(user_id)
        if user is None:
            raise _user_not_found(user_id)
        return UserResponse.model_validate(user)


@router.put("/me")
@pipeline_endpoint(UPDATE_PROFILE)
async def update_profile(ctx: HandlerContext) -> UserResponse:
    """Update the caller's email, avatar or bio."""
    user_id = user_id_of(ctx.require_identity())
    payload: UpdateProfileRequest = ctx.body

    async with get_async_session() as session:
        user = await UserRepository(session).update(
            user_id, payload.model_dump(exclude_unset=True)
        )
        if user is None:
            raise _user_not_found(user_id)
        return UserResponse.model_validate(user)
