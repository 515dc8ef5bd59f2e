"""Token issuance."""

from datetime import UTC, datetime

from fastapi import APIRouter
from loguru import logger
from starlette.concurrency import run_in_threadpool

from rua.api.pipeline import HandlerContext, RouteSpec, pipeline_endpoint
from rua.api.schemas.users import LoginRequest, TokenResponse
from rua.core.exceptions import UnauthorizedError
from rua.core.passwords import reject_password, verify_password
from rua.core.security import TokenAuthenticator
from rua.infrastructure.database.repository import UserRepository
from rua.infrastructure.database.session import get_async_session

router = APIRouter(prefix="/auth", tags=["auth"])

ISSUE_TOKEN = RouteSpec(body_model=LoginRequest, success_message="Token issued")

INVALID_CREDENTIALS = "Invalid username or password"


@router.post("/token")
@pipeline_endpoint(ISSUE_TOKEN)
async def issue_token(ctx: HandlerContext) -> TokenResponse:
    """Exchange a username and password for a bearer token."""
    payload: LoginRequest = ctx.body
    authenticator: TokenAuthenticator = ctx.request.app.state.authenticator

    async with get_async_session() as session:
        repository = UserRepository(session)
        user = await repository.get_by_username(payload.username)
        if user is None:
            await run_in_threadpool(reject_password, payload.password)
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not await run_in_threadpool(
            verify_password, payload.password, user.password_hash
        ):
            raise UnauthorizedError(INVALID_CREDENTIALS)

        await repository.update(user.id, {"last_login": datetime.now(UTC)})

    logger.info("Issued token", user_id=user.id)
    return TokenResponse(
        access_token=authenticator.issue_token(str(user.id)),
        expires_in=authenticator.lifetime_seconds,
    )
