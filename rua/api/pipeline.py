"""The request pipeline wrapped around every API handler.

Stages run in a fixed order::

    authenticate -> validate body -> validate query -> handler -> encode

Correlation tagging and access logging happen before and after this, in
middleware. Each stage returns ``Continue(value)`` to hand its result to the
next stage or ``Abort(error)`` to stop; an abort skips every remaining stage
and goes straight to the envelope codec with the classified error.

Routes declare what they need statically with a :class:`RouteSpec` when
they are registered. Handlers receive a :class:`HandlerContext` holding
already authenticated, already validated inputs and return a payload or a
:class:`Page`; they never build envelopes themselves.
"""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any, Final

from fastapi import Request, Response, status
from loguru import logger
from pydantic import BaseModel

from rua.api.constants import AUTHORIZATION_HEADER
from rua.api.utils.responses import error_response, paginated, render, success
from rua.api.validation import validate_body, validate_query
from rua.core.context import RequestContext
from rua.core.error_classifier import (
    ClassifiedError,
    classify,
    log_classified_error,
)
from rua.core.exceptions import BusinessCode, InternalError
from rua.core.observability import trace_operation
from rua.core.security import AuthenticatedIdentity, TokenAuthenticator


@dataclass(frozen=True)
class Continue[T]:
    """Stage succeeded; pass ``value`` to the next stage."""

    value: T


@dataclass(frozen=True)
class Abort:
    """Stage failed; skip the rest of the pipeline."""

    error: ClassifiedError


type StageResult[T] = Continue[T] | Abort


@dataclass(frozen=True)
class RouteSpec:
    """What a route requires, declared once at registration time.

    Attributes:
        requires_auth: Whether a valid bearer token is required.
        body_model: Model the JSON body is validated against, if any.
        query_model: Model the query string is validated against, if any.
        success_status: HTTP status for successful responses.
        success_code: Business code for successful responses.
        success_message: Message for successful responses.
    """

    requires_auth: bool = False
    body_model: type[BaseModel] | None = None
    query_model: type[BaseModel] | None = None
    success_status: int = status.HTTP_200_OK
    success_code: BusinessCode = BusinessCode.SUCCESS
    success_message: str = "Success"


@dataclass(frozen=True)
class HandlerContext:
    """Everything a handler may read about the current request."""

    correlation_id: str
    request: Request
    identity: AuthenticatedIdentity | None = None
    body: Any = None
    query: Any = None

    def require_identity(self) -> AuthenticatedIdentity:
        """Return the caller identity of a protected route.

        Raises:
            InternalError: If the route was registered without authentication.
        """
        if self.identity is None:
            msg = "Handler needs an identity but its route does not require auth"
            raise InternalError(msg)
        return self.identity


@dataclass(frozen=True)
class Page[T]:
    """One page of a listing, returned by handlers of paginated routes."""

    items: Sequence[T]
    total: int
    page: int
    page_size: int


type Handler = Callable[[HandlerContext], Awaitable[Any]]
type Endpoint = Callable[[Request], Awaitable[Response]]

_STAGE_SPAN_PREFIX: Final[str] = "pipeline"


class RequestPipeline:
    """Runs the fixed stage sequence for one route.

    Args:
        spec: The route's static requirements.
        handler: The domain handler.
    """

    def __init__(self, spec: RouteSpec, handler: Handler) -> None:
        self.spec = spec
        self.handler = handler

    async def run(self, request: Request) -> Response:
        """Process one request and return the enveloped response.

        Args:
            request: The inbound request.

        Returns:
            Response: Success or failure envelope.
        """
        correlation_id = RequestContext.get_correlation_id()
        if correlation_id is None:
            msg = "Request pipeline entered without a correlation id"
            raise RuntimeError(msg)

        context = HandlerContext(correlation_id=correlation_id, request=request)

        result: StageResult[Any] = self.authenticate(context)
        if isinstance(result, Continue):
            result = await self.validate(result.value)
        if isinstance(result, Continue):
            result = await self.invoke(result.value)
        if isinstance(result, Continue):
            result = self.encode(result.value)

        if isinstance(result, Abort):
            log_classified_error(
                result.error,
                {"method": request.method, "path": request.url.path},
            )
            return error_response(result.error)
        return result.value

    def authenticate(self, context: HandlerContext) -> StageResult[HandlerContext]:
        """Verify the bearer credential if the route requires one."""
        if not self.spec.requires_auth:
            return Continue(context)

        request = context.request
        authenticator: TokenAuthenticator = request.app.state.authenticator
        with trace_operation(f"{_STAGE_SPAN_PREFIX}.authenticate"):
            try:
                identity = authenticator.authenticate(
                    request.headers.getlist(AUTHORIZATION_HEADER)
                )
            except Exception as e:  # noqa: BLE001 - every failure is classified
                return Abort(classify(e))

        RequestContext.set_identity(identity)
        logger.debug("Caller authenticated", subject_id=identity.subject_id)
        return Continue(replace(context, identity=identity))

    async def validate(self, context: HandlerContext) -> StageResult[HandlerContext]:
        """Validate the body and query string against the declared models."""
        spec = self.spec
        if spec.body_model is None and spec.query_model is None:
            return Continue(context)

        with trace_operation(f"{_STAGE_SPAN_PREFIX}.validate"):
            try:
                body = None
                if spec.body_model is not None:
                    body = validate_body(spec.body_model, await context.request.body())
                query = None
                if spec.query_model is not None:
                    query = validate_query(
                        spec.query_model, context.request.query_params
                    )
            except Exception as e:  # noqa: BLE001 - every failure is classified
                return Abort(classify(e))

        return Continue(replace(context, body=body, query=query))

    async def invoke(self, context: HandlerContext) -> StageResult[Any]:
        """Run the domain handler."""
        with trace_operation(
            f"{_STAGE_SPAN_PREFIX}.handler",
            handler=getattr(self.handler, "__name__", "handler"),
        ):
            try:
                payload = await self.handler(context)
            except Exception as e:  # noqa: BLE001 - every failure is classified
                return Abort(classify(e))
        return Continue(payload)

    def encode(self, payload: object) -> StageResult[Response]:
        """Wrap the handler's payload in the success envelope."""
        spec = self.spec
        try:
            if isinstance(payload, Page):
                envelope = paginated(
                    payload.items,
                    payload.total,
                    payload.page,
                    payload.page_size,
                    message=spec.success_message,
                )
            else:
                envelope = success(payload, spec.success_code, spec.success_message)
        except ValueError as e:
            # Broken page bounds are a bug in the handler, never the caller's fault
            return Abort(classify(InternalError("Response encoding failed", cause=e)))

        return Continue(render(envelope, spec.success_status))


def pipeline_endpoint(spec: RouteSpec) -> Callable[[Handler], Endpoint]:
    """Turn a handler into a FastAPI endpoint running the request pipeline.

    Example:
        >>> @pipeline_endpoint(RouteSpec(requires_auth=True))
        ... async def current_user(ctx: HandlerContext) -> UserResponse: ...
        >>> router.add_api_route("/users/me", current_user, methods=["GET"])
    """

    def decorator(handler: Handler) -> Endpoint:
        pipeline = RequestPipeline(spec, handler)

        async def endpoint(request: Request) -> Response:
            return await pipeline.run(request)

        # FastAPI derives the operation id and description from these
        endpoint.__name__ = handler.__name__
        endpoint.__doc__ = handler.__doc__
        return endpoint

    return decorator
