"""Index, health and service information endpoints."""

from typing import Any, cast

from fastapi import APIRouter
from loguru import logger

from rua.api.pipeline import HandlerContext, RouteSpec, pipeline_endpoint
from rua.api.schemas.system import HealthStatus, ServiceInfo
from rua.core.config import Settings
from rua.infrastructure.database.session import check_database_connection, get_engine

SERVICE_MARKER = "RUA"

index_router = APIRouter(tags=["system"])
router = APIRouter(tags=["system"])


@index_router.get("/")
@pipeline_endpoint(RouteSpec())
async def index(_ctx: HandlerContext) -> str:
    """Confirm the API is answering."""
    return SERVICE_MARKER


@router.get("/health")
@pipeline_endpoint(RouteSpec())
async def health(_ctx: HandlerContext) -> HealthStatus:
    """Report liveness and database reachability.

    A failing database degrades the service instead of failing the probe.
    """
    is_healthy, error_msg = await check_database_connection()
    if not is_healthy:
        logger.warning("Database health check failed: {}", error_msg)
        return HealthStatus(status="degraded", database=False)

    pool = cast("Any", get_engine().pool)
    logger.bind(
        metric_type="db.pool.health",
        checked_out=pool.checkedout(),
        size=pool.size(),
        overflow=pool.overflow(),
    ).debug("Database pool health check")
    return HealthStatus(status="healthy", database=True)


@router.get("/info")
@pipeline_endpoint(RouteSpec())
async def info(ctx: HandlerContext) -> ServiceInfo:
    """Identify the running service and build."""
    settings: Settings = ctx.request.app.state.settings
    return ServiceInfo(
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        build_version=settings.git_version,
    )
