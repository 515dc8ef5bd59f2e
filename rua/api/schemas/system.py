"""Service health and information payloads."""

from typing import Literal

from pydantic import Field

from rua.api.schemas.envelope import ApiModel


class HealthStatus(ApiModel):
    """Result of the health probe."""

    status: Literal["healthy", "degraded"]
    database: bool = Field(..., description="Whether the database answered")


class ServiceInfo(ApiModel):
    """Identification of the running service."""

    app_name: str
    version: str
    environment: str
    build_version: str = Field(..., description="Build version stamped at deploy time")
