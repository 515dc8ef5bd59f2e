"""API routes.

Every endpoint is a domain handler wrapped by ``pipeline_endpoint``, so
authentication, validation and enveloping are uniform across the API.
"""

from fastapi import APIRouter

from rua.api.routes import auth, system, users

api_router = APIRouter(prefix="/api")
api_router.include_router(system.index_router)
api_router.include_router(users.router)
api_router.include_router(auth.router)

__all__ = ["api_router"]
