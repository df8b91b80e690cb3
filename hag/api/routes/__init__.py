"""API route registration for HAG."""

from fastapi import APIRouter

from . import hvac, system

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(system.router, prefix="/system", tags=["system"])
api_router.include_router(hvac.router, prefix="/hvac", tags=["hvac"])


__all__ = [
    "api_router",
    "hvac",
    "system",
]
