"""System-level FastAPI routes for HAG."""

from __future__ import annotations

from datetime import UTC, datetime
from importlib.metadata import PackageNotFoundError, version

from fastapi import APIRouter, Request

from hag.api.dependencies import SettingsDep

router = APIRouter()

try:
    _VERSION = version("hag")
except PackageNotFoundError:
    _VERSION = "unknown"


@router.get("/health")
async def health_check(request: Request) -> dict[str, object]:
    state = getattr(request.app.state, "hag", None)
    controller = state.controller if state is not None else None
    return {
        "status": "ok" if controller is not None and controller.running else "degraded",
        "controller_running": bool(controller and controller.running),
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/version", response_model=dict[str, str])
async def get_version(settings: SettingsDep) -> dict[str, str]:
    return {"name": settings.app_name, "version": _VERSION}
