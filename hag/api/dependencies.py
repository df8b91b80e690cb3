"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from hag.app_state import AppState
from hag.config import Settings, get_settings
from hag.core.controller import HVACController

# ---------------------------------------------------------------------------
# Settings dependency
# ---------------------------------------------------------------------------


def get_settings_dependency() -> Settings:
    return get_settings()


type SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# ---------------------------------------------------------------------------
# Application state / controller dependency
# ---------------------------------------------------------------------------


def get_app_state(request: Request) -> AppState:
    state: AppState | None = getattr(request.app.state, "hag", None)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="HVAC controller not initialised",
        )
    return state


type AppStateDep = Annotated[AppState, Depends(get_app_state)]


def get_controller(state: AppStateDep) -> HVACController:
    return state.controller


type ControllerDep = Annotated[HVACController, Depends(get_controller)]
