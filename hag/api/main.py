"""
HAG HTTP API - control surface for the HVAC controller.

The app owns one :class:`AppState`; the lifespan starts the controller on
startup and stops it on shutdown.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from hag.api.routes import api_router
from hag.api.routes.system import _VERSION
from hag.app_state import AppState
from hag.config import get_settings, load_config
from hag.exceptions import HAGError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build (if needed), start and finally stop the application state."""
    logger.info("Starting HAG API...")
    state: AppState | None = getattr(app.state, "hag", None)
    owns_controller = False

    try:
        if state is None:
            settings = get_settings()
            config = load_config(settings.config_file, settings)
            state = AppState.build(config, settings=settings)
            app.state.hag = state
        if not state.controller.running:
            await state.start()
            owns_controller = True
    except Exception as e:
        logger.error("Startup failed: %s", e)
        raise

    yield

    logger.info("Shutting down HAG API...")
    if owns_controller:
        await state.close()
    logger.info("HAG API shutdown complete")


def create_app(state: AppState | None = None) -> FastAPI:
    """Create the FastAPI app, optionally around an existing :class:`AppState`."""
    app = FastAPI(
        title="HAG API",
        description="Control and status API for the HAG HVAC controller.",
        version=_VERSION,
        lifespan=lifespan,
    )
    if state is not None:
        app.state.hag = state

    app.include_router(api_router)

    @app.exception_handler(HAGError)
    async def hag_error_handler(request: Request, exc: HAGError) -> JSONResponse:
        logger.warning("Request %s failed: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": exc.to_dict()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"code": 500, "message": "An internal error occurred"}},
        )

    return app
