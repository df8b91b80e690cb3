"""HVAC control routes: status, evaluation, override and efficiency."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from hag.api.dependencies import ControllerDep
from hag.models.schemas import HVACStatus, ManualOverrideRequest, OperationResult

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status", response_model=HVACStatus)
async def get_status(controller: ControllerDep) -> HVACStatus:
    return await controller.get_status()


@router.post("/evaluate", response_model=OperationResult)
async def trigger_evaluation(controller: ControllerDep) -> OperationResult:
    result = await controller.trigger_evaluation()
    if not result.success and not controller.running:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.error)
    return result


@router.post("/override", response_model=OperationResult)
async def manual_override(
    payload: ManualOverrideRequest, controller: ControllerDep
) -> OperationResult:
    result = await controller.manual_override(payload.action, temperature=payload.temperature)
    if not result.success:
        code = (
            status.HTTP_409_CONFLICT
            if not controller.running
            else status.HTTP_422_UNPROCESSABLE_ENTITY
        )
        logger.info("Override request %s rejected: %s", payload.action, result.error)
        raise HTTPException(status_code=code, detail=result.error)
    return result


@router.get("/efficiency", response_model=OperationResult)
async def evaluate_efficiency(controller: ControllerDep) -> OperationResult:
    result = await controller.evaluate_efficiency()
    if not result.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.error)
    return result
