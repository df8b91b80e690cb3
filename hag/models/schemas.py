"""Pydantic schemas returned by the HVAC controller and the HTTP API."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import HVACMode, MachineState, SystemMode


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OperationResult(BaseModel):
    """Outcome of a control entry point (override, evaluation, efficiency)."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> OperationResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> OperationResult:
        return cls(success=False, error=error)


class ControllerInfo(BaseModel):
    running: bool
    ha_connected: bool
    temp_sensor: str
    system_mode: SystemMode
    ai_enabled: bool
    dry_run: bool = False


class StateMachineInfo(BaseModel):
    current_state: MachineState | None
    hvac_mode: HVACMode | None = None
    conditions: dict[str, Any] | None = None
    override: dict[str, Any] | None = None


class HVACStatus(BaseModel):
    controller: ControllerInfo
    state_machine: StateMachineInfo
    timestamp: datetime = Field(default_factory=_utcnow)
    ai_analysis: str | None = None


class ManualOverrideRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: str = Field(description="heat, cool or off (case insensitive)")
    temperature: float | None = Field(default=None, ge=10, le=35)

    @field_validator("action")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


__all__ = [
    "ControllerInfo",
    "HVACStatus",
    "ManualOverrideRequest",
    "OperationResult",
    "StateMachineInfo",
]
