"""HVAC control core for HAG."""

from __future__ import annotations

from .advisor import Advisor, AdvisoryResult, LLMAdvisor
from .context import Conditions, Decision, HVACEvent, OperatingContext, OverrideInfo
from .controller import HVACController, parse_hvac_mode, resolve_hvac_mode
from .state_machine import HVACStateMachine, MachineStatus, MachineTimeouts, TransitionRecord
from .strategies import CoolingStrategy, HeatingStrategy

__all__ = [
    "Advisor",
    "AdvisoryResult",
    "Conditions",
    "CoolingStrategy",
    "Decision",
    "HVACController",
    "HVACEvent",
    "HVACStateMachine",
    "HeatingStrategy",
    "LLMAdvisor",
    "MachineStatus",
    "MachineTimeouts",
    "OperatingContext",
    "OverrideInfo",
    "TransitionRecord",
    "parse_hvac_mode",
    "resolve_hvac_mode",
]
