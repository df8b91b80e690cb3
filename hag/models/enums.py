"""Domain enums for HAG HVAC control."""

from enum import StrEnum


class SystemMode(StrEnum):
    """Operator-level policy. Never changed by the state machine itself."""

    auto = "auto"
    heat_only = "heat_only"
    cool_only = "cool_only"
    off = "off"


class HVACMode(StrEnum):
    heat = "heat"
    cool = "cool"
    off = "off"


class MachineState(StrEnum):
    idle = "idle"
    evaluating = "evaluating"
    heating = "heating"
    cooling = "cooling"
    defrosting = "defrosting"
    manual_override = "manual_override"


class EventType(StrEnum):
    heat = "HEAT"
    cool = "COOL"
    off = "OFF"
    auto_evaluate = "AUTO_EVALUATE"
    defrost_needed = "DEFROST_NEEDED"
    defrost_complete = "DEFROST_COMPLETE"
    update_conditions = "UPDATE_CONDITIONS"
    update_temperatures = "UPDATE_TEMPERATURES"
    manual_override = "MANUAL_OVERRIDE"


class LogLevel(StrEnum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
