"""Exception hierarchy for the HVAC control core."""

from __future__ import annotations

from typing import Any


class HAGError(Exception):
    """Base exception for all HAG errors."""

    code = "hag_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "code": self.code, "message": self.message}


class StateError(HAGError):
    """Raised when the controller or state machine is in the wrong lifecycle state."""

    code = "state_error"

    def __init__(self, message: str, *, state: str | None = None) -> None:
        super().__init__(message)
        self.state = state


class ValidationError(HAGError):
    """Raised on bad operator input (override action, sensor reading, ...)."""

    code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class HVACOperationError(HAGError):
    """Raised when actuating a device fails."""

    code = "hvac_operation_error"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.entity_id = entity_id


class AdvisoryError(HAGError):
    """Raised by the optional advisory subsystem."""

    code = "advisory_error"


class ConfigurationError(HAGError):
    """Raised when configuration cannot be loaded or validated."""

    code = "configuration_error"

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


__all__ = [
    "AdvisoryError",
    "ConfigurationError",
    "HAGError",
    "HVACOperationError",
    "StateError",
    "ValidationError",
]
