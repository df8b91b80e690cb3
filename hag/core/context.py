"""Shared context and event types for the HVAC control core."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any

from hag.models.enums import EventType, HVACMode, SystemMode


def is_reading(value: float | None) -> bool:
    """Return ``True`` for a usable temperature (not ``None``, not NaN)."""
    return value is not None and not (isinstance(value, float) and math.isnan(value))


def is_weekday(moment: datetime) -> bool:
    return moment.weekday() < 5


@dataclass(frozen=True, slots=True)
class Conditions:
    """Inputs of a single strategy decision."""

    indoor_temp: float | None
    outdoor_temp: float | None
    hour: int
    is_weekday: bool


@dataclass(frozen=True, slots=True)
class OperatingContext:
    """Immutable snapshot of what the state machine knows.

    Replaced wholesale on every update; outside code only ever sees copies.
    """

    indoor_temp: float | None = None
    outdoor_temp: float | None = None
    current_hour: int = 0
    is_weekday: bool = True
    last_defrost_at: datetime | None = None
    system_mode: SystemMode = SystemMode.auto

    @classmethod
    def initial(cls, system_mode: SystemMode, now: datetime) -> OperatingContext:
        return cls(
            current_hour=now.hour,
            is_weekday=is_weekday(now),
            system_mode=system_mode,
        )

    @property
    def has_temperatures(self) -> bool:
        return is_reading(self.indoor_temp) and is_reading(self.outdoor_temp)

    def conditions(self) -> Conditions:
        return Conditions(
            indoor_temp=self.indoor_temp,
            outdoor_temp=self.outdoor_temp,
            hour=self.current_hour,
            is_weekday=self.is_weekday,
        )

    def merge(self, **changes: Any) -> OperatingContext:
        """Return a copy with *changes* applied (last write wins per field)."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown context fields: {sorted(unknown)}")
        return replace(self, **changes)

    @staticmethod
    def coerce(**changes: Any) -> dict[str, Any]:
        """Convert external condition values to the context field types.

        Raises:
            ValueError: If a value cannot be converted.
            TypeError: If a value has the wrong kind (e.g. a bool temperature).
        """
        coerced: dict[str, Any] = {}
        for name, value in changes.items():
            if name in ("indoor_temp", "outdoor_temp"):
                if isinstance(value, bool):
                    raise TypeError(f"{name} must be a number, got {value!r}")
                coerced[name] = None if value is None else float(value)
            elif name == "current_hour":
                if isinstance(value, bool) or int(value) != value or not 0 <= int(value) <= 23:
                    raise ValueError(f"current_hour must be an integer 0-23, got {value!r}")
                coerced[name] = int(value)
            elif name == "is_weekday":
                if not isinstance(value, bool):
                    raise TypeError(f"is_weekday must be a bool, got {value!r}")
                coerced[name] = value
            elif name == "last_defrost_at":
                if value is not None and not isinstance(value, datetime):
                    raise TypeError(f"last_defrost_at must be a datetime, got {value!r}")
                coerced[name] = value
            elif name == "system_mode":
                coerced[name] = SystemMode(value)
            else:
                coerced[name] = value
        return coerced

    def as_dict(self) -> dict[str, Any]:
        return {
            "indoor_temp": self.indoor_temp,
            "outdoor_temp": self.outdoor_temp,
            "current_hour": self.current_hour,
            "is_weekday": self.is_weekday,
            "last_defrost_at": self.last_defrost_at.isoformat() if self.last_defrost_at else None,
            "system_mode": self.system_mode.value,
        }


@dataclass(frozen=True, slots=True)
class HVACEvent:
    """Event accepted by :meth:`HVACStateMachine.send`."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    indoor: float | None = None
    outdoor: float | None = None
    mode: HVACMode | None = None
    temperature: float | None = None

    @classmethod
    def heat(cls) -> HVACEvent:
        return cls(EventType.heat)

    @classmethod
    def cool(cls) -> HVACEvent:
        return cls(EventType.cool)

    @classmethod
    def off(cls) -> HVACEvent:
        return cls(EventType.off)

    @classmethod
    def auto_evaluate(cls) -> HVACEvent:
        return cls(EventType.auto_evaluate)

    @classmethod
    def defrost_needed(cls) -> HVACEvent:
        return cls(EventType.defrost_needed)

    @classmethod
    def defrost_complete(cls) -> HVACEvent:
        return cls(EventType.defrost_complete)

    @classmethod
    def update_temperatures(cls, indoor: float, outdoor: float) -> HVACEvent:
        return cls(EventType.update_temperatures, indoor=indoor, outdoor=outdoor)

    @classmethod
    def update_conditions(cls, **data: Any) -> HVACEvent:
        return cls(EventType.update_conditions, data=data)

    @classmethod
    def manual_override(cls, mode: HVACMode, temperature: float | None = None) -> HVACEvent:
        return cls(EventType.manual_override, mode=mode, temperature=temperature)


@dataclass(frozen=True, slots=True)
class Decision:
    """Strategy verdict together with the reason it was reached."""

    approved: bool
    reason: str

    def __bool__(self) -> bool:
        return self.approved


@dataclass(frozen=True, slots=True)
class OverrideInfo:
    """Forced mode recorded when entering ``manual_override``."""

    mode: HVACMode
    temperature: float | None
    started_at: datetime


__all__ = [
    "Conditions",
    "Decision",
    "HVACEvent",
    "OperatingContext",
    "OverrideInfo",
    "is_reading",
    "is_weekday",
]
