"""Heating, cooling and defrost decision strategies.

Strategies are pure functions of the current conditions and the policy,
except for the heating strategy's last-defrost timestamp.  The min/max band
gives hysteresis: heating engages only below ``indoor_min`` and is refused
from ``indoor_max`` upwards, cooling mirrors that.  Exact equality with a
bound never approves an action.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from hag.config import ActiveHours, HvacOptions, TemperatureThresholds
from hag.core.context import Conditions, Decision, is_reading

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def local_now() -> datetime:
    return datetime.now().astimezone()


def is_active_hour(active_hours: ActiveHours | None, hour: int, weekday: bool) -> bool:
    """Return ``True`` when *hour* falls inside the active window (inclusive)."""
    if active_hours is None:
        return True
    start = active_hours.start_weekday if weekday else active_hours.start
    return start <= hour <= active_hours.end


def _outdoor_in_range(thresholds: TemperatureThresholds, outdoor: float) -> bool:
    return thresholds.outdoor_min <= outdoor <= thresholds.outdoor_max


class HeatingStrategy:
    """Decide whether to heat and whether the heat pump needs a defrost cycle."""

    def __init__(self, options: HvacOptions, *, clock: Clock = local_now) -> None:
        self._options = options
        self._clock = clock
        self._last_defrost: datetime | None = None

    @property
    def last_defrost(self) -> datetime | None:
        return self._last_defrost

    def evaluate_heating(self, conditions: Conditions) -> Decision:
        thresholds = self._options.heating.temperature_thresholds
        indoor, outdoor = conditions.indoor_temp, conditions.outdoor_temp

        if not is_reading(indoor) or not is_reading(outdoor):
            return Decision(False, "missing temperature reading")
        assert indoor is not None and outdoor is not None  # noqa: S101 - narrowed above

        if indoor >= thresholds.indoor_max:
            return Decision(False, f"indoor {indoor} >= max {thresholds.indoor_max}")
        if not _outdoor_in_range(thresholds, outdoor):
            return Decision(
                False,
                f"outdoor {outdoor} outside [{thresholds.outdoor_min}, {thresholds.outdoor_max}]",
            )
        if not is_active_hour(self._options.active_hours, conditions.hour, conditions.is_weekday):
            return Decision(False, f"hour {conditions.hour} outside active hours")
        if indoor < thresholds.indoor_min:
            return Decision(True, f"indoor {indoor} < min {thresholds.indoor_min}")
        return Decision(False, f"indoor {indoor} inside dead band")

    def should_heat(self, conditions: Conditions) -> bool:
        return self.evaluate_heating(conditions).approved

    def evaluate_defrost(self, conditions: Conditions) -> Decision:
        defrost = self._options.heating.defrost
        if defrost is None:
            return Decision(False, "defrost not configured")

        outdoor = conditions.outdoor_temp
        if not is_reading(outdoor):
            return Decision(False, "missing outdoor reading")
        assert outdoor is not None  # noqa: S101 - narrowed above

        if outdoor > defrost.temperature_threshold:
            return Decision(
                False, f"outdoor {outdoor} above threshold {defrost.temperature_threshold}"
            )

        if self._last_defrost is not None:
            elapsed = self._clock() - self._last_defrost
            if elapsed < timedelta(seconds=defrost.period_seconds):
                return Decision(
                    False,
                    f"last defrost {elapsed.total_seconds():.0f}s ago "
                    f"(< {defrost.period_seconds}s)",
                )

        return Decision(True, f"outdoor {outdoor} <= threshold {defrost.temperature_threshold}")

    def needs_defrost(self, conditions: Conditions) -> bool:
        return self.evaluate_defrost(conditions).approved

    def start_defrost(self) -> datetime:
        """Record the start of a defrost cycle and return its timestamp."""
        self._last_defrost = self._clock()
        logger.info("Defrost cycle started at %s", self._last_defrost.isoformat())
        return self._last_defrost


class CoolingStrategy:
    """Decide whether to cool."""

    def __init__(self, options: HvacOptions) -> None:
        self._options = options

    def evaluate_cooling(self, conditions: Conditions) -> Decision:
        thresholds = self._options.cooling.temperature_thresholds
        indoor, outdoor = conditions.indoor_temp, conditions.outdoor_temp

        if not is_reading(indoor) or not is_reading(outdoor):
            return Decision(False, "missing temperature reading")
        assert indoor is not None and outdoor is not None  # noqa: S101 - narrowed above

        if indoor <= thresholds.indoor_min:
            return Decision(False, f"indoor {indoor} <= min {thresholds.indoor_min}")
        if not _outdoor_in_range(thresholds, outdoor):
            return Decision(
                False,
                f"outdoor {outdoor} outside [{thresholds.outdoor_min}, {thresholds.outdoor_max}]",
            )
        if not is_active_hour(self._options.active_hours, conditions.hour, conditions.is_weekday):
            return Decision(False, f"hour {conditions.hour} outside active hours")
        if indoor > thresholds.indoor_max:
            return Decision(True, f"indoor {indoor} > max {thresholds.indoor_max}")
        return Decision(False, f"indoor {indoor} inside dead band")

    def should_cool(self, conditions: Conditions) -> bool:
        return self.evaluate_cooling(conditions).approved


__all__ = ["Clock", "CoolingStrategy", "HeatingStrategy", "is_active_hour", "local_now"]
