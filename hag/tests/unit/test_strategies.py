"""Tests for hag.core.strategies - heating, cooling and defrost decisions."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from hag.config import ActiveHours, HvacOptions
from hag.core.context import Conditions
from hag.core.strategies import CoolingStrategy, HeatingStrategy, is_active_hour
from hag.tests.fakes import MONDAY_10AM, make_hvac_options


def conditions(
    indoor: float | None, outdoor: float | None, *, hour: int = 10, weekday: bool = True
) -> Conditions:
    return Conditions(indoor_temp=indoor, outdoor_temp=outdoor, hour=hour, is_weekday=weekday)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ===================================================================
# Active hours
# ===================================================================


class TestActiveHours:
    def test_no_window_is_always_active(self) -> None:
        assert is_active_hour(None, 3, True) is True

    def test_weekday_uses_weekday_start(self) -> None:
        hours = ActiveHours(start=8, start_weekday=7, end=22)
        assert is_active_hour(hours, 7, True) is True
        assert is_active_hour(hours, 7, False) is False

    def test_bounds_are_inclusive(self) -> None:
        hours = ActiveHours(start=8, start_weekday=7, end=22)
        assert is_active_hour(hours, 8, False) is True
        assert is_active_hour(hours, 22, False) is True
        assert is_active_hour(hours, 23, False) is False

    def test_window_does_not_wrap_midnight(self) -> None:
        hours = ActiveHours(start=22, start_weekday=22, end=6)
        assert is_active_hour(hours, 23, False) is False
        assert is_active_hour(hours, 2, True) is False


# ===================================================================
# Heating
# ===================================================================


class TestHeating:
    @pytest.fixture()
    def strategy(self, hvac_options: HvacOptions) -> HeatingStrategy:
        return HeatingStrategy(hvac_options, clock=lambda: MONDAY_10AM)

    def test_heats_below_min(self, strategy: HeatingStrategy) -> None:
        assert strategy.should_heat(conditions(19.5, 5.0)) is True

    def test_dead_band_does_not_heat(self, strategy: HeatingStrategy) -> None:
        decision = strategy.evaluate_heating(conditions(21.0, 5.0))
        assert decision.approved is False
        assert "dead band" in decision.reason

    def test_equal_to_min_does_not_heat(self, strategy: HeatingStrategy) -> None:
        assert strategy.should_heat(conditions(20.0, 5.0)) is False

    def test_at_or_above_max_does_not_heat(self, strategy: HeatingStrategy) -> None:
        assert strategy.should_heat(conditions(22.0, 5.0)) is False
        assert strategy.should_heat(conditions(22.5, 5.0)) is False

    @pytest.mark.parametrize("outdoor", [-10.0, 15.0])
    def test_outdoor_bounds_inclusive(self, strategy: HeatingStrategy, outdoor: float) -> None:
        assert strategy.should_heat(conditions(19.0, outdoor)) is True

    @pytest.mark.parametrize("outdoor", [-10.5, 15.5])
    def test_outdoor_out_of_range(self, strategy: HeatingStrategy, outdoor: float) -> None:
        decision = strategy.evaluate_heating(conditions(19.0, outdoor))
        assert decision.approved is False
        assert "outside" in decision.reason

    @pytest.mark.parametrize(
        ("indoor", "outdoor"),
        [(None, 5.0), (19.0, None), (float("nan"), 5.0), (19.0, float("nan"))],
    )
    def test_missing_reading_never_heats(
        self, strategy: HeatingStrategy, indoor: float | None, outdoor: float | None
    ) -> None:
        assert strategy.should_heat(conditions(indoor, outdoor)) is False

    def test_zero_is_a_valid_reading(self, strategy: HeatingStrategy) -> None:
        assert strategy.should_heat(conditions(19.0, 0.0)) is True

    def test_outside_active_hours(self) -> None:
        options = make_hvac_options(active_hours=ActiveHours(start=8, start_weekday=7, end=22))
        strategy = HeatingStrategy(options)
        assert strategy.should_heat(conditions(19.0, 5.0, hour=23)) is False
        assert strategy.should_heat(conditions(19.0, 5.0, hour=7, weekday=False)) is False
        assert strategy.should_heat(conditions(19.0, 5.0, hour=7, weekday=True)) is True


# ===================================================================
# Defrost
# ===================================================================


class TestDefrost:
    def test_not_configured(self) -> None:
        options = make_hvac_options()
        heating = options.heating.model_copy(update={"defrost": None})
        strategy = HeatingStrategy(options.model_copy(update={"heating": heating}))
        decision = strategy.evaluate_defrost(conditions(19.0, -5.0))
        assert decision.approved is False
        assert "not configured" in decision.reason

    def test_needed_at_or_below_threshold(self, hvac_options: HvacOptions) -> None:
        strategy = HeatingStrategy(hvac_options, clock=lambda: MONDAY_10AM)
        assert strategy.needs_defrost(conditions(19.0, 0.0)) is True
        assert strategy.needs_defrost(conditions(19.0, 0.5)) is False

    def test_missing_outdoor(self, hvac_options: HvacOptions) -> None:
        strategy = HeatingStrategy(hvac_options, clock=lambda: MONDAY_10AM)
        assert strategy.needs_defrost(conditions(19.0, None)) is False

    def test_period_between_cycles(self, hvac_options: HvacOptions) -> None:
        clock = _Clock(MONDAY_10AM)
        strategy = HeatingStrategy(hvac_options, clock=clock)

        started = strategy.start_defrost()
        assert started == MONDAY_10AM
        assert strategy.last_defrost == MONDAY_10AM

        clock.now = MONDAY_10AM + timedelta(minutes=30)
        decision = strategy.evaluate_defrost(conditions(19.0, -5.0))
        assert decision.approved is False
        assert "last defrost" in decision.reason

        clock.now = MONDAY_10AM + timedelta(hours=1)
        assert strategy.needs_defrost(conditions(19.0, -5.0)) is True


# ===================================================================
# Cooling
# ===================================================================


class TestCooling:
    @pytest.fixture()
    def strategy(self, hvac_options: HvacOptions) -> CoolingStrategy:
        return CoolingStrategy(hvac_options)

    def test_cools_above_max(self, strategy: CoolingStrategy) -> None:
        assert strategy.should_cool(conditions(27.0, 30.0)) is True

    def test_equal_to_max_does_not_cool(self, strategy: CoolingStrategy) -> None:
        assert strategy.should_cool(conditions(26.0, 30.0)) is False

    def test_dead_band_does_not_cool(self, strategy: CoolingStrategy) -> None:
        assert strategy.should_cool(conditions(24.5, 30.0)) is False

    def test_at_or_below_min_does_not_cool(self, strategy: CoolingStrategy) -> None:
        decision = strategy.evaluate_cooling(conditions(23.0, 30.0))
        assert decision.approved is False
        assert "<= min" in decision.reason

    def test_outdoor_out_of_range(self, strategy: CoolingStrategy) -> None:
        assert strategy.should_cool(conditions(27.0, 5.0)) is False

    def test_missing_reading(self, strategy: CoolingStrategy) -> None:
        assert strategy.should_cool(conditions(None, 30.0)) is False
        assert strategy.should_cool(conditions(27.0, float("nan"))) is False
