"""
Unit tests for the coordinate and seasonal variation calculators
"""
from datetime import datetime, timezone

import pytest

from tide_engine.config import CoordinateVariationOptions, SeasonalVariationOptions
from tide_engine.models import Coordinate
from tide_engine.variation import (
    CoordinateVariation,
    CoordinateVariationCalculator,
    SeasonalVariationCalculator,
)


class TestCoordinateVariation:
    """Tests for the coordinate factors."""

    def test_reference_point_is_neutral(self):
        variation = CoordinateVariationCalculator().calculate(Coordinate(35.0, 135.0))
        assert variation.latitude_factor == pytest.approx(1.0)
        assert variation.longitude_factor == pytest.approx(1.0)
        assert variation.magnitude == pytest.approx(0.0)
        for name in ('M2', 'S2', 'K1', 'O1'):
            assert variation.adjustment(name) == pytest.approx((1.0, 0.0))

    def test_factors_are_linear_in_offset(self):
        variation = CoordinateVariationCalculator().calculate(Coordinate(40.0, 125.0))
        assert variation.latitude_factor == pytest.approx(1.1)
        assert variation.longitude_factor == pytest.approx(0.9)
        assert variation.magnitude == pytest.approx(0.1)

    def test_custom_options(self):
        options = CoordinateVariationOptions(
            latitude_reference=0.0, longitude_reference=0.0,
            latitude_coefficient=0.1, longitude_coefficient=0.0,
        )
        variation = CoordinateVariationCalculator(options).calculate(Coordinate(1.0, 50.0))
        assert variation.latitude_factor == pytest.approx(1.1)
        assert variation.longitude_factor == pytest.approx(1.0)

    def test_adjustment_uses_matching_factor(self):
        variation = CoordinateVariation(latitude_factor=1.2, longitude_factor=0.8)
        m2_amplitude, _ = variation.adjustment('M2')
        s2_amplitude, _ = variation.adjustment('S2')
        assert m2_amplitude == 1.2
        assert s2_amplitude == 0.8

    def test_phase_offset_follows_departure(self):
        variation = CoordinateVariation(latitude_factor=1.1, longitude_factor=1.0)
        _, m2_phase = variation.adjustment('M2')
        _, k1_phase = variation.adjustment('K1')
        assert m2_phase == pytest.approx(0.0)
        assert k1_phase == pytest.approx(8.0)

    def test_unknown_constituent_unchanged(self):
        variation = CoordinateVariation(latitude_factor=1.5, longitude_factor=0.5)
        assert variation.adjustment('M4') == (1.0, 0.0)

    def test_far_point_can_go_negative(self):
        """Factors are not clamped here; the synthesizer clamps amplitudes."""
        variation = CoordinateVariationCalculator().calculate(Coordinate(0.0, 0.0))
        assert variation.latitude_factor == pytest.approx(0.3)
        assert variation.longitude_factor == pytest.approx(-0.35)


class TestSeasonalVariation:
    """Tests for the seasonal factors."""

    def test_equator_has_no_seasonal_effect(self):
        variation = SeasonalVariationCalculator().calculate(
            Coordinate(0.0, 135.0), datetime(2024, 6, 21, tzinfo=timezone.utc)
        )
        assert variation.latitude_effect == 0.0
        for name in ('M2', 'S2', 'K1', 'O1'):
            assert variation.factor(name) == pytest.approx(1.0)
        assert variation.magnitude == pytest.approx(0.0)

    def test_day_of_year_is_leap_aware(self):
        calculator = SeasonalVariationCalculator()
        leap = calculator.calculate(Coordinate(35.0, 135.0), datetime(2024, 12, 31, tzinfo=timezone.utc))
        common = calculator.calculate(Coordinate(35.0, 135.0), datetime(2023, 12, 31, tzinfo=timezone.utc))
        assert leap.day_of_year == 366
        assert common.day_of_year == 365

    def test_angle_zero_at_equinox(self):
        variation = SeasonalVariationCalculator().calculate(
            Coordinate(45.0, 135.0), datetime(2023, 3, 21, tzinfo=timezone.utc)
        )
        assert variation.day_of_year == 80
        assert variation.seasonal_angle_deg == pytest.approx(0.0)
        assert variation.latitude_effect == pytest.approx(0.5)
        # cos(0) = 1, sin(0) = 0
        assert variation.m2_factor == pytest.approx(1.0 + 0.15 * 0.5)
        assert variation.k1_factor == pytest.approx(1.0)
        # sin(90) = 1
        assert variation.o1_factor == pytest.approx(1.0 + 0.18 * 0.5)

    def test_constituents_peak_at_different_times(self):
        variation = SeasonalVariationCalculator().calculate(
            Coordinate(45.0, 135.0), datetime(2023, 3, 21, tzinfo=timezone.utc)
        )
        factors = {variation.m2_factor, variation.s2_factor, variation.k1_factor, variation.o1_factor}
        assert len(factors) == 4

    def test_six_months_apart_differ(self):
        calculator = SeasonalVariationCalculator()
        tokyo = Coordinate(35.6762, 139.6503)
        march = calculator.calculate(tokyo, datetime(2024, 3, 21, tzinfo=timezone.utc))
        september = calculator.calculate(tokyo, datetime(2024, 9, 21, tzinfo=timezone.utc))
        assert march.m2_factor - september.m2_factor > 0.1

    def test_southern_hemisphere_uses_absolute_latitude(self):
        calculator = SeasonalVariationCalculator()
        day = datetime(2024, 6, 1, tzinfo=timezone.utc)
        north = calculator.calculate(Coordinate(30.0, 0.0), day)
        south = calculator.calculate(Coordinate(-30.0, 0.0), day)
        assert north == south

    def test_custom_weights(self):
        options = SeasonalVariationOptions(m2_weight=0.0, s2_weight=0.0, k1_weight=0.0, o1_weight=0.0)
        variation = SeasonalVariationCalculator(options).calculate(
            Coordinate(60.0, 0.0), datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        assert variation.magnitude == 0.0
