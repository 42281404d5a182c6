"""
Coordinate and seasonal adjustments of the harmonic constituents.

Both calculators are pure: the same inputs always give the same factors.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Tuple

from .config import CoordinateVariationOptions, SeasonalVariationOptions
from .models import Coordinate

# Which coordinate factor scales each constituent's amplitude, and how many
# degrees of phase each factor's departure from 1.0 is worth:
# name -> (amplitude factor, latitude phase weight, longitude phase weight)
COORDINATE_COUPLING: Dict[str, Tuple[str, float, float]] = {
    'M2': ('latitude', 0.0, 15.0),
    'S2': ('longitude', 20.0, 0.0),
    'K1': ('latitude', 80.0, 25.0),
    'O1': ('longitude', 35.0, 120.0),
}


@dataclass(frozen=True)
class CoordinateVariation:
    latitude_factor: float
    longitude_factor: float

    @property
    def magnitude(self) -> float:
        """Largest relative departure from the reference point."""
        return max(abs(self.latitude_factor - 1.0), abs(self.longitude_factor - 1.0))

    def adjustment(self, constituent: str) -> Tuple[float, float]:
        """
        Amplitude factor and phase offset (deg) for one constituent.

        Constituents without a coupling are left unchanged.
        """
        coupling = COORDINATE_COUPLING.get(constituent)
        if coupling is None:
            return 1.0, 0.0
        amplitude_source, lat_weight, lon_weight = coupling
        if amplitude_source == 'latitude':
            amplitude_factor = self.latitude_factor
        else:
            amplitude_factor = self.longitude_factor
        phase_offset = (
            lat_weight * (self.latitude_factor - 1.0)
            + lon_weight * (self.longitude_factor - 1.0)
        )
        return amplitude_factor, phase_offset


class CoordinateVariationCalculator:
    def __init__(self, options: CoordinateVariationOptions = CoordinateVariationOptions()):
        self.options = options

    def calculate(self, coordinate: Coordinate) -> CoordinateVariation:
        o = self.options
        return CoordinateVariation(
            latitude_factor=1.0 + (coordinate.latitude - o.latitude_reference) * o.latitude_coefficient,
            longitude_factor=1.0 + (coordinate.longitude - o.longitude_reference) * o.longitude_coefficient,
        )


@dataclass(frozen=True)
class SeasonalVariation:
    m2_factor: float
    s2_factor: float
    k1_factor: float
    o1_factor: float
    seasonal_angle_deg: float
    day_of_year: int
    latitude_effect: float

    def factor(self, constituent: str) -> float:
        factors = {
            'M2': self.m2_factor,
            'S2': self.s2_factor,
            'K1': self.k1_factor,
            'O1': self.o1_factor,
        }
        return factors.get(constituent, 1.0)

    @property
    def magnitude(self) -> float:
        return max(
            abs(self.m2_factor - 1.0),
            abs(self.s2_factor - 1.0),
            abs(self.k1_factor - 1.0),
            abs(self.o1_factor - 1.0),
        )


class SeasonalVariationCalculator:
    """
    Seasonal modulation of constituent amplitudes.

    The seasonal angle is zero at the spring equinox. Each constituent uses
    its own trig function and phase offset so that their seasonal peaks fall
    at different times of year:

    - M2: cos(angle)
    - S2: cos(angle + 45)
    - K1: sin(angle)
    - O1: sin(angle + 90)

    The modulation grows with latitude (zero at the equator, full at the poles).
    """

    def __init__(self, options: SeasonalVariationOptions = SeasonalVariationOptions()):
        self.options = options

    def calculate(self, coordinate: Coordinate, date: datetime) -> SeasonalVariation:
        o = self.options
        # tm_yday is leap-year aware (1-366) in the date's own calendar
        day_of_year = date.timetuple().tm_yday
        angle = (day_of_year - o.spring_equinox_day_of_year) / 365.0 * 360.0
        latitude_effect = abs(coordinate.latitude) / 90.0

        def modulation(weight: float, trig, offset_deg: float) -> float:
            return 1.0 + weight * trig(math.radians(angle + offset_deg)) * latitude_effect

        return SeasonalVariation(
            m2_factor=modulation(o.m2_weight, math.cos, 0.0),
            s2_factor=modulation(o.s2_weight, math.cos, 45.0),
            k1_factor=modulation(o.k1_weight, math.sin, 0.0),
            o1_factor=modulation(o.o1_weight, math.sin, 90.0),
            seasonal_angle_deg=angle,
            day_of_year=day_of_year,
            latitude_effect=latitude_effect,
        )
