"""
Regional correction lookup.

Finds the catalogued station nearest to a coordinate and turns its
calibration into per-constituent amplitude factors and phase offsets.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .config import ResolverOptions
from .models import Accuracy, Coordinate
from .stations import RegionalStation, RegionalStationCatalog, haversine_km

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionalCorrection:
    """
    Calibration applied to one request.

    `distance_km` is the distance to the nearest station even when that
    station was too far away to be applied (infinite for an empty catalog).
    """
    station: Optional[RegionalStation]
    distance_km: float
    data_quality: Accuracy
    amplitude_factors: Dict[str, float] = field(default_factory=dict)
    phase_offsets_deg: Dict[str, float] = field(default_factory=dict)

    @property
    def matched(self) -> bool:
        return self.station is not None

    @property
    def station_id(self) -> Optional[str]:
        return self.station.id if self.station else None

    def amplitude_factor(self, constituent: str) -> float:
        return self.amplitude_factors.get(constituent, 1.0)

    def phase_offset(self, constituent: str) -> float:
        return self.phase_offsets_deg.get(constituent, 0.0)


def normalize_phase(phase_deg: float) -> float:
    """Wrap a phase into (-180, 180] degrees."""
    wrapped = math.fmod(phase_deg, 360.0)
    if wrapped > 180.0:
        wrapped -= 360.0
    elif wrapped <= -180.0:
        wrapped += 360.0
    return wrapped


class RegionalCorrectionResolver:
    def __init__(self, catalog: RegionalStationCatalog, options: ResolverOptions = ResolverOptions()):
        self.catalog = catalog
        self.options = options

    def nearest_stations(self, coordinate: Coordinate, limit: int = 10) -> List[Tuple[RegionalStation, float]]:
        """
        Stations ordered by distance.

        Equidistant stations are ordered by higher data quality first, then
        by smaller id, so the order is fully deterministic.

        Args:
            coordinate: Query point
            limit: Maximum number of stations returned

        Returns:
            List of (station, distance_km) tuples
        """
        ranked = [(station, haversine_km(coordinate, station.coordinate)) for station in self.catalog]
        ranked.sort(key=lambda pair: (pair[1], -pair[0].data_quality.rank, pair[0].id))
        return ranked[:limit]

    def resolve(self, coordinate: Coordinate) -> RegionalCorrection:
        nearest = self.nearest_stations(coordinate, limit=1)
        if not nearest:
            logger.warning("Station catalog is empty; using neutral regional correction")
            return RegionalCorrection(station=None, distance_km=math.inf, data_quality=Accuracy.LOW)

        station, distance = nearest[0]
        if distance > self.options.max_station_distance_km:
            logger.warning(
                "No station within %.0f km of (%s, %s); nearest is %s at %.1f km",
                self.options.max_station_distance_km,
                coordinate.latitude, coordinate.longitude, station.id, distance,
            )
            return RegionalCorrection(station=None, distance_km=distance, data_quality=Accuracy.LOW)

        low, high = self.options.min_amplitude_factor, self.options.max_amplitude_factor
        amplitude_factors = {
            name: max(low, min(high, factor))
            for name, factor in station.amplitude_factors.items()
        }
        phase_offsets = {
            name: normalize_phase(offset)
            for name, offset in station.phase_offsets_deg.items()
        }
        logger.debug("Using station %s at %.1f km", station.id, distance)
        return RegionalCorrection(
            station=station,
            distance_km=distance,
            data_quality=station.data_quality,
            amplitude_factors=amplitude_factors,
            phase_offsets_deg=phase_offsets,
        )
