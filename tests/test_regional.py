"""
Unit tests for the regional correction resolver
"""
import math

import pytest

from tide_engine.config import ResolverOptions
from tide_engine.models import Accuracy, Coordinate, DataQuality
from tide_engine.regional import RegionalCorrectionResolver, normalize_phase
from tide_engine.stations import RegionalStation, RegionalStationCatalog


def make_station(station_id, lat, lon, quality=DataQuality.HIGH, **kwargs):
    return RegionalStation(station_id, station_id.title(), Coordinate(lat, lon), data_quality=quality, **kwargs)


@pytest.fixture
def resolver():
    """Resolver over the built-in catalog."""
    return RegionalCorrectionResolver(RegionalStationCatalog.default())


class TestNearestStation:
    """Tests for picking the station."""

    def test_exact_station_match(self, resolver):
        correction = resolver.resolve(Coordinate(35.6762, 139.6503))
        assert correction.matched
        assert correction.station_id == 'tokyo_bay'
        assert correction.distance_km == pytest.approx(0.0)
        assert correction.data_quality is Accuracy.HIGH

    def test_nearby_point_uses_closest(self, resolver):
        # Just off Yokohama
        correction = resolver.resolve(Coordinate(35.40, 139.60))
        assert correction.station_id == 'yokohama'

    def test_medium_quality_station(self, resolver):
        correction = resolver.resolve(Coordinate(34.39, 132.46))
        assert correction.station_id == 'hiroshima_bay'
        assert correction.data_quality is Accuracy.MEDIUM

    def test_nearest_stations_sorted(self, resolver):
        ranked = resolver.nearest_stations(Coordinate(35.6762, 139.6503))
        distances = [distance for _, distance in ranked]
        assert distances == sorted(distances)
        assert [station.id for station, _ in ranked][:2] == ['tokyo_bay', 'yokohama']


class TestTieBreak:
    """Equidistant stations resolve deterministically."""

    def test_higher_quality_wins(self):
        catalog = RegionalStationCatalog([
            make_station('a_station', 10.0, 10.0, DataQuality.MEDIUM),
            make_station('b_station', 10.0, 10.0, DataQuality.HIGH),
        ])
        correction = RegionalCorrectionResolver(catalog).resolve(Coordinate(10.0, 10.5))
        assert correction.station_id == 'b_station'

    def test_smaller_id_wins_on_equal_quality(self):
        catalog = RegionalStationCatalog([
            make_station('zulu', 10.0, 10.0),
            make_station('alpha', 10.0, 10.0),
        ])
        correction = RegionalCorrectionResolver(catalog).resolve(Coordinate(10.0, 10.5))
        assert correction.station_id == 'alpha'

    def test_symmetric_positions(self):
        """Stations mirrored around the query point are equally far."""
        catalog = RegionalStationCatalog([
            make_station('north', 1.0, 0.0, DataQuality.LOW),
            make_station('south', -1.0, 0.0, DataQuality.HIGH),
        ])
        correction = RegionalCorrectionResolver(catalog).resolve(Coordinate(0.0, 0.0))
        assert correction.station_id == 'south'


class TestNeutralCorrection:
    """No station close enough means no regional correction."""

    def test_open_ocean(self, resolver):
        correction = resolver.resolve(Coordinate(0.0, 0.0))
        assert not correction.matched
        assert correction.station_id is None
        assert correction.data_quality is Accuracy.LOW
        assert correction.distance_km > 200
        assert correction.amplitude_factor('M2') == 1.0
        assert correction.phase_offset('M2') == 0.0

    def test_threshold_is_configurable(self):
        catalog = RegionalStationCatalog([make_station('only', 10.0, 10.0)])
        point = Coordinate(11.0, 10.0)  # ~111 km away
        assert not RegionalCorrectionResolver(catalog, ResolverOptions(max_station_distance_km=100)).resolve(point).matched
        assert RegionalCorrectionResolver(catalog, ResolverOptions(max_station_distance_km=150)).resolve(point).matched

    def test_empty_catalog(self):
        correction = RegionalCorrectionResolver(RegionalStationCatalog([])).resolve(Coordinate(35.0, 139.0))
        assert not correction.matched
        assert math.isinf(correction.distance_km)
        assert correction.data_quality is Accuracy.LOW

    def test_fallback_is_logged(self, resolver, caplog):
        with caplog.at_level('WARNING'):
            resolver.resolve(Coordinate(0.0, 0.0))
        assert 'No station within' in caplog.text


class TestCorrectionValues:
    """Station factors are clamped and phases normalised."""

    def test_amplitude_factors_clamped(self):
        station = make_station('x', 10.0, 10.0, amplitude_factors={'M2': 3.0, 'S2': 0.1, 'K1': 1.3})
        correction = RegionalCorrectionResolver(RegionalStationCatalog([station])).resolve(Coordinate(10.0, 10.0))
        assert correction.amplitude_factor('M2') == 2.0
        assert correction.amplitude_factor('S2') == 0.5
        assert correction.amplitude_factor('K1') == 1.3

    def test_phase_offsets_normalised(self):
        station = make_station('x', 10.0, 10.0, phase_offsets_deg={'M2': 270.0, 'S2': -200.0})
        correction = RegionalCorrectionResolver(RegionalStationCatalog([station])).resolve(Coordinate(10.0, 10.0))
        assert correction.phase_offset('M2') == pytest.approx(-90.0)
        assert correction.phase_offset('S2') == pytest.approx(160.0)

    def test_tokyo_factors(self, resolver):
        correction = resolver.resolve(Coordinate(35.6762, 139.6503))
        assert correction.amplitude_factor('M2') == pytest.approx(1.45 / 1.2)
        assert correction.phase_offset('S2') == pytest.approx(28.0)

    @pytest.mark.parametrize("phase,expected", [
        (0.0, 0.0),
        (180.0, 180.0),
        (-180.0, 180.0),
        (540.0, 180.0),
        (359.0, -1.0),
        (-725.0, -5.0),
    ])
    def test_normalize_phase(self, phase, expected):
        assert normalize_phase(phase) == pytest.approx(expected)
