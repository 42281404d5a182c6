"""
Unit tests for regional stations and the station catalog
"""
import json

import pytest

from tide_engine.errors import InitializationError
from tide_engine.models import Coordinate, DataQuality
from tide_engine.stations import RegionalStation, RegionalStationCatalog, haversine_km


class TestHaversine:
    """Tests for great-circle distance."""

    def test_zero_distance(self):
        tokyo = Coordinate(35.6762, 139.6503)
        assert haversine_km(tokyo, tokyo) == 0.0

    def test_one_degree_of_latitude(self):
        distance = haversine_km(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0))
        assert distance == pytest.approx(111.19, abs=0.1)

    def test_tokyo_to_osaka(self):
        """Tokyo Bay to Osaka Bay is roughly 400 km."""
        distance = haversine_km(Coordinate(35.6762, 139.6503), Coordinate(34.6937, 135.5023))
        assert 380 < distance < 420

    def test_symmetric(self):
        a, b = Coordinate(10.0, 20.0), Coordinate(-30.0, 150.0)
        assert haversine_km(a, b) == pytest.approx(haversine_km(b, a))


class TestRegionalStation:
    """Tests for station construction."""

    def test_from_observation_normalises_amplitudes(self):
        station = RegionalStation.from_observation('test', {
            'name': 'Test Bay',
            'lat': 35.0,
            'lon': 139.0,
            'm2_amplitude_m': 1.8,
            'm2_phase_deg': 30.0,
            's2_amplitude_m': 0.25,
            's2_phase_deg': 40.0,
            'data_quality': 'medium',
        })
        assert station.amplitude_factor('M2') == pytest.approx(1.5)
        assert station.amplitude_factor('S2') == pytest.approx(0.5)
        assert station.amplitude_factor('K1') == pytest.approx(1.5)
        assert station.amplitude_factor('O1') == pytest.approx(1.5)
        assert station.phase_offset('M2') == 30.0
        assert station.phase_offset('K1') == 0.0
        assert station.data_quality is DataQuality.MEDIUM

    def test_unknown_constituent_is_neutral(self):
        station = RegionalStation('x', 'X', Coordinate(0.0, 0.0))
        assert station.amplitude_factor('M4') == 1.0
        assert station.phase_offset('M4') == 0.0

    def test_dict_round_trip(self):
        station = RegionalStation(
            'x', 'X', Coordinate(1.0, 2.0),
            amplitude_factors={'M2': 1.1},
            phase_offsets_deg={'M2': 5.0},
            data_quality=DataQuality.HIGH,
        )
        assert RegionalStation.from_dict(station.to_dict()) == station


class TestDefaultCatalog:
    """Tests for the built-in observed stations."""

    def test_contains_observed_bays(self):
        catalog = RegionalStationCatalog.default()
        assert len(catalog) == 4
        for station_id in ('tokyo_bay', 'yokohama', 'osaka_bay', 'hiroshima_bay'):
            assert catalog.get(station_id) is not None

    def test_tokyo_bay_factors(self):
        tokyo = RegionalStationCatalog.default().get('tokyo_bay')
        assert tokyo.amplitude_factor('M2') == pytest.approx(1.45 / 1.2)
        assert tokyo.amplitude_factor('S2') == pytest.approx(0.68 / 0.5)
        assert tokyo.phase_offset('M2') == 25.0
        assert tokyo.data_quality is DataQuality.HIGH

    def test_count_by_quality(self):
        counts = RegionalStationCatalog.default().count_by_quality()
        assert counts == {'high': 3, 'medium': 1, 'low': 0}

    def test_unknown_station(self):
        assert RegionalStationCatalog.default().get('nowhere') is None


class TestCatalogValidation:
    """Malformed station data must fail initialization."""

    def test_duplicate_id_rejected(self):
        station = RegionalStation('x', 'X', Coordinate(0.0, 0.0))
        with pytest.raises(InitializationError, match="Duplicate"):
            RegionalStationCatalog([station, station])

    def test_invalid_coordinate_rejected(self):
        with pytest.raises(InitializationError, match="invalid coordinates"):
            RegionalStationCatalog([RegionalStation('x', 'X', Coordinate(95.0, 0.0))])

    def test_negative_factor_rejected(self):
        station = RegionalStation('x', 'X', Coordinate(0.0, 0.0), amplitude_factors={'M2': -1.0})
        with pytest.raises(InitializationError, match="amplitude factor"):
            RegionalStationCatalog([station])

    def test_empty_catalog_allowed(self):
        assert len(RegionalStationCatalog([])) == 0

    def test_bad_quality_rejected(self):
        with pytest.raises(InitializationError, match="Malformed"):
            RegionalStationCatalog.from_records([{
                'id': 'x', 'name': 'X', 'latitude': 0.0, 'longitude': 0.0, 'data_quality': 'excellent',
            }])


class TestJsonCatalog:
    """Tests for loading a catalog from a JSON file."""

    def test_load(self, tmp_path):
        path = tmp_path / 'stations.json'
        path.write_text(json.dumps([
            {
                'id': 'a',
                'name': 'Station A',
                'latitude': 10.0,
                'longitude': 20.0,
                'amplitude_factors': {'M2': 1.2},
                'phase_offsets_deg': {'M2': 3.0},
                'data_quality': 'high',
            },
        ]))
        catalog = RegionalStationCatalog.from_json_file(str(path))
        assert len(catalog) == 1
        assert catalog.get('a').amplitude_factor('M2') == 1.2

    def test_missing_file(self, tmp_path):
        with pytest.raises(InitializationError, match="Cannot load"):
            RegionalStationCatalog.from_json_file(str(tmp_path / 'missing.json'))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / 'stations.json'
        path.write_text('{not json')
        with pytest.raises(InitializationError):
            RegionalStationCatalog.from_json_file(str(path))

    def test_not_a_list(self, tmp_path):
        path = tmp_path / 'stations.json'
        path.write_text('{"id": "a"}')
        with pytest.raises(InitializationError, match="JSON list"):
            RegionalStationCatalog.from_json_file(str(path))
