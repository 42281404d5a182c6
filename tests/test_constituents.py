"""
Unit tests for the harmonic constituent table
"""
import math

import pytest

from tide_engine.constituents import CONSTITUENT_FREQUENCIES, HarmonicConstituentTable
from tide_engine.errors import InitializationError
from tide_engine.models import HarmonicConstituent


class TestDefaultTable:
    """Tests for the built-in constituent table."""

    def test_default_has_principal_constituents(self):
        table = HarmonicConstituentTable.default()
        assert table.names == ['M2', 'S2', 'K1', 'O1']
        assert len(table) == 4

    def test_frequencies_match_reference_speeds(self):
        table = HarmonicConstituentTable.default()
        assert table.get('M2').frequency_deg_per_hour == pytest.approx(28.984, abs=1e-3)
        assert table.get('S2').frequency_deg_per_hour == pytest.approx(30.0)
        assert table.get('K1').frequency_deg_per_hour == pytest.approx(15.041, abs=1e-3)
        assert table.get('O1').frequency_deg_per_hour == pytest.approx(13.943, abs=1e-3)

    def test_amplitudes_are_non_negative(self):
        for constituent in HarmonicConstituentTable.default():
            assert constituent.base_amplitude >= 0

    def test_membership(self):
        table = HarmonicConstituentTable.default()
        assert 'M2' in table
        assert 'M4' not in table


class TestTableValidation:
    """Malformed reference data must fail initialization."""

    def test_empty_table_rejected(self):
        with pytest.raises(InitializationError):
            HarmonicConstituentTable([])

    def test_duplicate_rejected(self):
        m2 = HarmonicConstituent('M2', 100.0, 0.0, 28.984104)
        with pytest.raises(InitializationError, match="Duplicate"):
            HarmonicConstituentTable([m2, m2])

    def test_negative_amplitude_rejected(self):
        with pytest.raises(InitializationError, match="negative"):
            HarmonicConstituentTable([HarmonicConstituent('M2', -1.0, 0.0, 28.984104)])

    def test_nan_rejected(self):
        with pytest.raises(InitializationError, match="non-finite"):
            HarmonicConstituentTable([HarmonicConstituent('M2', math.nan, 0.0, 28.984104)])

    def test_zero_frequency_rejected(self):
        with pytest.raises(InitializationError, match="positive frequency"):
            HarmonicConstituentTable([HarmonicConstituent('M2', 1.0, 0.0, 0.0)])


class TestFromRecords:
    """Tests for building a table from plain records."""

    def test_known_frequency_is_filled_in(self):
        table = HarmonicConstituentTable.from_records([
            {'name': 'M4', 'base_amplitude': 5.0, 'base_phase_deg': 10.0},
        ])
        assert table.get('M4').frequency_deg_per_hour == CONSTITUENT_FREQUENCIES['M4']

    def test_explicit_frequency(self):
        table = HarmonicConstituentTable.from_records([
            {'name': 'X1', 'base_amplitude': 5.0, 'base_phase_deg': 10.0, 'frequency_deg_per_hour': 14.5},
        ])
        assert table.get('X1').frequency_deg_per_hour == 14.5

    def test_unknown_frequency_rejected(self):
        with pytest.raises(InitializationError, match="No frequency"):
            HarmonicConstituentTable.from_records([
                {'name': 'X1', 'base_amplitude': 5.0, 'base_phase_deg': 10.0},
            ])

    def test_missing_field_rejected(self):
        with pytest.raises(InitializationError, match="Malformed"):
            HarmonicConstituentTable.from_records([{'name': 'M2', 'base_amplitude': 5.0}])

    def test_non_numeric_rejected(self):
        with pytest.raises(InitializationError):
            HarmonicConstituentTable.from_records([
                {'name': 'M2', 'base_amplitude': 'big', 'base_phase_deg': 0.0},
            ])
