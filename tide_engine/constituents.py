"""
Harmonic constituent reference data.

The default table models the four principal constituents (two semidiurnal,
two diurnal). Amplitudes are in centimetres at the reference point
(35N, 135E); phases are in degrees relative to the J2000.0 epoch.
"""
import logging
import math
from typing import Dict, Iterable, Iterator, List, Mapping, Tuple

from .errors import InitializationError
from .models import HarmonicConstituent

logger = logging.getLogger(__name__)


# Angular speeds of the supported constituents (degrees per hour)
CONSTITUENT_FREQUENCIES = {
    'M2': 28.984104,   # Principal lunar semidiurnal
    'S2': 30.0,        # Principal solar semidiurnal
    'K1': 15.041069,   # Lunisolar diurnal
    'O1': 13.943035,   # Principal lunar diurnal
    'Mf': 1.098033,    # Lunisolar fortnightly
    'Mm': 0.544375,    # Lunar monthly
    'M4': 57.968208,   # Shallow water overtide of M2
    'MS4': 58.984104,  # Shallow water compound of M2 and S2
}

# K1 and O1 are scaled from M2 (0.30 and 0.25 of it)
DEFAULT_CONSTITUENTS: Tuple[HarmonicConstituent, ...] = (
    HarmonicConstituent('M2', 120.0, 15.0, CONSTITUENT_FREQUENCIES['M2']),
    HarmonicConstituent('S2', 50.0, 20.0, CONSTITUENT_FREQUENCIES['S2']),
    HarmonicConstituent('K1', 36.0, 105.0, CONSTITUENT_FREQUENCIES['K1']),
    HarmonicConstituent('O1', 30.0, 155.0, CONSTITUENT_FREQUENCIES['O1']),
)


class HarmonicConstituentTable:
    """Validated, read-only set of harmonic constituents keyed by name."""

    def __init__(self, constituents: Iterable[HarmonicConstituent]):
        self._constituents: Dict[str, HarmonicConstituent] = {}
        for constituent in constituents:
            _validate_constituent(constituent)
            if constituent.name in self._constituents:
                raise InitializationError(f"Duplicate constituent: {constituent.name}")
            self._constituents[constituent.name] = constituent

        if not self._constituents:
            raise InitializationError("Harmonic constituent table is empty")

    @classmethod
    def default(cls) -> "HarmonicConstituentTable":
        return cls(DEFAULT_CONSTITUENTS)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, object]]) -> "HarmonicConstituentTable":
        """
        Build a table from plain records.

        Each record needs `name`, `base_amplitude` and `base_phase_deg`;
        `frequency_deg_per_hour` defaults to the reference speed of a known
        constituent.

        Raises:
            InitializationError: if a record is incomplete or malformed
        """
        constituents: List[HarmonicConstituent] = []
        for record in records:
            try:
                name = str(record['name'])
                frequency = record.get('frequency_deg_per_hour', CONSTITUENT_FREQUENCIES.get(name))
                if frequency is None:
                    raise InitializationError(f"No frequency known for constituent {name}")
                constituents.append(HarmonicConstituent(
                    name=name,
                    base_amplitude=float(record['base_amplitude']),
                    base_phase_deg=float(record['base_phase_deg']),
                    frequency_deg_per_hour=float(frequency),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise InitializationError(f"Malformed constituent record {record!r}: {e}") from e
        return cls(constituents)

    def get(self, name: str) -> HarmonicConstituent:
        return self._constituents[name]

    @property
    def names(self) -> List[str]:
        return list(self._constituents)

    def __contains__(self, name: object) -> bool:
        return name in self._constituents

    def __iter__(self) -> Iterator[HarmonicConstituent]:
        return iter(self._constituents.values())

    def __len__(self) -> int:
        return len(self._constituents)


def _validate_constituent(constituent: HarmonicConstituent) -> None:
    if not constituent.name:
        raise InitializationError("Constituent name must not be empty")
    values = (constituent.base_amplitude, constituent.base_phase_deg, constituent.frequency_deg_per_hour)
    if not all(math.isfinite(v) for v in values):
        raise InitializationError(f"Constituent {constituent.name} has non-finite values")
    if constituent.base_amplitude < 0:
        raise InitializationError(f"Constituent {constituent.name} has negative amplitude")
    if constituent.frequency_deg_per_hour <= 0:
        raise InitializationError(f"Constituent {constituent.name} must have a positive frequency")
