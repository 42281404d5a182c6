"""
Engine configuration.

Every tunable of the prediction pipeline is an explicit, immutable option
object passed into the component that uses it. `load_settings()` builds the
full set from defaults plus environment overrides (a `.env` file is honoured
through python-dotenv).

Environment variables:
- TIDE_CACHE_CAPACITY: maximum number of cached TideInfo entries
- TIDE_CACHE_TTL_HOURS: lifetime of a cached entry, counted from its creation
- TIDE_COORDINATE_PRECISION: decimals kept when normalising request coordinates
- TIDE_MAX_STATION_DISTANCE_KM: beyond this no regional station is applied
- TIDE_MIN_STATION_COVERAGE: fewer stations than this reports "degraded" health
- TIDE_SAMPLE_INTERVAL_MINUTES: series sampling interval
- TIDE_WINDOW_HOURS: length of the synthesized window
- TIDE_BASELINE_CM: mean-sea-level offset added to every level
- TIDE_LARGE_ADJUSTMENT_THRESHOLD: adjustment magnitude that degrades accuracy
- TIDE_STATION_CATALOG: optional JSON file replacing the built-in stations
"""
import hashlib
import json
import logging
import os
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ALGORITHM_VERSION = "hybrid-astronomical-v1"

# J2000.0 epoch, zero point of every constituent phase
J2000_EPOCH = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@dataclass(frozen=True)
class CoordinateVariationOptions:
    latitude_reference: float = 35.0
    longitude_reference: float = 135.0
    latitude_coefficient: float = 0.02
    longitude_coefficient: float = 0.01


@dataclass(frozen=True)
class SeasonalVariationOptions:
    spring_equinox_day_of_year: int = 80
    m2_weight: float = 0.15
    s2_weight: float = 0.20
    k1_weight: float = 0.25
    o1_weight: float = 0.18


@dataclass(frozen=True)
class ResolverOptions:
    max_station_distance_km: float = 200.0
    min_amplitude_factor: float = 0.5
    max_amplitude_factor: float = 2.0
    min_station_coverage: int = 3


@dataclass(frozen=True)
class SynthesisOptions:
    baseline_cm: float = 0.0
    sample_interval_minutes: int = 15
    window_hours: int = 24
    large_adjustment_threshold: float = 0.25
    # next extremum closer than this turns rising/falling into high/low
    slack_window_minutes: int = 10


@dataclass(frozen=True)
class ConfidenceOptions:
    high_base: float = 90.0
    medium_base: float = 70.0
    low_base: float = 35.0
    distance_penalty_per_km: float = 0.1
    max_distance_penalty: float = 30.0
    low_confidence_ceiling: float = 40.0


@dataclass(frozen=True)
class CacheOptions:
    capacity: int = 100
    coordinate_precision: int = 4
    ttl_hours: float = 24.0


@dataclass(frozen=True)
class EngineSettings:
    coordinate: CoordinateVariationOptions = field(default_factory=CoordinateVariationOptions)
    seasonal: SeasonalVariationOptions = field(default_factory=SeasonalVariationOptions)
    resolver: ResolverOptions = field(default_factory=ResolverOptions)
    synthesis: SynthesisOptions = field(default_factory=SynthesisOptions)
    confidence: ConfidenceOptions = field(default_factory=ConfidenceOptions)
    cache: CacheOptions = field(default_factory=CacheOptions)
    station_catalog_path: Optional[str] = None

    @property
    def variation_version(self) -> str:
        """Fingerprint of every option that can change a computed TideInfo."""
        return variation_options_version(self)


def variation_options_version(settings: EngineSettings) -> str:
    """
    Deterministic fingerprint of the options that feed a calculation.

    Cache capacity and the catalog path are left out: they never change the
    numbers of a result for a given key.

    Args:
        settings: Engine settings

    Returns:
        Short hex digest prefixed with the algorithm version
    """
    payload: Dict[str, object] = {
        "algorithm": ALGORITHM_VERSION,
        "coordinate": asdict(settings.coordinate),
        "seasonal": asdict(settings.seasonal),
        "resolver": asdict(settings.resolver),
        "synthesis": asdict(settings.synthesis),
        "confidence": asdict(settings.confidence),
        "coordinate_precision": settings.cache.coordinate_precision,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:12]
    return f"{ALGORITHM_VERSION}:{digest}"


def _get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            logger.warning("Ignoring malformed %s=%r", key, value)
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring malformed %s=%r", key, value)
    return default


def load_settings(base: Optional[EngineSettings] = None) -> EngineSettings:
    """
    Build engine settings from defaults and environment overrides.

    Args:
        base: Settings to start from (defaults when omitted)

    Returns:
        EngineSettings with any TIDE_* environment overrides applied
    """
    load_dotenv()
    settings = base or EngineSettings()

    cache = replace(
        settings.cache,
        capacity=_get_int_env("TIDE_CACHE_CAPACITY", settings.cache.capacity),
        ttl_hours=_get_float_env("TIDE_CACHE_TTL_HOURS", settings.cache.ttl_hours),
        coordinate_precision=_get_int_env(
            "TIDE_COORDINATE_PRECISION", settings.cache.coordinate_precision
        ),
    )
    resolver = replace(
        settings.resolver,
        max_station_distance_km=_get_float_env(
            "TIDE_MAX_STATION_DISTANCE_KM", settings.resolver.max_station_distance_km
        ),
        min_station_coverage=_get_int_env(
            "TIDE_MIN_STATION_COVERAGE", settings.resolver.min_station_coverage
        ),
    )
    synthesis = replace(
        settings.synthesis,
        baseline_cm=_get_float_env("TIDE_BASELINE_CM", settings.synthesis.baseline_cm),
        sample_interval_minutes=_get_int_env(
            "TIDE_SAMPLE_INTERVAL_MINUTES", settings.synthesis.sample_interval_minutes
        ),
        window_hours=_get_int_env("TIDE_WINDOW_HOURS", settings.synthesis.window_hours),
        large_adjustment_threshold=_get_float_env(
            "TIDE_LARGE_ADJUSTMENT_THRESHOLD", settings.synthesis.large_adjustment_threshold
        ),
    )
    catalog_path = os.environ.get("TIDE_STATION_CATALOG") or settings.station_catalog_path

    return replace(
        settings,
        cache=cache,
        resolver=resolver,
        synthesis=synthesis,
        station_catalog_path=catalog_path,
    )
