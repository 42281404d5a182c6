"""
Tide Calculation Service - cached harmonic tide prediction

Ties the pipeline together for callers:

    initialize -> health_check -> cache lookup -> synthesize on miss -> store

A calculation runs, in order, the coordinate variation, the seasonal
variation, the regional correction lookup and the synthesizer. Results are
cached by (rounded coordinate, UTC instant, options fingerprint); identical
concurrent requests share a single computation.

Accuracy expectations:
- This is a stylised four-constituent model, not a station-grade prediction.
- Near a calibrated station (Japanese bays in the built-in catalog) results
  are reported as high accuracy; elsewhere they fall back to the uncorrected
  constituents with low accuracy and confidence.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .cache import CacheKey, CacheRecordStore, CacheStats, PersistedCacheRecord, TideCache
from .config import EngineSettings
from .constituents import HarmonicConstituentTable
from .errors import CacheCorruptionError, InitializationError, NotInitializedError
from .models import Coordinate, HealthReport, HealthStatus, TideInfo
from .regional import RegionalCorrectionResolver
from .stations import RegionalStationCatalog
from .synthesizer import TideSynthesizer
from .variation import CoordinateVariationCalculator, SeasonalVariationCalculator

logger = logging.getLogger(__name__)


class TideCalculationService:
    """
    Entry point of the tide engine.

    Reference data (constituent table and station catalog) may be injected;
    anything left out is loaded by `initialize()` from the built-in defaults,
    or for stations from `settings.station_catalog_path` when set.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        table: Optional[HarmonicConstituentTable] = None,
        catalog: Optional[RegionalStationCatalog] = None,
        record_store: Optional[CacheRecordStore] = None,
    ):
        self.settings = settings or EngineSettings()
        self.record_store = record_store
        self.table = table
        self.catalog = catalog

        self._init_lock = threading.Lock()
        self._initialized = False
        self._init_error: Optional[str] = None

        self.cache: Optional[TideCache] = None
        self.synthesizer: Optional[TideSynthesizer] = None
        self._coordinate_calculator = CoordinateVariationCalculator(self.settings.coordinate)
        self._seasonal_calculator = SeasonalVariationCalculator(self.settings.seasonal)
        self._resolver: Optional[RegionalCorrectionResolver] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Load and validate reference data. A no-op once it has succeeded.

        Raises:
            InitializationError: if the constituent table or station catalog
            is missing or malformed
        """
        with self._init_lock:
            if self._initialized:
                return
            try:
                table = self.table if self.table is not None else HarmonicConstituentTable.default()
                catalog = self.catalog if self.catalog is not None else self._load_catalog()
                if self.settings.cache.capacity < 1:
                    raise InitializationError(
                        f"Cache capacity must be at least 1, got {self.settings.cache.capacity}"
                    )
                if self.settings.cache.ttl_hours <= 0:
                    raise InitializationError(
                        f"Cache ttl must be positive, got {self.settings.cache.ttl_hours} hours"
                    )
            except InitializationError as e:
                self._init_error = str(e)
                logger.error("Tide service initialization failed: %s", e)
                raise

            self.table = table
            self.catalog = catalog
            self._resolver = RegionalCorrectionResolver(catalog, self.settings.resolver)
            self.synthesizer = TideSynthesizer(table, self.settings)
            self.cache = TideCache(
                self.settings.cache.capacity,
                record_store=self.record_store,
                ttl=timedelta(hours=self.settings.cache.ttl_hours),
            )
            self._init_error = None
            self._initialized = True

        logger.info(
            "Tide service initialized: %d constituents, %d stations %s, options %s",
            len(table), len(catalog), catalog.count_by_quality(), self.settings.variation_version,
        )

    def _load_catalog(self) -> RegionalStationCatalog:
        path = self.settings.station_catalog_path
        if path:
            return RegionalStationCatalog.from_json_file(path)
        return RegionalStationCatalog.default()

    def health_check(self) -> HealthReport:
        """
        Report whether calculations can run.

        - unhealthy: not initialized (or initialization failed)
        - degraded: initialized with fewer stations than the configured coverage
        - healthy: initialized with full station coverage
        """
        if not self._initialized:
            if self._init_error:
                return HealthReport(HealthStatus.UNHEALTHY, f"Initialization failed: {self._init_error}")
            return HealthReport(HealthStatus.UNHEALTHY, "Tide service is not initialized")

        stations = len(self.catalog)
        required = self.settings.resolver.min_station_coverage
        if stations == 0:
            return HealthReport(
                HealthStatus.DEGRADED,
                "No regional stations loaded; predictions use uncorrected constituents",
            )
        if stations < required:
            return HealthReport(
                HealthStatus.DEGRADED,
                f"Reduced station coverage: {stations} of {required} stations loaded",
            )
        return HealthReport(HealthStatus.HEALTHY, f"{stations} regional stations loaded")

    @property
    def station_count(self) -> int:
        return len(self.catalog) if self._initialized else 0

    def cache_key_for(self, coordinate: Coordinate, date: datetime) -> CacheKey:
        return CacheKey.build(
            coordinate,
            _as_utc(date),
            self.settings.variation_version,
            precision=self.settings.cache.coordinate_precision,
        )

    def calculate_tide_info(self, coordinate: Coordinate, date: datetime) -> TideInfo:
        """
        Tide series, extrema and metadata for a window starting at `date`.

        Args:
            coordinate: Location in decimal degrees
            date: Window start; timezone-aware (naive values are taken as UTC).
                Callers wanting a local day pass that day's local midnight.

        Returns:
            TideInfo (timestamps in UTC)

        Raises:
            InvalidCoordinateError: if the coordinate is out of range
            NotInitializedError: if the service has not been initialized
            SynthesisError: if the model produced non-finite values
        """
        coordinate.validated()
        if self.health_check().status is HealthStatus.UNHEALTHY:
            raise NotInitializedError("Call initialize() before calculating tides")

        utc_date = _as_utc(date)
        key = self.cache_key_for(coordinate, utc_date)
        # Compute from the rounded coordinate so equal keys give equal results
        rounded = coordinate.rounded(self.settings.cache.coordinate_precision)
        return self.cache.get_or_compute(key, lambda: self._compute(rounded, utc_date))

    def _compute(self, coordinate: Coordinate, date: datetime) -> TideInfo:
        coordinate_variation = self._coordinate_calculator.calculate(coordinate)
        seasonal_variation = self._seasonal_calculator.calculate(coordinate, date)
        regional = self._resolver.resolve(coordinate)
        return self.synthesizer.synthesize(
            coordinate, date, coordinate_variation, seasonal_variation, regional
        )

    def warm_cache(self, records: Iterable[Mapping[str, Any]]) -> int:
        """
        Restore persisted cache records into memory.

        Corrupted records are logged and skipped. Records computed under
        other calculation options can never be hit and are skipped too.

        Returns:
            Number of records restored
        """
        self._require_initialized()
        restored = stale = 0
        for raw in records:
            try:
                record = PersistedCacheRecord.from_dict(raw)
                if record.cache_key().variation_version != self.settings.variation_version:
                    stale += 1
                    continue
                if self.cache.restore(record):
                    restored += 1
            except CacheCorruptionError as e:
                logger.warning("Skipping corrupted cache record: %s", e)
        logger.info("Restored %d cache records (%d from other options skipped)", restored, stale)
        return restored

    def export_cache(self) -> List[Dict[str, Any]]:
        """Every cached entry as a persisted-record dict."""
        self._require_initialized()
        return [record.to_dict() for record in self.cache.records()]

    def cache_stats(self) -> CacheStats:
        self._require_initialized()
        return self.cache.stats

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Call initialize() first")


def _as_utc(date: datetime) -> datetime:
    if date.tzinfo is None:
        return date.replace(tzinfo=timezone.utc)
    return date.astimezone(timezone.utc)
