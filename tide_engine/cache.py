"""
Bounded LRU cache of computed TideInfo with request deduplication.

Every lookup, insert, eviction and in-flight decision happens under one lock.
The computation itself runs outside the lock once a caller has claimed the
key; other callers asking for the same key wait on that caller's Future
instead of starting a second computation.

Entries expire a fixed time after they were created; an expired entry is a
miss. Entries can be exported to and restored from `PersistedCacheRecord`,
the plain record shape handed to an external store.
"""
import json
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from .errors import CacheCorruptionError
from .models import Accuracy, Coordinate, TideInfo

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheKey:
    """
    Identity of a request.

    Equality uses only the three hash parts. The rounded coordinate and the
    UTC instant are carried along so a persisted record can be written
    without any other context.
    """
    coordinate_hash: str
    date_hash: str
    variation_version: str
    latitude: float = field(default=0.0, compare=False)
    longitude: float = field(default=0.0, compare=False)

    @classmethod
    def build(
        cls,
        coordinate: Coordinate,
        date: datetime,
        variation_version: str,
        precision: int = 4,
    ) -> "CacheKey":
        """
        Derive a key from request inputs.

        Args:
            coordinate: Request coordinate (rounded to `precision` decimals)
            date: Timezone-aware instant (naive values are taken as UTC)
            variation_version: Fingerprint of the calculation options
            precision: Coordinate decimals kept in the key

        Returns:
            CacheKey
        """
        rounded = coordinate.rounded(precision)
        # + 0.0 folds -0.0 into 0.0
        latitude = rounded.latitude + 0.0
        longitude = rounded.longitude + 0.0
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        return cls(
            coordinate_hash=f"{latitude:.{precision}f},{longitude:.{precision}f}",
            date_hash=date.astimezone(timezone.utc).isoformat(),
            variation_version=variation_version,
            latitude=latitude,
            longitude=longitude,
        )

    @property
    def value(self) -> str:
        return f"{self.coordinate_hash}|{self.date_hash}|{self.variation_version}"

    def __str__(self) -> str:
        return self.value


@dataclass
class CacheEntry:
    key: CacheKey
    data: TideInfo
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime
    calculation_time_ms: int

    def touch(self, now: datetime) -> None:
        self.last_accessed_at = now

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @property
    def recency(self) -> Tuple[datetime, datetime]:
        """Eviction order: least recently accessed first, then oldest."""
        return self.last_accessed_at, self.created_at


@dataclass(frozen=True)
class PersistedCacheRecord:
    """Storage shape of one cache entry."""
    key: str
    latitude: float
    longitude: float
    target_date: str
    tide_data: str
    algorithm_version: str
    accuracy: Accuracy
    calculation_time_ms: int
    confidence_score: int
    created_at: datetime
    last_accessed_at: datetime

    @classmethod
    def from_entry(cls, entry: CacheEntry) -> "PersistedCacheRecord":
        return cls(
            key=entry.key.value,
            latitude=entry.key.latitude,
            longitude=entry.key.longitude,
            target_date=entry.key.date_hash,
            tide_data=json.dumps(entry.data.to_dict(), sort_keys=True),
            algorithm_version=entry.data.algorithm_version,
            accuracy=entry.data.accuracy,
            calculation_time_ms=entry.calculation_time_ms,
            confidence_score=entry.data.confidence_score,
            created_at=entry.created_at,
            last_accessed_at=entry.last_accessed_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'target_date': self.target_date,
            'tide_data': self.tide_data,
            'algorithm_version': self.algorithm_version,
            'accuracy': self.accuracy.value,
            'calculation_time_ms': self.calculation_time_ms,
            'confidence_score': self.confidence_score,
            'created_at': self.created_at.isoformat(),
            'last_accessed_at': self.last_accessed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PersistedCacheRecord":
        """
        Validate and rebuild a stored record.

        Raises:
            CacheCorruptionError: if the record does not have the expected shape
        """
        try:
            record = cls(
                key=_require_str(data['key'], 'key'),
                latitude=float(data['latitude']),
                longitude=float(data['longitude']),
                target_date=_require_str(data['target_date'], 'target_date'),
                tide_data=_require_str(data['tide_data'], 'tide_data'),
                algorithm_version=_require_str(data['algorithm_version'], 'algorithm_version'),
                accuracy=Accuracy(data['accuracy']),
                calculation_time_ms=int(data['calculation_time_ms']),
                confidence_score=int(data['confidence_score']),
                created_at=_parse_aware(data['created_at']),
                last_accessed_at=_parse_aware(data['last_accessed_at']),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruptionError(f"Malformed cache record: {e}") from e
        # Checks the embedded TideInfo as well
        record.to_tide_info()
        return record

    def to_tide_info(self) -> TideInfo:
        """
        Rebuild the cached TideInfo from this record alone.

        Raises:
            CacheCorruptionError: if the payload is malformed or disagrees
            with the record's own metadata
        """
        try:
            info = TideInfo.from_dict(json.loads(self.tide_data))
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruptionError(f"Malformed tide data in record {self.key}: {e}") from e

        if (info.algorithm_version != self.algorithm_version
                or info.accuracy is not self.accuracy
                or info.confidence_score != self.confidence_score):
            raise CacheCorruptionError(f"Record {self.key} metadata does not match its tide data")
        return info

    def cache_key(self) -> CacheKey:
        """
        Rebuild the CacheKey this record was stored under.

        Raises:
            CacheCorruptionError: if the key string is not a cache key
        """
        parts = self.key.split('|')
        if len(parts) != 3 or not all(parts):
            raise CacheCorruptionError(f"Malformed cache key {self.key!r}")
        coordinate_hash, date_hash, variation_version = parts
        return CacheKey(
            coordinate_hash=coordinate_hash,
            date_hash=date_hash,
            variation_version=variation_version,
            latitude=self.latitude,
            longitude=self.longitude,
        )


class CacheRecordStore(Protocol):
    """External storage for persisted cache records."""

    def load(self, key: str) -> Optional[Mapping[str, Any]]:
        ...

    def save(self, record: PersistedCacheRecord) -> None:
        ...


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    dedup_waits: int
    evictions: int
    expirations: int
    size: int
    capacity: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hits': self.hits,
            'misses': self.misses,
            'dedup_waits': self.dedup_waits,
            'evictions': self.evictions,
            'expirations': self.expirations,
            'size': self.size,
            'capacity': self.capacity,
            'hit_rate': round(self.hit_rate, 4),
        }


class TideCache:
    """
    Thread-safe LRU cache keyed by CacheKey.

    Entries are kept in access order, so the front of the map is always the
    least recently accessed entry (ties in `last_accessed_at` resolve to the
    one created first). Entries live for `ttl` from their creation; expired
    entries are misses and `cleanup_expired()` sweeps them out.
    """

    def __init__(
        self,
        capacity: int = 100,
        record_store: Optional[CacheRecordStore] = None,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utc_now,
    ):
        if capacity < 1:
            raise ValueError(f"Cache capacity must be at least 1, got {capacity}")
        if ttl <= timedelta(0):
            raise ValueError(f"Cache ttl must be positive, got {ttl}")
        self.capacity = capacity
        self.record_store = record_store
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._dedup_waits = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: CacheKey) -> Optional[TideInfo]:
        """Cached TideInfo for `key` (touching the entry), or None."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._touch(entry)
            self._hits += 1
            return entry.data

    def get_or_compute(self, key: CacheKey, compute: Callable[[], TideInfo]) -> TideInfo:
        """
        Cached TideInfo for `key`, computing it at most once.

        If another caller is already computing the same key this call waits
        for that result. A failed computation is not cached and its error
        reaches every caller waiting on it.

        Args:
            key: Request key
            compute: Zero-argument function producing the TideInfo

        Returns:
            TideInfo
        """
        with self._lock:
            entry = self._live_entry(key)
            if entry is not None:
                self._touch(entry)
                self._hits += 1
                logger.debug("Cache hit %s", key)
                return entry.data

            future = self._in_flight.get(key.value)
            if future is None:
                future = Future()
                self._in_flight[key.value] = future
                self._misses += 1
                owner = True
            else:
                self._dedup_waits += 1
                owner = False

        if not owner:
            logger.debug("Waiting for in-flight computation of %s", key)
            return future.result()

        logger.debug("Cache miss %s", key)
        try:
            data, calculation_time_ms, stored_created_at = self._load_or_compute(key, compute)
        except BaseException as e:
            with self._lock:
                del self._in_flight[key.value]
            future.set_exception(e)
            raise

        now = self._clock()
        created_at = stored_created_at or now
        entry = CacheEntry(
            key=key,
            data=data,
            created_at=created_at,
            last_accessed_at=now,
            expires_at=created_at + self.ttl,
            calculation_time_ms=calculation_time_ms,
        )
        with self._lock:
            self._insert(entry)
            del self._in_flight[key.value]
        future.set_result(data)

        if self.record_store is not None and stored_created_at is None:
            self._save(PersistedCacheRecord.from_entry(entry))
        return data

    def restore(self, record: PersistedCacheRecord) -> bool:
        """
        Load a persisted record into memory, ordered by its last access.

        Returns:
            True if the record is now cached; False if the key is already
            cached, the record has expired, or it is older than every entry
            of a full cache
        """
        data = record.to_tide_info()
        key = record.cache_key()
        with self._lock:
            if self._live_entry(key) is not None:
                return False
            entry = CacheEntry(
                key=key,
                data=data,
                created_at=record.created_at,
                last_accessed_at=record.last_accessed_at,
                expires_at=record.created_at + self.ttl,
                calculation_time_ms=record.calculation_time_ms,
            )
            if entry.is_expired(self._clock()):
                logger.debug("Not restoring expired record %s", record.key)
                return False
            self._insert(entry)
            return record.key in self._entries

    def cleanup_expired(self) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [value for value, entry in self._entries.items() if entry.is_expired(now)]
            for value in expired:
                del self._entries[value]
            self._expirations += len(expired)
        if expired:
            logger.debug("Removed %d expired cache entries", len(expired))
        return len(expired)

    def records(self) -> List[PersistedCacheRecord]:
        """Persisted form of every entry, least recently accessed first."""
        with self._lock:
            entries = list(self._entries.values())
        return [PersistedCacheRecord.from_entry(entry) for entry in entries]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                dedup_waits=self._dedup_waits,
                evictions=self._evictions,
                expirations=self._expirations,
                size=len(self._entries),
                capacity=self.capacity,
            )

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, CacheKey):
            return False
        with self._lock:
            return key.value in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _live_entry(self, key: CacheKey) -> Optional[CacheEntry]:
        """Entry for `key`, dropping it first if it has expired. Lock held."""
        entry = self._entries.get(key.value)
        if entry is not None and entry.is_expired(self._clock()):
            del self._entries[key.value]
            self._expirations += 1
            logger.debug("Cache entry %s expired", key)
            return None
        return entry

    def _touch(self, entry: CacheEntry) -> None:
        entry.touch(self._clock())
        self._entries.move_to_end(entry.key.value)

    def _insert(self, entry: CacheEntry) -> None:
        self._entries.pop(entry.key.value, None)
        newest = next(reversed(self._entries.values()), None)
        self._entries[entry.key.value] = entry
        if newest is not None and entry.recency < newest.recency:
            # Restored records can be older than live entries
            self._entries = OrderedDict(
                sorted(self._entries.items(), key=lambda item: item[1].recency)
            )
        while len(self._entries) > self.capacity:
            evicted_key, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("Evicted %s", evicted_key)

    def _load_or_compute(self, key: CacheKey, compute: Callable[[], TideInfo]):
        """Returns (data, calculation_time_ms, created_at of the stored record or None)."""
        stored = self._load(key)
        if stored is not None:
            return stored.to_tide_info(), stored.calculation_time_ms, stored.created_at

        started = time.perf_counter()
        data = compute()
        calculation_time_ms = int(round((time.perf_counter() - started) * 1000))
        return data, calculation_time_ms, None

    def _load(self, key: CacheKey) -> Optional[PersistedCacheRecord]:
        if self.record_store is None:
            return None
        try:
            raw = self.record_store.load(key.value)
        except Exception:
            logger.warning("Failed to load cache record %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            record = PersistedCacheRecord.from_dict(raw)
            if record.key != key.value:
                raise CacheCorruptionError(f"Stored record key {record.key} does not match {key}")
        except CacheCorruptionError as e:
            logger.warning("Ignoring corrupted cache record for %s: %s", key, e)
            return None
        if record.created_at + self.ttl <= self._clock():
            logger.debug("Ignoring expired cache record for %s", key)
            return None
        logger.debug("Loaded %s from record store", key)
        return record

    def _save(self, record: PersistedCacheRecord) -> None:
        try:
            self.record_store.save(record)
        except Exception:
            logger.warning("Failed to persist cache record %s", record.key, exc_info=True)


def _require_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    return value


def _parse_aware(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(_require_str(value, 'timestamp'))
    if dt.tzinfo is None:
        raise ValueError(f"Timestamp {value!r} has no timezone")
    return dt
