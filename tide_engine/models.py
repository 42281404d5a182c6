"""
Value types shared by the tide prediction pipeline.

All of these are immutable. TideInfo is the only type collaborators see and it
round-trips through a plain dict (`to_dict`/`from_dict`) so it can be stored
and rebuilt without any other context.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidCoordinateError


class Accuracy(str, Enum):
    """
    Three-tier quality scale.

    Used both for a station's data quality and for the accuracy of a
    prediction, which starts from the station's tier and can only go down.
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _ACCURACY_RANK[self]

    def degrade(self) -> "Accuracy":
        """One tier lower (LOW stays LOW)."""
        if self is Accuracy.HIGH:
            return Accuracy.MEDIUM
        return Accuracy.LOW


_ACCURACY_RANK = {Accuracy.HIGH: 2, Accuracy.MEDIUM: 1, Accuracy.LOW: 0}

# Stations and predictions share the scale
DataQuality = Accuracy


class ExtremumType(str, Enum):
    HIGH = "high"
    LOW = "low"


class TideState(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    HIGH = "high"
    LOW = "low"


class TideType(str, Enum):
    """Moon-age classification of the day's tide range."""
    SPRING = "spring"
    MEDIUM = "medium"
    NEAP = "neap"
    LONG = "long"
    YOUNG = "young"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    @property
    def is_valid(self) -> bool:
        # NaN fails both comparisons
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0

    def validated(self) -> "Coordinate":
        """Return self, or raise InvalidCoordinateError when out of range."""
        if not self.is_valid:
            raise InvalidCoordinateError(self.latitude, self.longitude)
        return self

    def rounded(self, decimals: int) -> "Coordinate":
        return Coordinate(round(self.latitude, decimals), round(self.longitude, decimals))


@dataclass(frozen=True)
class HarmonicConstituent:
    name: str
    base_amplitude: float
    base_phase_deg: float
    frequency_deg_per_hour: float


@dataclass(frozen=True)
class EffectiveConstituent:
    """A constituent after coordinate, seasonal and regional adjustment."""
    name: str
    amplitude: float
    phase_deg: float
    frequency_deg_per_hour: float


@dataclass(frozen=True)
class TideSample:
    timestamp: datetime
    level_cm: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "level_cm": self.level_cm}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TideSample":
        return cls(
            timestamp=_parse_timestamp(data["timestamp"]),
            level_cm=_finite_float(data["level_cm"], "level_cm"),
        )


@dataclass(frozen=True)
class TideExtremum:
    type: ExtremumType
    timestamp: datetime
    level_cm: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "level_cm": self.level_cm,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TideExtremum":
        return cls(
            type=ExtremumType(data["type"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            level_cm=_finite_float(data["level_cm"], "level_cm"),
        )


@dataclass(frozen=True)
class TideInfo:
    """
    Public result of a tide calculation.

    `samples` covers the requested window on a regular grid; `extrema` holds
    the refined high/low events inside that window. The remaining fields
    describe the requested instant and how far the prediction can be trusted.
    """
    samples: Tuple[TideSample, ...]
    extrema: Tuple[TideExtremum, ...]
    accuracy: Accuracy
    confidence_score: int
    algorithm_version: str
    station_id: Optional[str] = None
    current_level_cm: float = 0.0
    current_state: TideState = TideState.RISING
    next_event: Optional[TideExtremum] = None
    tide_type: TideType = TideType.MEDIUM
    tide_strength: float = 0.0
    moon_age_days: float = 0.0
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "samples": [s.to_dict() for s in self.samples],
            "extrema": [e.to_dict() for e in self.extrema],
            "accuracy": self.accuracy.value,
            "confidence_score": self.confidence_score,
            "algorithm_version": self.algorithm_version,
            "station_id": self.station_id,
            "current_level_cm": self.current_level_cm,
            "current_state": self.current_state.value,
            "next_event": self.next_event.to_dict() if self.next_event else None,
            "tide_type": self.tide_type.value,
            "tide_strength": self.tide_strength,
            "moon_age_days": self.moon_age_days,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TideInfo":
        """
        Rebuild a TideInfo from `to_dict()` output.

        Raises:
            KeyError, TypeError, ValueError: if the dict does not have the
            expected shape or holds non-finite levels
        """
        samples: List[TideSample] = [TideSample.from_dict(s) for s in data["samples"]]
        extrema: List[TideExtremum] = [TideExtremum.from_dict(e) for e in data["extrema"]]
        next_event = data["next_event"]
        score = data["confidence_score"]
        if not isinstance(score, int) or isinstance(score, bool) or not 0 <= score <= 100:
            raise ValueError(f"confidence_score must be an int in [0, 100], got {score!r}")
        return cls(
            samples=tuple(samples),
            extrema=tuple(extrema),
            accuracy=Accuracy(data["accuracy"]),
            confidence_score=score,
            algorithm_version=str(data["algorithm_version"]),
            station_id=data["station_id"],
            current_level_cm=_finite_float(data["current_level_cm"], "current_level_cm"),
            current_state=TideState(data["current_state"]),
            next_event=TideExtremum.from_dict(next_event) if next_event is not None else None,
            tide_type=TideType(data["tide_type"]),
            tide_strength=float(data["tide_strength"]),
            moon_age_days=float(data["moon_age_days"]),
            warnings=tuple(str(w) for w in data["warnings"]),
        )


@dataclass(frozen=True)
class HealthReport:
    status: HealthStatus
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"status": self.status.value, "message": self.message}


def _parse_timestamp(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        raise ValueError(f"Timestamp {value!r} has no timezone")
    return dt


def _finite_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise TypeError(f"{name} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return number
