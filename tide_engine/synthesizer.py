"""
Tide Synthesizer - harmonic tide series and extrema

Combines the base constituent table with coordinate, seasonal and regional
adjustments, evaluates the sum-of-cosines height model on a regular grid and
finds the high/low tides inside the window.

Height model:
    level(t) = baseline + Σ A_i * cos(ω_i * hours_since_J2000(t) + φ_i)

where A_i and φ_i are the effective amplitude (cm) and phase (deg) and ω_i
the constituent's angular speed (deg/hour).

Extrema are located where the first difference of the sampled series changes
sign and refined with parabolic interpolation through the three samples
around the turning point, so event times are not limited to the grid.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .classification import classify_tide_type, moon_age, tide_strength
from .config import ALGORITHM_VERSION, J2000_EPOCH, EngineSettings
from .constituents import HarmonicConstituentTable
from .errors import SynthesisError
from .models import (
    Accuracy,
    Coordinate,
    EffectiveConstituent,
    ExtremumType,
    TideExtremum,
    TideInfo,
    TideSample,
    TideState,
)
from .regional import RegionalCorrection
from .variation import CoordinateVariation, SeasonalVariation

logger = logging.getLogger(__name__)


class TideSynthesizer:
    """
    Stateless tide calculator for one constituent table and one set of options.

    Safe to share between threads: nothing is mutated after construction.
    """

    def __init__(self, table: HarmonicConstituentTable, settings: Optional[EngineSettings] = None):
        self.table = table
        self.settings = settings or EngineSettings()

    def build_effective_constituents(
        self,
        coordinate_variation: CoordinateVariation,
        seasonal_variation: SeasonalVariation,
        regional: RegionalCorrection,
    ) -> Tuple[List[EffectiveConstituent], List[str]]:
        """
        Apply all adjustments to the base table.

        A negative amplitude product is clamped to 0 and reported as a
        warning rather than flipping the constituent's sign.

        Returns:
            (effective constituents, warnings)

        Raises:
            SynthesisError: if an adjusted amplitude or phase is not finite
        """
        constituents: List[EffectiveConstituent] = []
        warnings: List[str] = []

        for base in self.table:
            coordinate_factor, coordinate_offset = coordinate_variation.adjustment(base.name)
            amplitude = (
                base.base_amplitude
                * coordinate_factor
                * seasonal_variation.factor(base.name)
                * regional.amplitude_factor(base.name)
            )
            phase = base.base_phase_deg + coordinate_offset + regional.phase_offset(base.name)

            if not (np.isfinite(amplitude) and np.isfinite(phase)):
                raise SynthesisError(
                    f"Non-finite effective constituent {base.name} "
                    f"(amplitude={amplitude}, phase={phase})"
                )
            if amplitude < 0:
                message = f"{base.name} amplitude {amplitude:.3f} cm clamped to 0"
                logger.warning(message)
                warnings.append(message)
                amplitude = 0.0

            constituents.append(EffectiveConstituent(
                name=base.name,
                amplitude=float(amplitude),
                phase_deg=float(phase),
                frequency_deg_per_hour=base.frequency_deg_per_hour,
            ))

        return constituents, warnings

    def levels_at(self, constituents: Sequence[EffectiveConstituent], times: Sequence[datetime]) -> np.ndarray:
        """
        Evaluate the height model at the given instants (vectorized).

        Args:
            constituents: Effective constituents
            times: Timezone-aware instants

        Returns:
            Array of levels in cm, one per instant

        Raises:
            SynthesisError: if any level is not finite
        """
        if not times:
            return np.array([])

        hours = np.array([(t - J2000_EPOCH).total_seconds() / 3600.0 for t in times])
        levels = np.full(len(hours), float(self.settings.synthesis.baseline_cm))

        for c in constituents:
            levels += c.amplitude * np.cos(np.radians(c.frequency_deg_per_hour * hours + c.phase_deg))

        if not np.all(np.isfinite(levels)):
            raise SynthesisError("Tide model produced non-finite levels")
        return levels

    def sample_series(
        self,
        constituents: Sequence[EffectiveConstituent],
        start: datetime,
        end: datetime,
        interval: Optional[timedelta] = None,
    ) -> List[TideSample]:
        """
        Sample the model on a regular grid covering [start, end).

        The first sample is at `start` and the last strictly before `end`.
        """
        if interval is None:
            interval = timedelta(minutes=self.settings.synthesis.sample_interval_minutes)
        if interval <= timedelta(0):
            raise ValueError(f"Sampling interval must be positive, got {interval}")

        times: List[datetime] = []
        t = start
        while t < end:
            times.append(t)
            t = start + interval * len(times)

        levels = self.levels_at(constituents, times)
        return [TideSample(timestamp=ts, level_cm=float(level)) for ts, level in zip(times, levels)]

    def find_extrema(self, samples: Sequence[TideSample]) -> List[TideExtremum]:
        """
        Find high and low tides in an evenly spaced series.

        A turning point needs the level to rise then fall (or fall then
        rise); flat runs in between are skipped, so a monotonic series with
        flat stretches, or one with fewer than three samples, yields an
        empty list. A flat top or bottom is reported once, at its middle.

        Args:
            samples: Evenly spaced samples in time order

        Returns:
            Extrema in time order
        """
        if len(samples) < 3:
            return []

        heights = np.array([s.level_cm for s in samples])
        diffs = np.diff(heights)
        events: List[TideExtremum] = []

        for idx in range(1, len(heights) - 1):
            before = diffs[idx - 1]
            if before == 0:
                continue
            end = idx
            while end < len(diffs) and diffs[end] == 0:
                end += 1
            if end == len(diffs):
                # Series ends flat
                break
            after = diffs[end]
            if before > 0 > after:
                extremum_type = ExtremumType.HIGH
            elif before < 0 < after:
                extremum_type = ExtremumType.LOW
            else:
                continue

            t2 = samples[idx].timestamp
            if end > idx:
                timestamp = t2 + (samples[end].timestamp - t2) / 2
                level = float(heights[idx])
            else:
                # Vertex of the parabola through the three equally spaced
                # samples; denom is non-zero since the slopes differ in sign
                h1, h2, h3 = heights[idx - 1], heights[idx], heights[idx + 1]
                dt = samples[idx + 1].timestamp - t2
                denom = h1 - 2 * h2 + h3
                timestamp = t2 + dt * float(0.5 * (h1 - h3) / denom)
                level = float(h2 - 0.125 * (h1 - h3) * (h1 - h3) / denom)

            events.append(TideExtremum(
                type=extremum_type,
                timestamp=timestamp,
                level_cm=level,
            ))

        return events

    def assess_accuracy(
        self,
        regional: RegionalCorrection,
        coordinate_variation: CoordinateVariation,
        seasonal_variation: SeasonalVariation,
    ) -> Accuracy:
        """Station quality, one tier lower when the model is extrapolating."""
        threshold = self.settings.synthesis.large_adjustment_threshold
        accuracy = regional.data_quality
        if coordinate_variation.magnitude > threshold or seasonal_variation.magnitude > threshold:
            accuracy = accuracy.degrade()
        return accuracy

    def confidence_score(self, accuracy: Accuracy, distance_km: float) -> int:
        """
        0-100 trust score.

        Starts from the accuracy tier and loses points with distance to the
        nearest station. Low-accuracy results always stay under the
        configured low-confidence ceiling.
        """
        o = self.settings.confidence
        base = {
            Accuracy.HIGH: o.high_base,
            Accuracy.MEDIUM: o.medium_base,
            Accuracy.LOW: o.low_base,
        }[accuracy]
        penalty = min(distance_km * o.distance_penalty_per_km, o.max_distance_penalty)
        score = base - penalty
        if accuracy is Accuracy.LOW:
            score = min(score, o.low_confidence_ceiling - 1)
        return int(round(max(0.0, min(100.0, score))))

    def synthesize(
        self,
        coordinate: Coordinate,
        date: datetime,
        coordinate_variation: CoordinateVariation,
        seasonal_variation: SeasonalVariation,
        regional: RegionalCorrection,
    ) -> TideInfo:
        """
        Compute the full TideInfo for a window starting at `date`.

        Args:
            coordinate: Location (already validated)
            date: Timezone-aware window start and "current" instant
            coordinate_variation: Coordinate adjustment for the location
            seasonal_variation: Seasonal adjustment for (location, date)
            regional: Regional correction for the location

        Returns:
            TideInfo

        Raises:
            SynthesisError: if the model produced non-finite values
        """
        o = self.settings.synthesis
        constituents, warnings = self.build_effective_constituents(
            coordinate_variation, seasonal_variation, regional
        )
        if not regional.matched:
            warnings.append(
                f"No regional station within {self.settings.resolver.max_station_distance_km:.0f} km; "
                "using uncorrected constituents"
            )

        end = date + timedelta(hours=o.window_hours)
        interval = timedelta(minutes=o.sample_interval_minutes)
        # One extra sample on each side so turning points right at the window
        # edges still have neighbours
        padded = self.sample_series(constituents, date - interval, end + interval, interval)
        samples = [s for s in padded if date <= s.timestamp < end]
        extrema = [e for e in self.find_extrema(padded) if date <= e.timestamp < end]

        # Rising or falling at the requested instant
        now_level, soon_level = self.levels_at(constituents, [date, date + timedelta(minutes=1)])
        next_event = next((e for e in extrema if e.timestamp > date), None)
        if next_event and next_event.timestamp - date <= timedelta(minutes=o.slack_window_minutes):
            current_state = TideState.HIGH if next_event.type is ExtremumType.HIGH else TideState.LOW
        elif soon_level >= now_level:
            current_state = TideState.RISING
        else:
            current_state = TideState.FALLING

        accuracy = self.assess_accuracy(regional, coordinate_variation, seasonal_variation)
        age = moon_age(date)

        logger.debug(
            "Synthesized %d samples, %d extrema for (%s, %s) at %s",
            len(samples), len(extrema), coordinate.latitude, coordinate.longitude, date.isoformat(),
        )

        return TideInfo(
            samples=tuple(samples),
            extrema=tuple(extrema),
            accuracy=accuracy,
            confidence_score=self.confidence_score(accuracy, regional.distance_km),
            algorithm_version=ALGORITHM_VERSION,
            station_id=regional.station_id,
            current_level_cm=float(now_level),
            current_state=current_state,
            next_event=next_event,
            tide_type=classify_tide_type(age),
            tide_strength=round(tide_strength(age), 1),
            moon_age_days=round(age, 2),
            warnings=tuple(warnings),
        )
