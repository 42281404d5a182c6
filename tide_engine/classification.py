"""
Moon-age tide classification.

The moon age comes from the mean synodic month anchored at the first mean
new moon after J2000.0. That is accurate to within a day or so, which is
plenty for naming the day's tide; it needs no ephemeris download.
"""
import math
from datetime import datetime, timezone
from typing import Sequence, Tuple

from .models import TideType

SYNODIC_MONTH_DAYS = 29.530588861

# Julian date of the mean new moon of 2000-01-06
REFERENCE_NEW_MOON_JD = 2451550.09766

# Julian date of the Unix epoch
UNIX_EPOCH_JD = 2440587.5

FULL_MOON_AGE_DAYS = 14.77


# Moon-age bands in days, inclusive, first match wins; anything unmatched is
# a medium tide
TIDE_TYPE_BANDS: Tuple[Tuple[TideType, float, float], ...] = (
    (TideType.SPRING, 0.0, 2.5),
    (TideType.SPRING, 12.0, 17.5),
    (TideType.SPRING, 27.5, SYNODIC_MONTH_DAYS),
    (TideType.NEAP, 5.5, 9.0),
    (TideType.NEAP, 20.0, 24.0),
    (TideType.LONG, 9.0, 10.5),
    (TideType.LONG, 24.0, 25.5),
    (TideType.YOUNG, 10.5, 12.0),
    (TideType.YOUNG, 25.5, 27.5),
)


def julian_date(date: datetime) -> float:
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return date.timestamp() / 86400.0 + UNIX_EPOCH_JD


def moon_age(date: datetime) -> float:
    """
    Days since the last mean new moon.

    Args:
        date: Instant (naive values are taken as UTC)

    Returns:
        Moon age in [0, SYNODIC_MONTH_DAYS)
    """
    age = (julian_date(date) - REFERENCE_NEW_MOON_JD) % SYNODIC_MONTH_DAYS
    # float modulo can land exactly on the period
    if age >= SYNODIC_MONTH_DAYS:
        age = 0.0
    return age


def classify_tide_type(
    age: float,
    bands: Sequence[Tuple[TideType, float, float]] = TIDE_TYPE_BANDS,
) -> TideType:
    """
    Name the tide for a moon age.

    With the default bands:
    - spring: within 2.5 days of new moon, or 12-17.5 days (around full moon)
    - neap: 5.5-9 and 20-24 days (around the quarters)
    - long: the 1.5 days after neap
    - young: from the end of long tide until spring tide starts
    - medium: everything else
    """
    if age < 0:
        raise ValueError(f"Moon age must not be negative, got {age}")
    if age >= 29.53:
        age = 0.0

    for tide_type, lower, upper in bands:
        if lower <= age <= upper:
            return tide_type
    return TideType.MEDIUM


def tide_strength(age: float) -> float:
    """
    Relative tidal range for a moon age.

    90 at new and full moon, 50 at the quarters.
    """
    new_moon = math.cos(age / 29.53 * 2 * math.pi)
    full_moon = math.cos((age - FULL_MOON_AGE_DAYS) / 29.53 * 2 * math.pi)
    return 10.0 + (max(new_moon, full_moon) + 1.0) * 40.0
