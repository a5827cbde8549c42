"""
Epoch Atlas - Periods Module

Maps a region and a cursor year onto period boundaries:
- Bucket granularity per era (wide in antiquity, single years near the present)
- Period end and next cursor
- Full enumeration of a region's periods

Everything here is a pure function of the region and the year, so any
sequence can be re-derived from a persisted cursor.
"""

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from config import (
    REGIONS, REGION_ORIGINS, TERMINAL_YEAR,
    GRANULARITY_THRESHOLDS, FINE_GRANULARITY, FIXED_GRANULARITY_REGIONS,
)


# Accepts "1500-1550", "1500 – 1550", "1500—1550"
_LABEL_PATTERN = re.compile(r'^\s*(-?\d+)\s*[-–—]\s*(-?\d+)\s*$')


@dataclass(frozen=True)
class Period:
    """An inclusive range of years covered by one round"""

    start: int
    end: int

    @property
    def label(self) -> str:
        """Canonical label, used as the record key within a region"""
        return f"{self.start}-{self.end}"

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "label": self.label}

    def __str__(self) -> str:
        return self.label


def _check_region(region: str):
    if region not in REGION_ORIGINS:
        raise ValueError(f"Unknown region: {region!r}")


def get_origin(region: str) -> int:
    """Year the region's first period starts"""
    _check_region(region)
    return REGION_ORIGINS[region]


def get_granularity(region: str, cursor_year: int) -> int:
    """Bucket length in years for the period starting at cursor_year"""
    _check_region(region)
    if region in FIXED_GRANULARITY_REGIONS:
        return FIXED_GRANULARITY_REGIONS[region]

    for threshold, size in GRANULARITY_THRESHOLDS:
        if cursor_year < threshold:
            return size
    return FINE_GRANULARITY


def period_end(region: str, cursor_year: int) -> int:
    """
    End year of the period starting at cursor_year.

    Buckets are aligned on the region's origin, so a cursor anywhere inside
    a bucket resolves to that bucket's end. Capped at the terminal year.
    """
    origin = get_origin(region)
    if cursor_year < origin:
        raise ValueError(f"Year {cursor_year} is before {region} starts ({origin})")

    size = get_granularity(region, cursor_year)
    buckets_elapsed = (cursor_year - origin) // size
    end = origin + (buckets_elapsed + 1) * size
    return min(end, TERMINAL_YEAR)


def next_cursor(region: str, cursor_year: int) -> int:
    """
    Start year of the period after the one starting at cursor_year.

    Coarse periods are inclusive ranges ("1500-1550" then "1551-1600"), so
    the next one starts the year after. Single-year periods chain end to
    start. Once the terminal year is reached the cursor stays there.
    """
    end = period_end(region, cursor_year)
    if end >= TERMINAL_YEAR:
        return TERMINAL_YEAR
    if get_granularity(region, cursor_year) == FINE_GRANULARITY:
        return end
    return end + 1


def is_finished(region: str, cursor_year: int) -> bool:
    """True once a region's cursor has moved past its last period"""
    _check_region(region)
    return cursor_year >= TERMINAL_YEAR


def current_period(region: str, cursor_year: int) -> Optional[Period]:
    """The period a cursor points at, or None if the region is finished"""
    if is_finished(region, cursor_year):
        return None
    return Period(cursor_year, period_end(region, cursor_year))


def enumerate_periods(region: str) -> Iterator[Period]:
    """Walk every period of a region from its origin to the terminal year"""
    cursor = get_origin(region)
    while True:
        end = period_end(region, cursor)
        yield Period(cursor, end)
        if end >= TERMINAL_YEAR:
            return
        cursor = next_cursor(region, cursor)


def list_periods(region: str) -> List[Period]:
    return list(enumerate_periods(region))


def count_periods(region: str) -> int:
    return sum(1 for _ in enumerate_periods(region))


def all_combinations() -> List[Tuple[str, Period]]:
    """Every (region, period) pair across the whole map, in a stable order"""
    return [(region, period) for region in REGIONS for period in enumerate_periods(region)]


def align_cursor(region: str, year: int) -> int:
    """
    Snap an arbitrary year to a valid period start.

    Older saves stepped cursors by a flat 50 years, which can land between
    period starts. Such cursors move forward to the next real start.
    """
    origin = get_origin(region)
    if year <= origin:
        return origin
    if year >= TERMINAL_YEAR:
        return TERMINAL_YEAR
    for period in enumerate_periods(region):
        if period.start >= year:
            return period.start
    return TERMINAL_YEAR


def snap_period(region: str, period: Period) -> Period:
    """
    The region's real bucket for a possibly misaligned period.

    Older saves used flat 50-year ranges ("1550-1600"). Those map onto the
    bucket holding their midpoint, so one logical period has one key.
    """
    origin = get_origin(region)
    midpoint = (period.start + period.end) // 2
    midpoint = max(origin, min(midpoint, TERMINAL_YEAR - 1))
    match = None
    for candidate in enumerate_periods(region):
        if candidate == period:
            return candidate
        if candidate.start > midpoint:
            break
        match = candidate
    return match


def parse_period_label(label: str) -> Optional[Period]:
    """Parse "1500-1550" (hyphen or dash) back into a Period"""
    if not isinstance(label, str):
        return None
    match = _LABEL_PATTERN.match(label)
    if not match:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    if end <= start:
        return None
    return Period(start, end)


def normalize_period_label(label: str) -> Optional[str]:
    """Canonical form of a period label, or None if it can't be parsed"""
    period = parse_period_label(label)
    return period.label if period else None
