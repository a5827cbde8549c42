"""
Epoch Atlas - Scoring Module

Tracks completed rounds and derives everything else from them:
- Per-round points (3 for a perfect round, 2 for a pass)
- Diversity bonus for scoring in several regions
- Level tier lookup

The score is never accumulated separately. It is always recomputed from
the round records, so it can be reproduced exactly after a reload.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from config import (
    REGIONS, ROUND_POINTS, DIVERSITY_BONUS_PERCENT, LEVEL_TIERS,
)
from periods import Period, parse_period_label, snap_period, count_periods

logger = logging.getLogger(__name__)


def points_for(correct_count: int) -> int:
    """Points a round is worth for a given number of correct answers"""
    return ROUND_POINTS.get(correct_count, 0)


def bonus_percent_for(regions_played: int) -> int:
    """Diversity bonus percent for the number of distinct regions scored in"""
    return DIVERSITY_BONUS_PERCENT.get(regions_played, 0)


@dataclass(frozen=True)
class RoundRecord:
    """One scored (region, period) pair"""

    region: str
    period: str
    points: int

    @property
    def key(self) -> Tuple[str, str]:
        return (self.region, self.period)

    def to_dict(self) -> dict:
        return {"region": self.region, "period": self.period, "points": self.points}


@dataclass(frozen=True)
class LevelTier:
    """A named bracket of total score"""

    name: str
    min_points: int
    max_points: int

    def contains(self, total: int) -> bool:
        return self.min_points <= total <= self.max_points

    def to_dict(self) -> dict:
        return {"name": self.name, "min_points": self.min_points, "max_points": self.max_points}


@dataclass(frozen=True)
class ScoreAggregate:
    """
    Score breakdown derived from a set of round records.

    Scoring:
    - Base: sum of round points
    - Bonus: 0-30% of base depending on how many regions were scored in
    - Total: base + bonus (bonus rounded down)
    """

    base_score: int = 0
    bonus_score: int = 0
    total_score: int = 0
    regions_played: int = 0
    bonus_percent: int = 0

    def to_dict(self) -> dict:
        return {
            "base_score": self.base_score,
            "bonus_score": self.bonus_score,
            "total_score": self.total_score,
            "regions_played": self.regions_played,
            "bonus_percent": self.bonus_percent,
        }


def aggregate(records: Iterable[RoundRecord]) -> ScoreAggregate:
    """Pure, order-independent score computation over round records"""
    records = list(records)
    base = sum(record.points for record in records)
    regions_played = len({record.region for record in records if record.points > 0})
    percent = bonus_percent_for(regions_played)
    bonus = (base * percent) // 100
    return ScoreAggregate(
        base_score=base,
        bonus_score=bonus,
        total_score=base + bonus,
        regions_played=regions_played,
        bonus_percent=percent,
    )


def max_attainable_score() -> int:
    """Total for a player who aced every period of every region"""
    combos = sum(count_periods(region) for region in REGIONS)
    base = combos * max(ROUND_POINTS.values())
    bonus = (base * bonus_percent_for(len(REGIONS))) // 100
    return base + bonus


def get_level_tiers() -> List[LevelTier]:
    """Contiguous tiers covering 0 through the maximum attainable total"""
    ordered = sorted(LEVEL_TIERS, key=lambda t: t["min_points"])
    ceiling = max_attainable_score()
    tiers = []
    for i, tier in enumerate(ordered):
        if i + 1 < len(ordered):
            upper = ordered[i + 1]["min_points"] - 1
        else:
            upper = ceiling
        tiers.append(LevelTier(tier["name"], tier["min_points"], upper))
    return tiers


def level_for(total_score: int) -> LevelTier:
    """Highest tier whose minimum the total has reached"""
    tiers = get_level_tiers()
    current = tiers[0]
    for tier in tiers:
        if tier.min_points <= total_score:
            current = tier
    return current


def _canonical_period(region: str, period: Union[Period, str]) -> Optional[str]:
    """One label per logical period, whatever dash or bucket the input used"""
    parsed = period if isinstance(period, Period) else parse_period_label(period)
    if parsed is None or region not in REGIONS:
        return None
    return snap_period(region, parsed).label


def _legacy_key_period(region: str, key: str) -> Optional[str]:
    """Legacy keys look like "Europe_1500-1550"."""
    prefix = f"{region}_"
    if isinstance(key, str) and key.startswith(prefix):
        key = key[len(prefix):]
    return _canonical_period(region, key)


# Legacy saves only stored keys for passing rounds, never the points
LEGACY_ENTRY_POINTS = ROUND_POINTS[min(ROUND_POINTS)]

# listener(record)
RecordListener = Callable[[RoundRecord], None]


class ScoringEngine:
    """
    Owns the round record collection.

    Records are keyed by (region, period). Recording the same key again can
    only raise the points, never duplicate or lower them.
    """

    def __init__(self, records: Optional[Iterable[RoundRecord]] = None):
        self._records: Dict[Tuple[str, str], RoundRecord] = {}
        self._listeners: List[RecordListener] = []
        for record in records or []:
            self._merge(record)

    def _merge(self, record: RoundRecord) -> bool:
        existing = self._records.get(record.key)
        if existing and existing.points >= record.points:
            return False
        self._records[record.key] = record
        return True

    def record_round(self, region: str, period: Union[Period, str], correct_count: int) -> Optional[RoundRecord]:
        """
        Record a finished round.

        Returns the stored record when the round earned points, None otherwise.
        """
        points = points_for(correct_count)
        if points <= 0:
            return None
        if region not in REGIONS:
            raise ValueError(f"Unknown region: {region!r}")
        label = _canonical_period(region, period)
        if label is None:
            raise ValueError(f"Unparseable period: {period!r}")

        record = RoundRecord(region, label, points)
        if self._merge(record):
            logger.info(f"Recorded {region} {label}: {points} points")
            for listener in list(self._listeners):
                listener(record)
        return self._records[record.key]

    def subscribe(self, listener: RecordListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    @property
    def records(self) -> List[RoundRecord]:
        return list(self._records.values())

    def scored_keys(self) -> set:
        return set(self._records)

    def records_for(self, region: str) -> List[RoundRecord]:
        return [r for r in self._records.values() if r.region == region]

    def aggregate(self) -> ScoreAggregate:
        return aggregate(self._records.values())

    def level(self) -> LevelTier:
        return level_for(self.aggregate().total_score)

    def to_list(self) -> List[dict]:
        return [record.to_dict() for record in sorted(self._records.values(), key=lambda r: r.key)]

    @classmethod
    def from_save(cls, records: Optional[Union[List, Dict]]) -> "ScoringEngine":
        """
        Load records from a save, migrating legacy shapes.

        Accepts the current list of {region, period, points} dicts, or the
        older {region: ["Region_start-end", ...]} map. Every entry collapses
        onto the canonical (region, "start-end") key, keeping the higher points.
        """
        engine = cls()
        for record in _iter_saved_records(records):
            engine._merge(record)
        return engine


def _iter_saved_records(data) -> Iterable[RoundRecord]:
    if not data:
        return

    if isinstance(data, list):
        for entry in data:
            if not isinstance(entry, dict):
                logger.warning(f"Skipping unreadable record: {entry!r}")
                continue
            region = entry.get("region")
            label = _canonical_period(region, entry.get("period", ""))
            try:
                points = int(entry.get("points", LEGACY_ENTRY_POINTS))
            except (TypeError, ValueError):
                points = LEGACY_ENTRY_POINTS
            if region in REGIONS and label and points > 0:
                yield RoundRecord(region, label, points)
            else:
                logger.warning(f"Skipping unreadable record: {entry!r}")
        return

    if isinstance(data, dict):
        for region, entries in data.items():
            if region not in REGIONS or not isinstance(entries, list):
                logger.warning(f"Skipping legacy scores for {region!r}")
                continue
            for entry in entries:
                if isinstance(entry, dict):
                    label = _legacy_key_period(region, entry.get("period", ""))
                    try:
                        points = int(entry.get("points", LEGACY_ENTRY_POINTS))
                    except (TypeError, ValueError):
                        points = LEGACY_ENTRY_POINTS
                else:
                    label = _legacy_key_period(region, entry)
                    points = LEGACY_ENTRY_POINTS
                if label and points > 0:
                    yield RoundRecord(region, label, points)
                else:
                    logger.warning(f"Skipping legacy entry {entry!r} for {region}")
