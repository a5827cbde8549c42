"""
Epoch Atlas - Prefetch Module

Speculative content fetching to hide provider latency:
- NEXT_PERIOD: the period the active region will request next
- RANDOM_UNSEEN: one random region/period the player has not scored yet

Each slot holds at most one entry and has at most one request in flight.
Results are only ever pulled out by the active round via consume(); a
result whose key was superseded while it was in flight is thrown away.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple

import gevent

from content import RoundContent
from periods import Period, all_combinations

logger = logging.getLogger(__name__)


class PrefetchSlot(Enum):
    NEXT_PERIOD = "next_period"
    RANDOM_UNSEEN = "random_unseen"


@dataclass(frozen=True)
class CacheEntry:
    region: str
    year: int
    payload: RoundContent

    @property
    def key(self) -> Tuple[str, int]:
        return (self.region, self.year)


class PrefetchCache:
    """
    Two independent single-entry caches.

    fetch(region, period) must return RoundContent or raise; failures leave
    the slot empty and are never reported to the player.
    spawn(fn, *args) runs fn in the background (gevent.spawn by default).
    """

    def __init__(self, fetch: Callable[[str, Period], RoundContent],
                 spawn: Optional[Callable] = None,
                 rng: Optional[random.Random] = None):
        self._fetch = fetch
        self._spawn = spawn or gevent.spawn
        self._rng = rng or random.Random()
        self._combinations = all_combinations()

        self._entries: Dict[PrefetchSlot, CacheEntry] = {}
        # Latest key asked for per slot; in-flight results must still match it
        self._wanted: Dict[PrefetchSlot, Tuple[str, Period]] = {}
        self._in_flight: Dict[PrefetchSlot, Tuple[str, int]] = {}

    # ==================== Scheduling ====================

    def schedule(self, slot: PrefetchSlot, region: str, period: Period) -> bool:
        """
        Ask for a slot to be filled with (region, period).

        Returns False when the slot already holds or is already fetching
        exactly that key.
        """
        key = (region, period.start)
        entry = self._entries.get(slot)
        if entry and entry.key == key:
            return False
        wanted = self._wanted.get(slot)
        if wanted and (wanted[0], wanted[1].start) == key:
            return False

        if entry:
            logger.debug(f"Dropping unused {slot.value} entry {entry.key}")
            del self._entries[slot]

        self._wanted[slot] = (region, period)
        if slot not in self._in_flight:
            self._start(slot, region, period)
        return True

    def schedule_next_period(self, region: str, period: Optional[Period]) -> bool:
        if period is None:
            return False
        return self.schedule(PrefetchSlot.NEXT_PERIOD, region, period)

    def schedule_random_unseen(self, scored_keys: Iterable[Tuple[str, str]]) -> Optional[Tuple[str, Period]]:
        """
        Fill the random slot with a combination that has no record yet.

        Once everything has been scored, any combination will do.
        """
        pick = self.pick_unseen(scored_keys)
        if pick is None:
            return None
        self.schedule(PrefetchSlot.RANDOM_UNSEEN, *pick)
        return pick

    def pick_unseen(self, scored_keys: Iterable[Tuple[str, str]]) -> Optional[Tuple[str, Period]]:
        scored = set(scored_keys)
        unseen = [(region, period) for region, period in self._combinations
                  if (region, period.label) not in scored]
        pool = unseen or self._combinations
        if not pool:
            return None
        return self._rng.choice(pool)

    def on_region_change(self, region: str):
        """The next-period slot only makes sense for the active region"""
        slot = PrefetchSlot.NEXT_PERIOD
        entry = self._entries.get(slot)
        if entry and entry.region != region:
            del self._entries[slot]
        wanted = self._wanted.get(slot)
        if wanted and wanted[0] != region:
            del self._wanted[slot]

    # ==================== Consumption ====================

    def consume(self, slot: PrefetchSlot, region: str, year: int) -> Optional[RoundContent]:
        """Return and evict the slot's payload only on an exact (region, year) match"""
        entry = self._entries.get(slot)
        if entry is None or entry.key != (region, year):
            return None
        del self._entries[slot]
        logger.info(f"Prefetch hit ({slot.value}) for {region} {year}")
        return entry.payload

    def take(self, region: str, year: int) -> Optional[RoundContent]:
        """
        Check both slots for a matching entry.

        On a miss the caller fetches the period itself, so a request still
        in flight for it will be thrown away when it lands.
        """
        for slot in PrefetchSlot:
            payload = self.consume(slot, region, year)
            if payload is not None:
                return payload
        for slot, (wanted_region, wanted_period) in list(self._wanted.items()):
            if (wanted_region, wanted_period.start) == (region, year):
                logger.debug(f"Prefetch miss for {region} {year}, dropping pending {slot.value} request")
                del self._wanted[slot]
        return None

    def peek(self, slot: PrefetchSlot) -> Optional[CacheEntry]:
        return self._entries.get(slot)

    def is_pending(self, slot: PrefetchSlot) -> bool:
        return slot in self._in_flight

    # ==================== Background work ====================

    def _start(self, slot: PrefetchSlot, region: str, period: Period):
        self._in_flight[slot] = (region, period.start)
        self._spawn(self._run, slot, region, period)

    def _run(self, slot: PrefetchSlot, region: str, period: Period):
        try:
            payload = self._fetch(region, period)
        except Exception as e:
            logger.warning(f"Prefetch {slot.value} for {region} {period.label} failed: {e}")
            payload = None
        self._finish(slot, region, period, payload)

    def _finish(self, slot: PrefetchSlot, region: str, period: Period, payload: Optional[RoundContent]):
        self._in_flight.pop(slot, None)
        wanted = self._wanted.get(slot)

        if wanted and (wanted[0], wanted[1].start) == (region, period.start):
            del self._wanted[slot]
            if payload is not None:
                self._entries[slot] = CacheEntry(region, period.start, payload)
            return

        logger.debug(f"Discarding stale {slot.value} result for {region} {period.label}")
        if wanted:
            self._start(slot, *wanted)
