"""
Epoch Atlas - Progress Module

Durable per-region cursor. Each region tracks the start year of the period
it is currently on, independently of every other region.
"""

import logging
from typing import Callable, Dict, List, Optional

from config import REGIONS
from periods import Period, get_origin, next_cursor, current_period, align_cursor, is_finished

logger = logging.getLogger(__name__)

# listener(region, old_cursor, new_cursor)
ProgressListener = Callable[[str, int, int], None]


class ProgressStore:
    """
    Region -> cursor map.

    One instance per session, shared by reference with the round machine.
    Cursors only ever move forward.
    """

    def __init__(self, cursors: Optional[Dict[str, int]] = None):
        self._cursors: Dict[str, int] = {region: get_origin(region) for region in REGIONS}
        self._listeners: List[ProgressListener] = []
        if cursors:
            for region, year in cursors.items():
                if region in self._cursors:
                    self._cursors[region] = align_cursor(region, int(year))

    def get(self, region: str) -> int:
        return self._cursors[region]

    def set(self, region: str, year: int):
        """Move a region's cursor. Moving it backwards is refused."""
        if region not in self._cursors:
            raise ValueError(f"Unknown region: {region!r}")
        old = self._cursors[region]
        if year < old:
            raise ValueError(f"Cursor for {region} cannot move back from {old} to {year}")
        if year == old:
            return
        self._cursors[region] = year
        for listener in list(self._listeners):
            listener(region, old, year)

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def advance(self, region: str) -> int:
        """Move a region on to its next period and return the new cursor"""
        new_cursor = next_cursor(region, self.get(region))
        self.set(region, new_cursor)
        logger.debug(f"{region} advanced to {new_cursor}")
        return new_cursor

    def current_period(self, region: str) -> Optional[Period]:
        return current_period(region, self.get(region))

    def is_finished(self, region: str) -> bool:
        return is_finished(region, self.get(region))

    def to_dict(self) -> Dict[str, int]:
        return dict(self._cursors)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ProgressStore":
        """Rebuild from a saved map; unknown regions are ignored"""
        return cls(cursors=data or {})
