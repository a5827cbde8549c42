#!/usr/bin/env python3
"""
Epoch Atlas - Game API Module

JSON-based API for the game, designed for web/mobile frontends.
Separates game logic from presentation entirely.

All methods return structured JSON that frontends can render as they wish.

One GameAPI per connected player. It owns that player's ProgressStore and
ScoringEngine (through PlayerSave), the RoundStateMachine, and the
PrefetchCache, and carries out the effects the round machine asks for.
"""

import logging
import random
from datetime import datetime
from typing import Any, Callable, Dict, Generator, List, Optional

from config import REGIONS, PREFETCH_ENABLED, PREFETCH_MIN_PASSED_ROUNDS, get_debug_region
from content import ContentProvider
from periods import count_periods, current_period, next_cursor
from prefetch import PrefetchCache
from round_state import (
    RoundStateMachine, RoundPhase,
    SelectRegion, ContentReceived, ContentFailed, Answer, Tick, Advance, Continue, Retry, Cancel,
    RequestContent, StartCountdown, StopCountdown, RoundEnded, RecordResult, RegionComplete, ShowError,
)
from saves import PlayerSave, make_alias
from scoring import get_level_tiers

logger = logging.getLogger(__name__)


# =============================================================================
# MESSAGE TYPES
# =============================================================================

class MessageType:
    """Types of messages the API can emit"""
    # Session
    GAME_START = "game_start"
    GAME_SAVED = "game_saved"
    GAME_LOADED = "game_loaded"
    STATE = "state"

    # Round flow
    LOADING = "loading"
    ROUND_READY = "round_ready"
    ANSWER_RESULT = "answer_result"
    COUNTDOWN = "countdown"
    ROUND_COMPLETE = "round_complete"
    ROUND_TIMED_OUT = "round_timed_out"
    REGION_COMPLETE = "region_complete"

    # Progress
    SCORE_UPDATE = "score_update"
    LEVEL_UP = "level_up"

    # Player
    NAME_REQUEST = "name_request"
    NAME_SET = "name_set"

    # System
    ERROR = "error"


def emit(msg_type: str, data: Dict[str, Any] = None) -> Dict[str, Any]:
    """Create a standardized message"""
    return {
        "type": msg_type,
        "data": data or {},
        "timestamp": datetime.now().isoformat()
    }


# Property names a map geometry may carry its region under
REGION_PROPERTY_KEYS = ("CONTINENT", "continent", "REGION_UN")


def resolve_region(properties: Optional[Dict[str, Any]]) -> Optional[str]:
    """Region for a clicked map shape, or None if it isn't one of ours"""
    if not isinstance(properties, dict):
        return None
    for key in REGION_PROPERTY_KEYS:
        value = properties.get(key)
        if value:
            return value if value in REGIONS else None
    return None


# =============================================================================
# GAME API CLASS
# =============================================================================

class GameAPI:
    """
    JSON-based game API for web/mobile frontends.

    Every public method is a generator of message dicts. Content requests
    block the calling greenlet; under gevent that is the only place the
    round waits, alongside the countdown ticks fed in through tick().
    """

    def __init__(self, user_id: str = "default",
                 provider: Optional[ContentProvider] = None,
                 save_manager=None,
                 rng: Optional[random.Random] = None,
                 spawn: Optional[Callable] = None,
                 prefetch_enabled: bool = PREFETCH_ENABLED):
        self.user_id = user_id
        self.provider = provider or ContentProvider()
        self.save_manager = save_manager

        loaded = save_manager.load(user_id) if save_manager else None
        self.player = loaded or PlayerSave()

        self.machine = RoundStateMachine()
        self.prefetch_enabled = prefetch_enabled
        self.prefetch = PrefetchCache(fetch=self.provider.fetch, spawn=spawn, rng=rng)

        # Passing rounds this session (not lifetime); gates prefetching
        self.passed_this_session = 0

        self._dirty = False
        self.player.progress.subscribe(lambda *args: self._mark_dirty())
        self.player.scoring.subscribe(lambda record: self._mark_dirty())

    @property
    def progress(self):
        return self.player.progress

    @property
    def scoring(self):
        return self.player.scoring

    @property
    def state(self):
        return self.machine.state

    # ==================== Session ====================

    def start(self) -> Generator[Dict, None, None]:
        """Opening messages: full state, then a forced region in debug mode"""
        yield emit(MessageType.GAME_START, self.get_current_state())
        debug_region = get_debug_region()
        if debug_region:
            yield from self.select_region(debug_region)

    def set_player_name(self, name: str) -> Generator[Dict, None, None]:
        name = (name or "").strip()
        if not name:
            yield emit(MessageType.ERROR, {"message": "Name cannot be empty"})
            return
        self.player.player_name = name
        self.player.alias = make_alias(name)
        self._mark_dirty()
        self._flush()
        yield emit(MessageType.NAME_SET, {
            "player_name": name,
            "alias": self.player.alias,
            "message": f"Ok, we'll call you {self.player.alias}.",
        })

    def save_game(self) -> Generator[Dict, None, None]:
        if not self.save_manager:
            yield emit(MessageType.ERROR, {"message": "Saving is not available"})
            return
        if self.save_manager.save(self.user_id, self.player):
            self._dirty = False
            yield emit(MessageType.GAME_SAVED, {"user_id": self.user_id})
        else:
            yield emit(MessageType.ERROR, {"message": "Failed to save progress"})

    def load_game(self) -> Generator[Dict, None, None]:
        """Replace in-memory progress with the saved copy; any round in flight is dropped"""
        loaded = self.save_manager.load(self.user_id) if self.save_manager else None
        if loaded is None:
            yield emit(MessageType.ERROR, {"message": "No saved progress found"})
            return

        yield from self._dispatch(Cancel())
        self.player = loaded
        self.player.progress.subscribe(lambda *args: self._mark_dirty())
        self.player.scoring.subscribe(lambda record: self._mark_dirty())
        self._dirty = False
        yield emit(MessageType.GAME_LOADED, self.get_current_state())

    # ==================== Round control ====================

    def select_region(self, region: str) -> Generator[Dict, None, None]:
        """Start (or switch to) a region at its current cursor"""
        if region not in REGIONS:
            yield emit(MessageType.ERROR, {"message": f"Unknown region: {region}"})
            return

        # A finished round is settled before leaving it
        if self.state.is_finished:
            yield from self._dispatch(Advance())

        self.prefetch.on_region_change(region)
        period = self.progress.current_period(region)
        yield from self._dispatch(SelectRegion(region, period))
        self._flush()

    def region_click(self, properties: Optional[Dict[str, Any]]) -> Generator[Dict, None, None]:
        """Map click; shapes outside the seven regions are ignored"""
        region = resolve_region(properties)
        if region is None:
            logger.debug(f"Ignoring click on {properties!r}")
            return
        yield from self.select_region(region)

    def answer(self, index: int, choice: str) -> Generator[Dict, None, None]:
        before = self.state
        effects = self.machine.dispatch(Answer(index, choice))
        after = self.state

        if index in after.answers and index not in before.answers:
            record = after.answers[index]
            yield emit(MessageType.ANSWER_RESULT, {
                "index": index,
                "selected": record.selected,
                "is_correct": record.is_correct,
                "correct": after.content.questions[index].correct,
            })
        for effect in effects:
            yield from self._apply(effect)
        self._flush()

    def tick(self) -> Generator[Dict, None, None]:
        """One second of countdown"""
        if self.state.phase != RoundPhase.ANSWERING:
            return
        effects = self.machine.dispatch(Tick())
        if self.state.phase == RoundPhase.ANSWERING:
            yield emit(MessageType.COUNTDOWN, {"time_left": self.state.time_left})
        for effect in effects:
            yield from self._apply(effect)
        self._flush()

    def countdown_active(self, request_id: int) -> bool:
        """Whether the countdown for this request should keep ticking"""
        return self.state.phase == RoundPhase.ANSWERING and self.state.request_id == request_id

    def advance(self) -> Generator[Dict, None, None]:
        """Settle the finished round and request the region's next period"""
        if not self.state.is_finished:
            return
        yield from self._dispatch(Advance())
        if self.state.phase == RoundPhase.TRANSITIONING:
            period = self.progress.current_period(self.state.region)
            yield from self._dispatch(Continue(period))
        self._flush()

    def retry(self) -> Generator[Dict, None, None]:
        """Try the failed request again for the same period"""
        yield from self._dispatch(Retry())

    def leave(self) -> Generator[Dict, None, None]:
        """Player left: settle any finished round, drop anything in flight"""
        if self.state.is_finished:
            yield from self._dispatch(Advance())
        yield from self._dispatch(Cancel())
        self._flush()

    # ==================== Effects ====================

    def _dispatch(self, event) -> Generator[Dict, None, None]:
        for effect in self.machine.dispatch(event):
            yield from self._apply(effect)

    def _apply(self, effect) -> Generator[Dict, None, None]:
        if isinstance(effect, RequestContent):
            yield from self._request_content(effect)

        elif isinstance(effect, StartCountdown):
            data = self.state.to_dict()
            data["request_id"] = effect.request_id
            yield emit(MessageType.ROUND_READY, data)

        elif isinstance(effect, StopCountdown):
            # The countdown driver stops on its own once the phase changes
            pass

        elif isinstance(effect, RoundEnded):
            yield from self._on_round_ended(effect)

        elif isinstance(effect, RecordResult):
            yield from self._record_result(effect)

        elif isinstance(effect, RegionComplete):
            yield emit(MessageType.REGION_COMPLETE, {
                "region": effect.region,
                "summary": self.get_region_summary(effect.region),
            })

        elif isinstance(effect, ShowError):
            yield emit(MessageType.ERROR, {
                "region": self.state.region,
                "period": self.state.period.label if self.state.period else None,
                **effect.error.to_dict(),
            })

    def _request_content(self, effect: RequestContent) -> Generator[Dict, None, None]:
        yield emit(MessageType.LOADING, {
            "region": effect.region,
            "period": effect.period.label,
        })

        payload = self.prefetch.take(effect.region, effect.period.start)
        if payload is not None:
            yield from self._dispatch(ContentReceived(effect.request_id, payload))
            return

        result = self.provider.request(effect.region, effect.period)
        if self.state.request_id != effect.request_id:
            logger.info(f"Dropping stale content for {effect.region} {effect.period.label}")
            return
        if result.ok:
            yield from self._dispatch(ContentReceived(effect.request_id, result.content))
        else:
            logger.warning(f"Content request failed for {effect.region} {effect.period.label}: {result.error}")
            yield from self._dispatch(ContentFailed(effect.request_id, result.error))

    def _on_round_ended(self, effect: RoundEnded) -> Generator[Dict, None, None]:
        passed = self.state.passed
        if passed:
            self.passed_this_session += 1

        msg_type = MessageType.ROUND_TIMED_OUT if effect.timed_out else MessageType.ROUND_COMPLETE
        yield emit(msg_type, {
            "region": effect.region,
            "period": effect.period.label,
            "correct_count": effect.correct_count,
            "passed": passed,
            "round": self.state.to_dict(),
        })

        if not effect.timed_out and not self.player.first_round_complete:
            self.player.first_round_complete = True
            self._mark_dirty()
            if not self.player.player_name:
                yield emit(MessageType.NAME_REQUEST, {"message": "What should we call you?"})

        self._schedule_prefetch(effect, passed)

    def _schedule_prefetch(self, effect: RoundEnded, passed: bool):
        if not self.prefetch_enabled or self.passed_this_session < PREFETCH_MIN_PASSED_ROUNDS:
            return
        # Passing moves the cursor on; otherwise the same period comes round again
        upcoming = next_cursor(effect.region, effect.period.start) if passed else effect.period.start
        self.prefetch.schedule_next_period(effect.region, current_period(effect.region, upcoming))
        self.prefetch.schedule_random_unseen(self.scoring.scored_keys())

    def _record_result(self, effect: RecordResult) -> Generator[Dict, None, None]:
        level_before = self.scoring.level()
        record = self.scoring.record_round(effect.region, effect.period, effect.correct_count)
        new_cursor = self.progress.advance(effect.region)
        level_after = self.scoring.level()

        yield emit(MessageType.SCORE_UPDATE, {
            "record": record.to_dict() if record else None,
            "cursor": new_cursor,
            "score": self.scoring.aggregate().to_dict(),
            "level": level_after.to_dict(),
        })
        if level_after.name != level_before.name:
            yield emit(MessageType.LEVEL_UP, {
                "from": level_before.name,
                "to": level_after.name,
            })

    # ==================== Persistence ====================

    def _mark_dirty(self):
        self._dirty = True

    def _flush(self):
        if self._dirty and self.save_manager:
            if self.save_manager.save(self.user_id, self.player):
                self._dirty = False

    # ==================== State ====================

    def get_region_summary(self, region: str) -> Dict[str, Any]:
        period = self.progress.current_period(region)
        completed = len(self.scoring.records_for(region))
        total = count_periods(region)
        return {
            "region": region,
            "cursor": self.progress.get(region),
            "current_period": period.label if period else None,
            "completed": completed,
            "total": total,
            "fraction": completed / total if total else 0.0,
            "finished": self.progress.is_finished(region),
        }

    def get_current_state(self) -> Dict[str, Any]:
        """Get current state for frontend"""
        return {
            "user_id": self.user_id,
            "player_name": self.player.player_name,
            "alias": self.player.alias,
            "first_round_complete": self.player.first_round_complete,
            "regions": [self.get_region_summary(region) for region in REGIONS],
            "score": self.scoring.aggregate().to_dict(),
            "level": self.scoring.level().to_dict(),
            "levels": [tier.to_dict() for tier in get_level_tiers()],
            "round": self.state.to_dict(),
        }


# =============================================================================
# SIMPLE SESSION WRAPPER
# =============================================================================

class GameSession:
    """
    Simple wrapper for web frameworks.
    Collects all messages from generators into lists.
    """

    def __init__(self, user_id: str = "default", **kwargs):
        self.api = GameAPI(user_id=user_id, **kwargs)

    def start(self) -> List[Dict]:
        return list(self.api.start())

    def select_region(self, region: str) -> List[Dict]:
        return list(self.api.select_region(region))

    def region_click(self, properties: Dict[str, Any]) -> List[Dict]:
        return list(self.api.region_click(properties))

    def answer(self, index: int, choice: str) -> List[Dict]:
        return list(self.api.answer(index, choice))

    def tick(self) -> List[Dict]:
        return list(self.api.tick())

    def countdown_active(self, request_id: int) -> bool:
        return self.api.countdown_active(request_id)

    def advance(self) -> List[Dict]:
        return list(self.api.advance())

    def retry(self) -> List[Dict]:
        return list(self.api.retry())

    def leave(self) -> List[Dict]:
        return list(self.api.leave())

    def set_name(self, name: str) -> List[Dict]:
        return list(self.api.set_player_name(name))

    def save(self) -> List[Dict]:
        return list(self.api.save_game())

    def load(self) -> List[Dict]:
        return list(self.api.load_game())

    def get_state(self) -> Dict:
        return self.api.get_current_state()
