"""
Epoch Atlas - Round State Module

Lifecycle of a single round:

    IDLE -> REQUESTING -> ANSWERING -> COMPLETED | TIMED_OUT
         -> TRANSITIONING -> REQUESTING (next) | IDLE

transition() is a pure reducer: it takes the current state and one event
and returns the new state plus a list of effects for the caller to carry
out (fetch content, run the countdown, record the result). The countdown
itself is just a stream of Tick events fed in from outside.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from config import ROUND_DURATION_SECONDS, PASSING_CORRECT_COUNT
from content import ContentError, RoundContent
from periods import Period


class RoundPhase(Enum):
    """Current phase of the round"""
    IDLE = "idle"                     # Nothing in flight
    REQUESTING = "requesting"         # Waiting on content
    ANSWERING = "answering"           # Countdown running
    COMPLETED = "completed"           # Every question answered
    TIMED_OUT = "timed_out"           # Countdown hit zero first
    TRANSITIONING = "transitioning"   # Result settled, next request pending


FINISHED_PHASES = (RoundPhase.COMPLETED, RoundPhase.TIMED_OUT)


@dataclass(frozen=True)
class AnswerRecord:
    selected: str
    is_correct: bool

    def to_dict(self) -> dict:
        return {"selected": self.selected, "is_correct": self.is_correct}


@dataclass(frozen=True)
class RoundState:
    """Snapshot of the active round. Never mutated in place."""

    phase: RoundPhase = RoundPhase.IDLE
    region: Optional[str] = None
    period: Optional[Period] = None

    # Bumped on every new request; results carrying an older id are dropped
    request_id: int = 0

    content: Optional[RoundContent] = None
    answers: Dict[int, AnswerRecord] = field(default_factory=dict)
    time_left: int = ROUND_DURATION_SECONDS
    error: Optional[ContentError] = None

    @property
    def question_count(self) -> int:
        return len(self.content.questions) if self.content else 0

    @property
    def correct_count(self) -> int:
        return sum(1 for answer in self.answers.values() if answer.is_correct)

    @property
    def all_answered(self) -> bool:
        return self.question_count > 0 and len(self.answers) >= self.question_count

    @property
    def passed(self) -> bool:
        return self.correct_count >= PASSING_CORRECT_COUNT

    @property
    def is_finished(self) -> bool:
        return self.phase in FINISHED_PHASES

    def to_dict(self) -> dict:
        """Player-facing view; correct letters only appear once the round is over"""
        data = {
            "phase": self.phase.value,
            "region": self.region,
            "period": self.period.label if self.period else None,
            "time_left": self.time_left,
            "answers": {str(i): a.to_dict() for i, a in sorted(self.answers.items())},
            "correct_count": self.correct_count,
            "error": self.error.to_dict() if self.error else None,
        }
        if self.content:
            reveal = self.is_finished
            data["content"] = {
                "period": self.content.period,
                "paragraph": self.content.paragraph,
                "questions": [
                    q.to_dict() if reveal else q.to_public_dict()
                    for q in self.content.questions
                ],
            }
        return data


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class SelectRegion:
    region: str
    period: Optional[Period]  # None when the region has no periods left


@dataclass(frozen=True)
class ContentReceived:
    request_id: int
    content: RoundContent


@dataclass(frozen=True)
class ContentFailed:
    request_id: int
    error: ContentError


@dataclass(frozen=True)
class Answer:
    index: int
    choice: str


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class Advance:
    pass


@dataclass(frozen=True)
class Continue:
    period: Optional[Period]


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


# =============================================================================
# EFFECTS
# =============================================================================

@dataclass(frozen=True)
class RequestContent:
    request_id: int
    region: str
    period: Period


@dataclass(frozen=True)
class StartCountdown:
    request_id: int


@dataclass(frozen=True)
class StopCountdown:
    pass


@dataclass(frozen=True)
class RoundEnded:
    region: str
    period: Period
    correct_count: int
    timed_out: bool


@dataclass(frozen=True)
class RecordResult:
    region: str
    period: Period
    correct_count: int


@dataclass(frozen=True)
class RegionComplete:
    region: str


@dataclass(frozen=True)
class ShowError:
    error: ContentError


# =============================================================================
# REDUCER
# =============================================================================

def _request(state: RoundState, region: str, period: Period) -> Tuple[RoundState, list]:
    request_id = state.request_id + 1
    new_state = RoundState(
        phase=RoundPhase.REQUESTING,
        region=region,
        period=period,
        request_id=request_id,
    )
    effects = []
    if state.phase == RoundPhase.ANSWERING:
        effects.append(StopCountdown())
    effects.append(RequestContent(request_id, region, period))
    return new_state, effects


def _idle_complete(state: RoundState, region: str) -> Tuple[RoundState, list]:
    effects = []
    if state.phase == RoundPhase.ANSWERING:
        effects.append(StopCountdown())
    effects.append(RegionComplete(region))
    return RoundState(phase=RoundPhase.IDLE, region=region, request_id=state.request_id + 1), effects


def transition(state: RoundState, event) -> Tuple[RoundState, list]:
    """Apply one event. Events that don't apply in the current phase are no-ops."""

    if isinstance(event, SelectRegion):
        # Switching regions drops whatever was in flight
        if event.period is None:
            return _idle_complete(state, event.region)
        return _request(state, event.region, event.period)

    if isinstance(event, Retry):
        if state.phase == RoundPhase.IDLE and state.error and state.region and state.period:
            return _request(state, state.region, state.period)
        return state, []

    if isinstance(event, ContentReceived):
        if state.phase != RoundPhase.REQUESTING or event.request_id != state.request_id:
            return state, []
        new_state = replace(
            state,
            phase=RoundPhase.ANSWERING,
            content=event.content,
            answers={},
            time_left=ROUND_DURATION_SECONDS,
            error=None,
        )
        return new_state, [StartCountdown(state.request_id)]

    if isinstance(event, ContentFailed):
        if state.phase != RoundPhase.REQUESTING or event.request_id != state.request_id:
            return state, []
        new_state = replace(state, phase=RoundPhase.IDLE, content=None, error=event.error)
        return new_state, [ShowError(event.error)]

    if isinstance(event, Answer):
        if state.phase != RoundPhase.ANSWERING or state.time_left <= 0:
            return state, []
        if not 0 <= event.index < state.question_count or event.index in state.answers:
            return state, []
        question = state.content.questions[event.index]
        answers = dict(state.answers)
        answers[event.index] = AnswerRecord(event.choice, question.is_correct(event.choice))
        new_state = replace(state, answers=answers)
        if not new_state.all_answered:
            return new_state, []
        new_state = replace(new_state, phase=RoundPhase.COMPLETED)
        return new_state, [
            StopCountdown(),
            RoundEnded(state.region, state.period, new_state.correct_count, timed_out=False),
        ]

    if isinstance(event, Tick):
        if state.phase != RoundPhase.ANSWERING:
            return state, []
        time_left = max(0, state.time_left - 1)
        if time_left > 0:
            return replace(state, time_left=time_left), []
        new_state = replace(state, phase=RoundPhase.TIMED_OUT, time_left=0)
        return new_state, [
            StopCountdown(),
            RoundEnded(state.region, state.period, new_state.correct_count, timed_out=True),
        ]

    if isinstance(event, Advance):
        if state.phase not in FINISHED_PHASES:
            return state, []
        effects = []
        if state.passed:
            effects.append(RecordResult(state.region, state.period, state.correct_count))
        new_state = RoundState(
            phase=RoundPhase.TRANSITIONING,
            region=state.region,
            period=state.period,
            request_id=state.request_id,
        )
        return new_state, effects

    if isinstance(event, Continue):
        if state.phase != RoundPhase.TRANSITIONING:
            return state, []
        if event.period is None:
            return _idle_complete(state, state.region)
        return _request(state, state.region, event.period)

    if isinstance(event, Cancel):
        effects = [StopCountdown()] if state.phase == RoundPhase.ANSWERING else []
        return RoundState(request_id=state.request_id + 1), effects

    raise TypeError(f"Unknown round event: {event!r}")


class RoundStateMachine:
    """Holds the current RoundState and applies events to it in order"""

    def __init__(self, state: Optional[RoundState] = None):
        self._state = state or RoundState()

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def phase(self) -> RoundPhase:
        return self._state.phase

    def dispatch(self, event) -> List:
        self._state, effects = transition(self._state, event)
        return effects
