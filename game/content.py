"""
Epoch Atlas - Content Module

Fetches round content (a paragraph plus three multiple-choice questions)
from the content provider and validates it.

Provider output is never trusted: every response goes through
parse_content(), which yields either a RoundContent or a typed error.
Nothing is ever filled in with defaults.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic

from config import (
    ANTHROPIC_API_KEY, CONTENT_MODEL, CONTENT_MAX_TOKENS,
    QUESTIONS_PER_ROUND, ANSWER_LETTERS, ERROR_EXCERPT_CHARS,
)
from periods import Period
from prompts import get_system_prompt, get_content_prompt

logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

class ContentError(Exception):
    """Base for everything that can go wrong getting round content"""

    kind = "unknown"
    retryable = True

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": str(self), "retryable": self.retryable}


class ConfigurationError(ContentError):
    """The provider can't be called at all (e.g. missing credential)"""

    kind = "configuration"
    retryable = False


class UpstreamError(ContentError):
    """Network failure, non-success status or access denied"""

    kind = "upstream"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class ParseError(ContentError):
    """The provider answered, but not with usable content"""

    kind = "parse"

    def __init__(self, message: str, payload: str = ""):
        super().__init__(message)
        self.excerpt = excerpt(payload)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["excerpt"] = self.excerpt
        return data


def excerpt(payload: Any, limit: int = ERROR_EXCERPT_CHARS) -> str:
    text = payload if isinstance(payload, str) else repr(payload)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


# =============================================================================
# CONTENT TYPES
# =============================================================================

@dataclass(frozen=True)
class Question:
    question: str
    options: List[str]
    correct: str  # "A" - "D"

    def is_correct(self, choice: str) -> bool:
        return isinstance(choice, str) and choice.strip().upper() == self.correct

    def to_dict(self) -> dict:
        return {"question": self.question, "options": list(self.options), "correct": self.correct}

    def to_public_dict(self) -> dict:
        """Question as shown to the player, without the answer"""
        return {"question": self.question, "options": list(self.options)}


@dataclass(frozen=True)
class RoundContent:
    period: str
    paragraph: str
    questions: List[Question] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "paragraph": self.paragraph,
            "questions": [q.to_dict() for q in self.questions],
        }


@dataclass(frozen=True)
class ContentResult:
    """Either content or the error explaining why there is none"""

    content: Optional[RoundContent] = None
    error: Optional[ContentError] = None

    @property
    def ok(self) -> bool:
        return self.content is not None

    def unwrap(self) -> RoundContent:
        if self.error is not None:
            raise self.error
        return self.content


# =============================================================================
# PARSING
# =============================================================================

def strip_code_fences(text: str) -> str:
    """Remove markdown ```json fences the model sometimes adds anyway"""
    return re.sub(r'```(?:json)?', '', text, flags=re.IGNORECASE).strip()


def _parse_question(entry: Any) -> Optional[Question]:
    if not isinstance(entry, dict):
        return None
    text = entry.get("question")
    options = entry.get("options")
    correct = entry.get("correct")
    if not isinstance(text, str) or not text.strip():
        return None
    if not isinstance(options, list) or len(options) != len(ANSWER_LETTERS):
        return None
    if not all(isinstance(o, str) and o.strip() for o in options):
        return None
    if not isinstance(correct, str) or correct.strip().upper() not in ANSWER_LETTERS:
        return None
    return Question(text.strip(), [o.strip() for o in options], correct.strip().upper())


def parse_content(raw_text: str) -> ContentResult:
    """
    Validate a raw provider response.

    Requires a JSON object with a period string, a non-empty paragraph and
    at least three well-formed questions. Extra questions are dropped.
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        return ContentResult(error=ParseError("Empty response from provider", raw_text or ""))

    cleaned = strip_code_fences(raw_text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return ContentResult(error=ParseError(f"Failed to parse JSON: {e.msg}", cleaned))

    if not isinstance(data, dict):
        return ContentResult(error=ParseError("Response is not a JSON object", cleaned))

    period = data.get("period")
    if not isinstance(period, str) or not period.strip():
        return ContentResult(error=ParseError("Missing period", cleaned))

    paragraph = data.get("paragraph")
    if not isinstance(paragraph, str) or not paragraph.strip():
        return ContentResult(error=ParseError("Missing paragraph", cleaned))

    raw_questions = data.get("questions")
    if not isinstance(raw_questions, list):
        return ContentResult(error=ParseError("Missing questions", cleaned))

    questions = [q for q in (_parse_question(entry) for entry in raw_questions) if q]
    if len(questions) < QUESTIONS_PER_ROUND:
        return ContentResult(error=ParseError(
            f"Expected {QUESTIONS_PER_ROUND} valid questions, got {len(questions)}", cleaned
        ))

    return ContentResult(content=RoundContent(
        period=period.strip(),
        paragraph=paragraph.strip(),
        questions=questions[:QUESTIONS_PER_ROUND],
    ))


# =============================================================================
# PROVIDER
# =============================================================================

class ContentProvider:
    """Generates round content with the Anthropic API"""

    def __init__(self, api_key: Optional[str] = None, model: str = CONTENT_MODEL,
                 max_tokens: int = CONTENT_MAX_TOKENS, client=None):
        self.api_key = api_key if api_key is not None else ANTHROPIC_API_KEY
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("API key not configured properly.")
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def fetch(self, region: str, period: Period) -> RoundContent:
        """Request content for one period. Raises ContentError on any failure."""
        raw_text = self._api_call(region, period)
        result = parse_content(raw_text)
        if not result.ok:
            logger.error(f"Unusable content for {region} {period.label}: {result.error} "
                         f"| {getattr(result.error, 'excerpt', '')}")
        return result.unwrap()

    def request(self, region: str, period: Period) -> ContentResult:
        """Like fetch(), but returns a ContentResult instead of raising"""
        try:
            return ContentResult(content=self.fetch(region, period))
        except ContentError as e:
            return ContentResult(error=e)

    def _api_call(self, region: str, period: Period) -> str:
        """Make non-streaming API call and return the raw text"""
        client = self.client
        logger.info(f"Requesting content for {region} {period.label}")
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=get_system_prompt(),
                messages=[{"role": "user", "content": get_content_prompt(region, period)}],
            )
        except anthropic.AuthenticationError as e:
            raise UpstreamError("API key is invalid or expired.", status=e.status_code) from e
        except anthropic.PermissionDeniedError as e:
            raise UpstreamError("Access to the content provider was denied.", status=e.status_code) from e
        except anthropic.APIStatusError as e:
            raise UpstreamError(f"Content provider returned {e.status_code}", status=e.status_code) from e
        except anthropic.APIConnectionError as e:
            raise UpstreamError(f"Network error reaching content provider: {e}") from e
        except anthropic.APIError as e:
            raise UpstreamError(f"Content provider error: {e}", status=getattr(e, "status_code", None)) from e

        blocks = getattr(response, "content", None) or []
        texts = [getattr(block, "text", "") for block in blocks if getattr(block, "type", "text") == "text"]
        return "".join(texts).strip()
