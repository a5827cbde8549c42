"""
Epoch Atlas - Prompts Module

Prompts sent to the content provider. The provider must answer with a
single JSON object; anything else is rejected by content.parse_content().
"""

from config import QUESTIONS_PER_ROUND, PARAGRAPH_WORDS, ANSWER_LETTERS
from periods import Period


def get_system_prompt() -> str:
    return f"""You are a world-class historian writing material for a geography and history quiz.

RULES:
- Write only about events that actually happened in the requested region and years
- Keep the tone factual and accessible, no speculation
- Every question must be answerable from the paragraph you wrote
- Exactly one option per question is correct, and it must be marked with its letter
- Options are plausible but clearly distinguishable
- Respond with ONLY a JSON object, no markdown fences and no commentary

Letters for the correct option: {", ".join(ANSWER_LETTERS)}"""


def get_content_prompt(region: str, period: Period) -> str:
    """User prompt asking for one round's paragraph and questions"""
    return f"""Write a factual paragraph (exactly {PARAGRAPH_WORDS} words) about historical events in {region} between {period.start} and {period.end}.

Return ONLY a JSON object with this exact structure:
{{
  "period": "{period.label}",
  "paragraph": "Your {PARAGRAPH_WORDS}-word history paragraph here",
  "questions": [
    {{
      "question": "Question text?",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correct": "A"
    }}
  ]
}}

Include exactly {QUESTIONS_PER_ROUND} questions, each with exactly {len(ANSWER_LETTERS)} options.
Do not include any text outside of the JSON object."""
