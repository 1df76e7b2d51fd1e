"""
Response parser and scorer for LLM grading output.

Extracts a JSON value from the model's free-form reply and normalizes it
into a GradingResult whose shape is guaranteed, whatever the model sent.
Neither step raises: an unusable reply is reported as None and turned into
a fallback result by the grading engine.
"""

import json
import re
from collections.abc import Callable
from typing import Any

import structlog

from exam_grader.models import (
    BooklistAlignment,
    GradingResult,
    NextDrill,
    clamp,
    coerce_number,
)

logger = structlog.get_logger(__name__)

UNPARSEABLE_RATIONALE = "The model reply could not be parsed as JSON. Please try grading again."

DEFAULT_TIMEBOX_MINUTES = 15.0
MIN_TIMEBOX_MINUTES = 5.0
MAX_TIMEBOX_MINUTES = 120.0

# Fields holding free-text lists, keyed by their wire name
LIST_FIELDS: tuple[tuple[str, str], ...] = (
    ("strengths", "strengths"),
    ("missingPoints", "missing_points"),
    ("improvements", "improvements"),
    ("suggestedOutline", "suggested_outline"),
)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

_MISSING = object()


# ==============================================================================
# JSON extraction
# ==============================================================================


def _loads(text: str) -> Any:
    """Parse JSON, returning the _MISSING sentinel on failure."""
    try:
        return json.loads(text)
    except ValueError:
        return _MISSING


def parse_direct(text: str) -> Any:
    """Parse the whole (trimmed) text as JSON."""
    return _loads(text)


def parse_fenced_block(text: str) -> Any:
    """Parse the content of the first ``` or ```json fenced block."""
    match = _FENCE_RE.search(text)
    if not match or not match.group(1):
        return _MISSING
    return _loads(match.group(1).strip())


def parse_brace_span(text: str) -> Any:
    """Parse the span from the first '{' to the last '}'."""
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return _MISSING
    return _loads(text[first : last + 1])


ExtractionStrategy = Callable[[str], Any]

EXTRACTION_STRATEGIES: tuple[ExtractionStrategy, ...] = (
    parse_direct,
    parse_fenced_block,
    parse_brace_span,
)


def extract_json(text: Any) -> Any | None:
    """
    Best-effort extraction of a JSON value from model output.

    Strategies are tried in order and the first successful parse wins.

    Args:
        text: Raw model reply.

    Returns:
        The parsed value, or None if nothing could be parsed.
    """
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None

    for strategy in EXTRACTION_STRATEGIES:
        value = strategy(trimmed)
        if value is not _MISSING:
            logger.debug("json_extracted", strategy=strategy.__name__)
            return value

    logger.info("json_extraction_failed", length=len(trimmed))
    return None


# ==============================================================================
# Normalization
# ==============================================================================


def _string_list(value: Any) -> tuple[str, ...]:
    """Lists keep their string items; any other shape becomes empty."""
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item for item in value if isinstance(item, str))


def _normalize_booklist(value: Any) -> BooklistAlignment:
    if not isinstance(value, dict):
        return BooklistAlignment()
    return BooklistAlignment(
        topics=_string_list(value.get("topics")),
        refs_to_review=_string_list(value.get("refsToReview")),
    )


def _normalize_next_drill(value: Any) -> NextDrill:
    if not isinstance(value, dict):
        return NextDrill()

    prompt = value.get("prompt")
    minutes = coerce_number(value.get("timeboxMinutes"))
    if minutes is None:
        minutes = DEFAULT_TIMEBOX_MINUTES

    return NextDrill(
        prompt=prompt if isinstance(prompt, str) else "",
        timebox_minutes=clamp(minutes, MIN_TIMEBOX_MINUTES, MAX_TIMEBOX_MINUTES),
    )


def normalize_result(data: Any, max_score: float) -> GradingResult:
    """
    Normalize a parsed model reply into a GradingResult.

    Args:
        data: Parsed JSON of any shape; non-objects are treated as empty.
        max_score: The question's point value, authoritative over the reply.

    Returns:
        A fully populated GradingResult.
    """
    if not isinstance(data, dict):
        data = {}

    max_score = max(0.0, float(max_score))
    score = coerce_number(data.get("score"))
    if score is None:
        score = 0.0

    rationale = data.get("rationale")

    lists = {attr: _string_list(data.get(key)) for key, attr in LIST_FIELDS}

    return GradingResult(
        score=clamp(score, 0.0, max_score),
        max_score=max_score,
        rationale=rationale if isinstance(rationale, str) else "",
        booklist_alignment=_normalize_booklist(data.get("booklistAlignment")),
        next_drill=_normalize_next_drill(data.get("nextDrill")),
        **lists,
    )


def fallback_result(max_score: float) -> GradingResult:
    """Zero-score result used when the reply holds no JSON object."""
    return GradingResult(
        score=0.0,
        max_score=max(0.0, float(max_score)),
        rationale=UNPARSEABLE_RATIONALE,
    )


class ResponseParser:
    """
    Parses LLM grading replies.

    Ensures:
    1. A JSON object is found if one is reasonably present
    2. Scores are clamped to [0, max_score]
    3. Every list field is a tuple of strings
    """

    def parse(self, response: str, max_score: float) -> GradingResult | None:
        """
        Parse a raw reply into a GradingResult.

        Returns:
            The normalized result, or None when no JSON object was found.
        """
        data = extract_json(response)
        if not isinstance(data, dict):
            if data is not None:
                logger.info("json_not_an_object", kind=type(data).__name__)
            return None
        return normalize_result(data, max_score)
