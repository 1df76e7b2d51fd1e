"""
Pydantic models for the Exam Grader system.

These models define the schemas for:
- Questions supplied by the question bank
- Grading requests and the chat messages built from them
- Grading results returned to the caller

Result models serialize with camelCase aliases so that a dumped result
matches the JSON contract the model is asked to produce.
"""

import math
import sys
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from exam_grader.config import Provider

# Upper bound for the advisory elapsed-time hint (one day)
MAX_ELAPSED_SECONDS = 24 * 60 * 60


def coerce_number(value: Any) -> float | None:
    """
    Coerce a JSON-ish value to a finite float.

    Numbers and numeric strings are accepted. Integers beyond float range
    saturate to the largest finite float. Booleans, None, NaN, infinities
    and anything else yield None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            number = float(value)
        except OverflowError:
            number = sys.float_info.max if value > 0 else -sys.float_info.max
    elif isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value into [low, high]."""
    return min(high, max(low, value))


# ==============================================================================
# Question Models
# ==============================================================================


class Question(BaseModel):
    """
    A single exam question from the question bank.

    Only read by the grading core, never modified.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(
        ...,
        description="Question identifier",
    )

    section: str = Field(
        default="",
        description="Section label shown in the question header",
    )

    max_score: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("max_score", "points", "maxScore"),
        description="Point value of the question",
    )

    text: str = Field(
        default="",
        description="Question prompt text",
    )

    booklist_topics: tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("booklist_topics", "booklistTopics"),
        description="Topic labels the question maps to",
    )

    note_heading: str | None = Field(
        default=None,
        validation_alias=AliasChoices("note_heading", "noteHeading"),
        description="Heading used to look up supplementary notes",
    )

    @field_validator("id", "section", "text", mode="before")
    @classmethod
    def convert_to_str(cls, v: Any) -> str:
        """Accept numeric identifiers and missing labels."""
        return "" if v is None else str(v)

    @field_validator("max_score", mode="before")
    @classmethod
    def convert_points(cls, v: Any) -> float:
        """Unparseable or negative point values count as zero."""
        number = coerce_number(v)
        if number is None:
            return 0.0
        return max(0.0, number)

    @field_validator("booklist_topics", mode="before")
    @classmethod
    def convert_topics(cls, v: Any) -> tuple[str, ...]:
        """Keep only non-empty string topics."""
        if not isinstance(v, (list, tuple)):
            return ()
        return tuple(t.strip() for t in v if isinstance(t, str) and t.strip())


# ==============================================================================
# Request Models
# ==============================================================================


class GradingRequest(BaseModel):
    """
    Everything needed for a single grading attempt.

    Constructed once per attempt and discarded afterwards.
    """

    model_config = ConfigDict(frozen=True)

    question: Question

    answer: str = Field(
        ...,
        description="The student's answer text",
    )

    provider: Provider = Field(
        default=Provider.OPENAI,
        description="LLM vendor to grade with",
    )

    model: str | None = Field(
        default=None,
        description="Model name; the provider default is used when absent",
    )

    api_key: str | None = Field(
        default=None,
        repr=False,
        description="Credential for the provider; falls back to configuration",
    )

    elapsed_seconds: float | None = Field(
        default=None,
        description="Time spent answering, advisory only",
    )

    notes_snippet: str | None = Field(
        default=None,
        description="Study notes for calibration, not to be quoted",
    )

    booklist_snippet: str | None = Field(
        default=None,
        description="Official booklist excerpt the model may cite",
    )

    @field_validator("answer")
    @classmethod
    def validate_answer(cls, v: str) -> str:
        """Answers are trimmed and must not be empty."""
        v = v.strip()
        if not v:
            raise ValueError("Answer must not be empty")
        return v

    @field_validator("provider", mode="before")
    @classmethod
    def resolve_provider(cls, v: Any) -> Provider:
        """Unknown providers fall back to OpenAI."""
        return Provider.resolve(v)

    @field_validator("model", "api_key", "notes_snippet", "booklist_snippet")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat empty strings as absent."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("elapsed_seconds", mode="before")
    @classmethod
    def clamp_elapsed(cls, v: Any) -> float | None:
        """Clamp the elapsed-time hint; drop it when it is not a number."""
        number = coerce_number(v)
        if number is None:
            return None
        return clamp(number, 0, MAX_ELAPSED_SECONDS)


class ChatMessage(BaseModel):
    """One chat message sent to a provider."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user"]
    content: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for API call."""
        return {"role": self.role, "content": self.content}


# ==============================================================================
# Grading Result Models
# ==============================================================================


class _ResultModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class BooklistAlignment(_ResultModel):
    """Booklist topics the answer touched and references to review."""

    topics: tuple[str, ...] = ()
    refs_to_review: tuple[str, ...] = ()


class NextDrill(_ResultModel):
    """A follow-up practice question suggested by the grader."""

    prompt: str = ""
    timebox_minutes: float = Field(default=15.0, ge=5, le=120)


class GradingResult(_ResultModel):
    """
    Complete grading result for one answer.

    Every sequence field is always present, possibly empty.
    """

    score: float = Field(..., ge=0)
    max_score: float = Field(..., ge=0)
    rationale: str = ""
    strengths: tuple[str, ...] = ()
    missing_points: tuple[str, ...] = ()
    improvements: tuple[str, ...] = ()
    suggested_outline: tuple[str, ...] = ()
    booklist_alignment: BooklistAlignment = Field(default_factory=BooklistAlignment)
    next_drill: NextDrill = Field(default_factory=NextDrill)

    @property
    def percentage_score(self) -> float:
        """Calculate overall percentage score."""
        if self.max_score == 0:
            return 0.0
        return self.score / self.max_score * 100

    def to_json_dict(self) -> dict[str, Any]:
        """Dump using the camelCase wire field names."""
        return self.model_dump(mode="json", by_alias=True)
