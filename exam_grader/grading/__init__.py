"""
Grading Engine Module.

Prompt construction, provider adapters, reply parsing and the orchestrator.
"""

from exam_grader.grading.engine import GradingEngine, GradingOutcome, grade_answer
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.grading.providers import (
    ClaudeAdapter,
    EmptyReplyError,
    GoogleAdapter,
    InvalidCredentialFormatError,
    InvalidModelNameError,
    LLMError,
    MissingCredentialError,
    OpenAIAdapter,
    ProviderAdapter,
    ProviderError,
    create_adapter,
)
from exam_grader.grading.scorer import ResponseParser, extract_json, normalize_result

__all__ = [
    "ClaudeAdapter",
    "EmptyReplyError",
    "GoogleAdapter",
    "GradingEngine",
    "GradingOutcome",
    "InvalidCredentialFormatError",
    "InvalidModelNameError",
    "LLMError",
    "MissingCredentialError",
    "OpenAIAdapter",
    "PromptBuilder",
    "ProviderAdapter",
    "ProviderError",
    "ResponseParser",
    "create_adapter",
    "extract_json",
    "grade_answer",
    "normalize_result",
]
