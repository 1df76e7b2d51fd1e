"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Generator
from unittest.mock import MagicMock, patch

import pytest
import structlog

from exam_grader.config import Settings
from exam_grader.models import GradingResult, Question

OPENAI_TEST_KEY = "sk-test-" + "a" * 32
GOOGLE_TEST_KEY = "AIzaTest" + "b" * 31
CLAUDE_TEST_KEY = "sk-ant-test-" + "c" * 32

_ENV_VARS = (
    "OPENAI_API_KEY",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENAI_MODEL",
    "GOOGLE_MODEL",
    "CLAUDE_MODEL",
    "ANTHROPIC_MODEL",
    "LOG_LEVEL",
    "LOG_JSON",
)


# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep real credentials out of tests and reset logging afterwards."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    structlog.reset_defaults()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings without credentials."""
    return Settings(
        _env_file=None,
        openai_model="test-openai-model",
        google_model="test-gemini-model",
        claude_model="test-claude-model",
        google_base_url="https://google.test.local/v1beta",
        llm_temperature=0.2,
        claude_max_tokens=1400,
        log_level="CRITICAL",
    )


@pytest.fixture
def keyed_settings(test_settings: Settings) -> Settings:
    """Test settings with a fallback key for every provider."""
    return test_settings.model_copy(
        update={
            "openai_api_key": OPENAI_TEST_KEY,
            "google_api_key": GOOGLE_TEST_KEY,
            "anthropic_api_key": CLAUDE_TEST_KEY,
        }
    )


# ==============================================================================
# Question Fixtures
# ==============================================================================


@pytest.fixture
def sample_question() -> Question:
    """Create a sample 20-point question."""
    return Question.model_validate(
        {
            "id": "rm-2023-q1",
            "section": "Part A",
            "points": 20,
            "text": "Explain the difference between internal and external validity.",
            "booklistTopics": ["Validity", "Experimental design"],
            "noteHeading": "### Q1 Validity",
        }
    )


@pytest.fixture
def bare_question() -> Question:
    """A question without topics or note heading."""
    return Question(id="q2", section="Part B", max_score=10, text="Define reliability.")


@pytest.fixture
def sample_answer() -> str:
    """Sample student answer text."""
    return (
        "Internal validity concerns whether the observed effect is caused by the "
        "treatment; external validity concerns whether it generalizes to other "
        "people, settings and times."
    )


# ==============================================================================
# LLM Reply Fixtures
# ==============================================================================


@pytest.fixture
def sample_reply_data() -> dict[str, Any]:
    """Well-formed grading reply."""
    return {
        "score": 14,
        "maxScore": 20,
        "rationale": "Correct core definitions, thin on threats to validity.",
        "strengths": ["Accurate definitions"],
        "missingPoints": ["Threats to internal validity"],
        "improvements": ["Name at least two threats with examples"],
        "suggestedOutline": ["Define both", "List threats", "Give a study example"],
        "booklistAlignment": {
            "topics": ["Validity"],
            "refsToReview": ["Shadish, Cook & Campbell (2002), ch. 2"],
        },
        "nextDrill": {
            "prompt": "Discuss validity trade-offs in a field experiment.",
            "timeboxMinutes": 20,
        },
    }


@pytest.fixture
def sample_llm_response(sample_reply_data: dict[str, Any]) -> str:
    """Sample LLM grading response in JSON format."""
    return json.dumps(sample_reply_data)


@pytest.fixture
def sample_grading_result() -> GradingResult:
    """Normalized result matching sample_reply_data."""
    return GradingResult.model_validate(
        {
            "score": 14,
            "maxScore": 20,
            "rationale": "Correct core definitions, thin on threats to validity.",
            "strengths": ["Accurate definitions"],
            "missingPoints": ["Threats to internal validity"],
            "improvements": ["Name at least two threats with examples"],
            "suggestedOutline": ["Define both", "List threats", "Give a study example"],
            "booklistAlignment": {
                "topics": ["Validity"],
                "refsToReview": ["Shadish, Cook & Campbell (2002), ch. 2"],
            },
            "nextDrill": {
                "prompt": "Discuss validity trade-offs in a field experiment.",
                "timeboxMinutes": 20,
            },
        }
    )


# ==============================================================================
# Mock Fixtures
# ==============================================================================


def make_chat_completion(content: str | None) -> SimpleNamespace:
    """Build an object shaped like an OpenAI chat completion."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_claude_message(*texts: str) -> SimpleNamespace:
    """Build an object shaped like an Anthropic Message."""
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=t) for t in texts])


@pytest.fixture
def mock_openai(sample_llm_response: str) -> Generator[MagicMock, None, None]:
    """Mock the OpenAI SDK class used by the OpenAI adapter."""
    with patch("exam_grader.grading.providers.OpenAI") as mock_class:
        mock_class.return_value.chat.completions.create.return_value = make_chat_completion(
            sample_llm_response
        )
        yield mock_class


@pytest.fixture
def mock_anthropic(sample_llm_response: str) -> Generator[MagicMock, None, None]:
    """Mock the Anthropic SDK class used by the Claude adapter."""
    with patch("exam_grader.grading.providers.anthropic.Anthropic") as mock_class:
        mock_class.return_value.messages.create.return_value = make_claude_message(
            sample_llm_response
        )
        yield mock_class


# ==============================================================================
# File Fixtures
# ==============================================================================


@pytest.fixture
def notes_markdown() -> str:
    """Study notes with a note section and the booklist section."""
    return """# Research Methods Notes

## Validity

### Q1 Validity
Internal validity: causal inference within the study.
External validity: generalization.

### Q2 Reliability
Test-retest, inter-rater, internal consistency.

## 參考書目校正（官方書單對照）
- Shadish, Cook & Campbell (2002), ch. 2
- Babbie (2020), ch. 5
"""


@pytest.fixture
def questions_file(tmp_path: Path) -> Path:
    """Question set JSON with two questions."""
    path = tmp_path / "rm-2023.questions.json"
    path.write_text(
        json.dumps(
            {
                "questions": [
                    {
                        "id": "rm-2023-q1",
                        "section": "Part A",
                        "points": 20,
                        "text": "Explain the difference between internal and external validity.",
                        "booklistTopics": ["Validity"],
                        "noteHeading": "### Q1 Validity",
                    },
                    {
                        "id": "rm-2023-q2",
                        "section": "Part B",
                        "points": "15",
                        "text": "Define reliability.",
                    },
                ]
            },
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def notes_file(tmp_path: Path, notes_markdown: str) -> Path:
    """Notes Markdown file on disk."""
    path = tmp_path / "notes.md"
    path.write_text(notes_markdown, encoding="utf-8")
    return path


@pytest.fixture
def answer_file(tmp_path: Path, sample_answer: str) -> Path:
    """Answer text file on disk."""
    path = tmp_path / "answer.txt"
    path.write_text(sample_answer, encoding="utf-8")
    return path
