"""
Question bank helpers.

Loads question sets from JSON and pulls note and booklist snippets out of
a study-notes Markdown file. The grading core only reads these.
"""

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from exam_grader.models import Question

logger = structlog.get_logger(__name__)

BOOKLIST_MARKER = "## 參考書目校正（官方書單對照）"


class QuestionBankError(Exception):
    """Raised when a question set cannot be loaded."""

    def __init__(self, message: str, file_path: str | Path):
        self.file_path = str(file_path)
        super().__init__(f"Failed to load '{file_path}': {message}")


def load_questions(file_path: Path | str) -> tuple[Question, ...]:
    """
    Load a question set file of the form {"questions": [...]}.

    Raises:
        QuestionBankError: If the file is missing or malformed.
    """
    path = Path(file_path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise QuestionBankError("File does not exist", path) from e
    except ValueError as e:
        raise QuestionBankError(f"Invalid JSON: {e}", path) from e

    items = data.get("questions") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise QuestionBankError("Expected an object with a 'questions' list", path)

    try:
        questions = tuple(Question.model_validate(item) for item in items)
    except ValidationError as e:
        raise QuestionBankError(f"Invalid question entry: {e.errors()[0]['msg']}", path) from e

    logger.debug("questions_loaded", path=str(path), count=len(questions))
    return questions


def find_question(questions: tuple[Question, ...], question_id: str) -> Question | None:
    """Look up a question by identifier."""
    for question in questions:
        if question.id == question_id:
            return question
    return None


def extract_note_section(markdown: str, heading: str | None) -> str | None:
    """
    Return the section starting at `heading`.

    The section runs until the next level-2 or level-3 heading.
    """
    if not heading:
        return None
    start = markdown.find(heading)
    if start == -1:
        return None

    search_from = start + len(heading)
    end = len(markdown)
    for marker in ("\n## ", "\n### "):
        idx = markdown.find(marker, search_from)
        if idx != -1:
            end = min(end, idx)

    return markdown[start:end].strip()


def extract_booklist_section(markdown: str) -> str | None:
    """Return everything from the official booklist heading onwards."""
    idx = markdown.find(BOOKLIST_MARKER)
    if idx == -1:
        return None
    return markdown[idx:].strip()
