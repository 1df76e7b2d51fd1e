"""
Prompt builder for exam grading.

Constructs the two chat messages sent to every provider:
- A fixed system message with the grader persona and output rules
- A user message carrying the question, the answer, optional context
  snippets and the required JSON output contract
"""

import json

from exam_grader.models import ChatMessage, Question

DEFAULT_SUBJECT = "Research Methods"
DEFAULT_LANGUAGE = "Traditional Chinese"


def format_number(value: float) -> str:
    """Render whole numbers without a trailing '.0'."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


class PromptBuilder:
    """
    Builds grading prompts for exam-oriented feedback.

    The prompts are designed to:
    1. Score against the question's point allocation
    2. Keep calibration notes and citable booklist references apart
    3. Produce a single JSON object with a fixed shape
    """

    SYSTEM_PROMPT_TEMPLATE = """You are the grader for the doctoral qualifying exam in {subject}. Your goal is to help the candidate raise their score with an exam-oriented approach.
Reply in {language}.
Only cite or recommend references that appear in the official booklist excerpt. Never invent titles, authors or chapters.
Scoring criteria: conceptual correctness, alignment with the point allocation, clear structure, and use of examples or concrete scenarios.
The output MUST be raw JSON. No Markdown, no code fences, no text before or after the JSON."""

    # Field name -> type/semantics description, shown to the model verbatim
    OUTPUT_CONTRACT: dict[str, object] = {
        "score": "number (0..maxScore, preferably integer)",
        "maxScore": "number",
        "rationale": "string (overall assessment, 100-200 words)",
        "strengths": "string[]",
        "missingPoints": "string[]",
        "improvements": "string[]",
        "suggestedOutline": "string[] (answer skeleton the candidate can copy paragraph by paragraph)",
        "booklistAlignment": {
            "topics": "string[] (chosen from the question's booklist topics)",
            "refsToReview": "string[] (only entries that appear in the official booklist excerpt)",
        },
        "nextDrill": {
            "prompt": "string (one new practice question of the same type in a different scenario)",
            "timeboxMinutes": "number (suggested practice time)",
        },
    }

    @staticmethod
    def get_system_prompt(
        subject: str = DEFAULT_SUBJECT,
        language: str = DEFAULT_LANGUAGE,
    ) -> str:
        """Get the system prompt for exam grading."""
        return PromptBuilder.SYSTEM_PROMPT_TEMPLATE.format(subject=subject, language=language)

    @staticmethod
    def build_grading_prompt(
        question: Question,
        answer: str,
        max_score: float | None = None,
        elapsed_seconds: float | None = None,
        notes_snippet: str | None = None,
        booklist_snippet: str | None = None,
    ) -> str:
        """
        Build the user prompt for grading.

        Args:
            question: The question being answered.
            answer: The student's answer text.
            max_score: Point value; defaults to the question's own.
            elapsed_seconds: Time spent answering, shown for reference.
            notes_snippet: Study notes used for calibration only.
            booklist_snippet: Official booklist excerpt the model may cite.

        Returns:
            The formatted user prompt.
        """
        points = question.max_score if max_score is None else max_score

        parts: list[str] = [
            f"QUESTION | {question.section} | {format_number(points)} points\n{question.text}"
        ]

        if question.booklist_topics:
            topics = "\n- ".join(question.booklist_topics)
            parts.append(f"BOOKLIST TOPICS FOR THIS QUESTION:\n- {topics}")

        if elapsed_seconds is not None:
            parts.append(
                f"TIME SPENT:\n{format_number(elapsed_seconds)} seconds (for reference only)"
            )

        parts.append(f"STUDENT ANSWER:\n---BEGIN ANSWER---\n{answer}\n---END ANSWER---")

        if notes_snippet:
            parts.append(
                "STUDY NOTES (for calibration only; do not quote verbatim):\n" + notes_snippet
            )

        if booklist_snippet:
            parts.append(
                "OFFICIAL BOOKLIST EXCERPT (citable; do not fabricate entries):\n"
                + booklist_snippet
            )

        contract = json.dumps(PromptBuilder.OUTPUT_CONTRACT, indent=2, ensure_ascii=False)
        parts.append(f"OUTPUT FORMAT (respond with ONLY this JSON shape):\n{contract}")

        parts.append(
            f"REQUIREMENTS: score must not exceed maxScore ({format_number(points)}). "
            "If the answer is clearly off-topic or wrong, say so directly and give "
            "the shortest version that would recover the points."
        )

        return "\n\n".join(parts)

    @staticmethod
    def build_messages(
        question: Question,
        answer: str,
        max_score: float | None = None,
        elapsed_seconds: float | None = None,
        notes_snippet: str | None = None,
        booklist_snippet: str | None = None,
        subject: str = DEFAULT_SUBJECT,
        language: str = DEFAULT_LANGUAGE,
    ) -> tuple[ChatMessage, ChatMessage]:
        """Build the (system, user) message pair for one grading attempt."""
        system = ChatMessage(
            role="system",
            content=PromptBuilder.get_system_prompt(subject, language),
        )
        user = ChatMessage(
            role="user",
            content=PromptBuilder.build_grading_prompt(
                question,
                answer,
                max_score=max_score,
                elapsed_seconds=elapsed_seconds,
                notes_snippet=notes_snippet,
                booklist_snippet=booklist_snippet,
            ),
        )
        return system, user
