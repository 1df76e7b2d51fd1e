"""
Grading engine - the core orchestrator.

Runs one grading attempt end to end: build the prompt, call the selected
provider once, extract and normalize the reply. Provider failures are
propagated unchanged; an unparseable reply becomes a zero-score result.
"""

from typing import NamedTuple

import structlog

from exam_grader.config import Provider, Settings, get_settings
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.grading.providers import ProviderAdapter, create_adapter
from exam_grader.grading.scorer import ResponseParser, fallback_result
from exam_grader.models import GradingRequest, GradingResult

logger = structlog.get_logger(__name__)


class GradingOutcome(NamedTuple):
    """Result of a single grading attempt."""

    result: GradingResult
    raw: str
    fallback: bool = False

    def to_json_dict(self) -> dict[str, object]:
        """Wire shape: {"result": ..., "raw": ...}."""
        return {"result": self.result.to_json_dict(), "raw": self.raw}


class GradingEngine:
    """
    Main grading engine.

    Holds one adapter per provider, all built from the same settings.
    The engine itself keeps no per-attempt state, so a single instance
    can serve concurrent callers.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        adapters: dict[Provider, ProviderAdapter] | None = None,
    ):
        """
        Initialize the grading engine.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            adapters: Optional adapter overrides keyed by provider.
        """
        self._settings = settings or get_settings()
        self._adapters: dict[Provider, ProviderAdapter] = {
            provider: create_adapter(provider, self._settings) for provider in Provider
        }
        if adapters:
            self._adapters.update(adapters)
        self._response_parser = ResponseParser()

    def adapter_for(self, provider: Provider | str | None) -> ProviderAdapter:
        """Select the adapter; unknown selectors get the OpenAI one."""
        return self._adapters[Provider.resolve(provider)]

    def grade_answer(self, request: GradingRequest) -> GradingOutcome:
        """
        Grade one answer.

        Args:
            request: The grading request.

        Returns:
            GradingOutcome with the normalized (or fallback) result and raw reply.

        Raises:
            LLMError: Any provider, credential or empty-reply failure, unchanged.
        """
        max_score = request.question.max_score

        system, user = PromptBuilder.build_messages(
            request.question,
            request.answer,
            max_score=max_score,
            elapsed_seconds=request.elapsed_seconds,
            notes_snippet=request.notes_snippet,
            booklist_snippet=request.booklist_snippet,
            subject=self._settings.exam_subject,
            language=self._settings.response_language,
        )

        adapter = self.adapter_for(request.provider)
        log = logger.bind(question_id=request.question.id, provider=adapter.provider.value)
        log.info("grading_started", max_score=max_score)

        raw = adapter.send(system.content, user.content, request.model, request.api_key)

        result = self._response_parser.parse(raw, max_score)
        if result is None:
            log.warning("grading_reply_unparseable", raw_length=len(raw))
            return GradingOutcome(result=fallback_result(max_score), raw=raw, fallback=True)

        log.info("grading_completed", score=result.score)
        return GradingOutcome(result=result, raw=raw)


def grade_answer(request: GradingRequest, settings: Settings | None = None) -> GradingOutcome:
    """Convenience wrapper: grade with a fresh engine."""
    return GradingEngine(settings).grade_answer(request)
