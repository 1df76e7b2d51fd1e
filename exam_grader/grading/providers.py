"""
Provider adapters for OpenAI, Google and Claude.

Each adapter turns a (system, user, model, credential) tuple into one
vendor request and returns the raw reply text. Adapters keep only
immutable configuration; clients are created per call so concurrent
calls with different credentials never share state.

There is no retry logic here: each attempt makes exactly one upstream call.
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar
from urllib.parse import quote

import anthropic
import httpx
import structlog
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI

from exam_grader.config import Provider, Settings, get_settings

logger = structlog.get_logger(__name__)

# Model names longer than this are replaced by the provider default
MAX_MODEL_NAME_LENGTH = 120


# ==============================================================================
# Errors
# ==============================================================================


class LLMError(Exception):
    """Raised when an LLM provider call fails."""

    def __init__(self, message: str, cause: Exception | None = None, retryable: bool = False):
        self.cause = cause
        self.retryable = retryable
        super().__init__(message)


class MissingCredentialError(LLMError):
    """No API key in the request or the configuration."""


class InvalidCredentialFormatError(LLMError):
    """The API key fails a superficial shape check."""


class InvalidModelNameError(LLMError):
    """The model name cannot be safely placed in an endpoint URL."""


class ProviderError(LLMError):
    """The vendor reported a failure or could not be reached."""

    def __init__(
        self,
        message: str,
        provider: Provider,
        status_code: int | None = None,
        cause: Exception | None = None,
        retryable: bool = False,
    ):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, cause=cause, retryable=retryable)


class EmptyReplyError(LLMError):
    """The vendor answered successfully but returned no usable text."""

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


# ==============================================================================
# Base adapter
# ==============================================================================


def normalize_model_name(model: str | None, default: str) -> str:
    """
    Resolve the model to call.

    Empty, overlong or multi-line names fall back to the default.
    """
    trimmed = (model or "").strip()
    if not trimmed:
        return default
    if len(trimmed) > MAX_MODEL_NAME_LENGTH:
        return default
    if "\n" in trimmed or "\r" in trimmed:
        return default
    return trimmed


class ProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Subclasses implement `_request` (one network round trip) and declare
    their `provider`, display name and credential shape rules.
    """

    provider: ClassVar[Provider]
    display_name: ClassVar[str]
    env_hint: ClassVar[str]
    key_prefix: ClassVar[str] = ""
    min_key_length: ClassVar[int] = 20

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the adapter.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
        """
        self._settings = settings or get_settings()

    @property
    def default_model(self) -> str:
        """Model used when the caller names none."""
        return self._settings.default_model_for(self.provider)

    def send(self, system: str, user: str, model: str | None, credential: str | None) -> str:
        """
        Send one grading prompt and return the raw reply text.

        Args:
            system: System message content.
            user: User message content.
            model: Requested model; the provider default is used when absent.
            credential: API key; falls back to the configured key.

        Returns:
            The reply text, never empty.

        Raises:
            MissingCredentialError: If no key can be resolved.
            InvalidCredentialFormatError: If the key looks malformed.
            InvalidModelNameError: If the model name is unusable.
            ProviderError: If the vendor call fails.
            EmptyReplyError: If the vendor returned no text.
        """
        api_key = self.resolve_credential(credential)
        self.validate_credential(api_key)
        resolved_model = self.resolve_model(model)

        logger.info(
            "provider_request",
            provider=self.provider.value,
            model=resolved_model,
        )
        text = self._request(system, user, resolved_model, api_key)

        if not text or not text.strip():
            logger.warning("provider_empty_reply", provider=self.provider.value)
            raise EmptyReplyError(f"{self.display_name} API returned empty content")

        logger.debug("provider_reply", provider=self.provider.value, length=len(text))
        return text

    def resolve_credential(self, credential: str | None) -> str:
        """Explicit credential wins, then the configured one."""
        api_key = (credential or "").strip() or self._settings.api_key_for(self.provider)
        if not api_key:
            raise MissingCredentialError(
                f"Missing {self.display_name} API key "
                f"(set env {self.env_hint} or pass it with the request)"
            )
        return api_key

    def validate_credential(self, api_key: str) -> None:
        """Superficial shape check; the vendor decides real validity."""
        malformed = (
            any(ch.isspace() for ch in api_key)
            or len(api_key) < self.min_key_length
            or not api_key.startswith(self.key_prefix)
        )
        if malformed:
            raise InvalidCredentialFormatError(
                f"{self.display_name} API key format looks invalid"
            )

    def resolve_model(self, model: str | None) -> str:
        """Pick the model name to send."""
        return normalize_model_name(model, self.default_model)

    @abstractmethod
    def _request(self, system: str, user: str, model: str, api_key: str) -> str:
        """Perform the vendor call and extract the reply text."""
        ...

    def _status_error(self, message: str | None, status_code: int, cause: Exception | None) -> ProviderError:
        text = message or f"{self.display_name} API error ({status_code})"
        logger.warning(
            "provider_error",
            provider=self.provider.value,
            status_code=status_code,
            message=text,
        )
        return ProviderError(
            text,
            provider=self.provider,
            status_code=status_code,
            cause=cause,
            retryable=status_code == 429 or status_code >= 500,
        )

    def _transport_error(self, cause: Exception) -> ProviderError:
        logger.warning(
            "provider_unreachable",
            provider=self.provider.value,
            error=str(cause),
        )
        return ProviderError(
            f"{self.display_name} API request failed: {cause}",
            provider=self.provider,
            cause=cause,
            retryable=True,
        )


# ==============================================================================
# Variant A: chat completions
# ==============================================================================


class OpenAIAdapter(ProviderAdapter):
    """Chat-completion style adapter using the OpenAI SDK."""

    provider = Provider.OPENAI
    display_name = "OpenAI"
    env_hint = "OPENAI_API_KEY"
    key_prefix = "sk-"

    def _request(self, system: str, user: str, model: str, api_key: str) -> str:
        client = OpenAI(
            api_key=api_key,
            base_url=self._settings.openai_base_url,
            timeout=self._settings.request_timeout,
            max_retries=0,
        )
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

        try:
            response = client.chat.completions.create(
                model=model,
                messages=messages,  # type: ignore[arg-type]
                temperature=self._settings.llm_temperature,
                response_format={"type": "json_object"},
            )
        except APIStatusError as e:
            raise self._status_error(_openai_error_message(e), e.status_code, e) from e
        except (APIConnectionError, APITimeoutError) as e:
            raise self._transport_error(e) from e

        if response.choices and response.choices[0].message.content:
            return response.choices[0].message.content
        return ""


def _openai_error_message(error: APIStatusError) -> str | None:
    body = error.body
    if isinstance(body, dict):
        # The SDK may hand over either the whole payload or its "error" member
        inner = body.get("error", body)
        if isinstance(inner, dict) and isinstance(inner.get("message"), str):
            return inner["message"]
    return None


# ==============================================================================
# Variant B: system instruction + single turn
# ==============================================================================


class GoogleAdapter(ProviderAdapter):
    """generateContent adapter for the Google Generative Language API."""

    provider = Provider.GOOGLE
    display_name = "Google"
    env_hint = "GOOGLE_API_KEY/GEMINI_API_KEY"

    def __init__(self, settings: Settings | None = None, http_client: httpx.Client | None = None):
        """
        Initialize the adapter.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            http_client: Optional shared client; one is created per call otherwise.
        """
        super().__init__(settings)
        self._http_client = http_client

    def resolve_model(self, model: str | None) -> str:
        """Normalize, then make the name safe for the endpoint path."""
        return sanitize_google_model(super().resolve_model(model))

    def endpoint_for(self, model: str) -> str:
        """Build the generateContent URL for a sanitized model name."""
        return f"{self._settings.google_base_url}/models/{quote(model, safe='')}:generateContent"

    def _request(self, system: str, user: str, model: str, api_key: str) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": {
                "temperature": self._settings.llm_temperature,
                "responseMimeType": "application/json",
            },
        }

        try:
            if self._http_client is not None:
                response = self._post(self._http_client, model, api_key, payload)
            else:
                with httpx.Client(timeout=self._settings.request_timeout) as client:
                    response = self._post(client, model, api_key, payload)
        except httpx.HTTPError as e:
            raise self._transport_error(e) from e

        data = _json_or_empty(response)
        if not response.is_success:
            raise self._status_error(_error_message(data), response.status_code, None)

        return _join_text_parts(_google_parts(data))

    def _post(
        self, client: httpx.Client, model: str, api_key: str, payload: dict[str, Any]
    ) -> httpx.Response:
        return client.post(
            self.endpoint_for(model),
            params={"key": api_key},
            json=payload,
        )


def sanitize_google_model(model: str) -> str:
    """
    Strip the 'models/' prefix and reject path-breaking characters.

    Raises:
        InvalidModelNameError: If nothing usable remains.
    """
    name = model.strip()
    if name.startswith("models/"):
        name = name[len("models/"):]
    if not name:
        raise InvalidModelNameError("Missing Google model")
    if any(ch in name for ch in "/?#"):
        raise InvalidModelNameError("Google model name contains invalid characters")
    return name


def _google_parts(data: dict[str, Any]) -> list[Any]:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    first = candidates[0]
    content = first.get("content") if isinstance(first, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    return parts if isinstance(parts, list) else []


# ==============================================================================
# Variant C: messages with explicit max tokens
# ==============================================================================


class ClaudeAdapter(ProviderAdapter):
    """Messages API adapter using the Anthropic SDK."""

    provider = Provider.CLAUDE
    display_name = "Anthropic"
    env_hint = "ANTHROPIC_API_KEY"

    # Lets browser-hosted callers reach the API without a proxy
    DIRECT_ACCESS_HEADERS: ClassVar[dict[str, str]] = {
        "anthropic-dangerous-direct-browser-access": "true",
    }

    def _request(self, system: str, user: str, model: str, api_key: str) -> str:
        client = anthropic.Anthropic(
            api_key=api_key,
            base_url=self._settings.anthropic_base_url,
            timeout=self._settings.request_timeout,
            max_retries=0,
            default_headers=self.DIRECT_ACCESS_HEADERS,
        )

        try:
            message = client.messages.create(
                model=model,
                max_tokens=self._settings.claude_max_tokens,
                temperature=self._settings.llm_temperature,
                system=system,
                messages=[{"role": "user", "content": [{"type": "text", "text": user}]}],
            )
        except anthropic.APIStatusError as e:
            message_text = _error_message(e.body) if isinstance(e.body, dict) else None
            raise self._status_error(message_text, e.status_code, e) from e
        except (anthropic.APIConnectionError, anthropic.APITimeoutError) as e:
            raise self._transport_error(e) from e

        return "".join(
            block.text
            for block in message.content
            if getattr(block, "type", None) == "text" and getattr(block, "text", None)
        )


# ==============================================================================
# Helpers
# ==============================================================================


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_message(data: dict[str, Any]) -> str | None:
    error = data.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None


def _join_text_parts(parts: list[Any]) -> str:
    return "".join(
        p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
    )


_ADAPTERS: dict[Provider, type[ProviderAdapter]] = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.GOOGLE: GoogleAdapter,
    Provider.CLAUDE: ClaudeAdapter,
}


def create_adapter(provider: Provider | str | None, settings: Settings | None = None) -> ProviderAdapter:
    """
    Create the adapter for a provider selector.

    Unrecognized selectors get the OpenAI adapter.
    """
    return _ADAPTERS[Provider.resolve(provider)](settings)
