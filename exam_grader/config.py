"""
Configuration management for the Exam Grader system.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
Per-provider credentials and default models are read once and injected into the
grading engine and provider adapters at construction time.
"""

from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Provider(str, Enum):
    """Supported LLM vendors."""

    OPENAI = "openai"
    GOOGLE = "google"
    CLAUDE = "claude"

    @classmethod
    def resolve(cls, value: Any) -> "Provider":
        """
        Map a free-form provider selector onto a Provider.

        Vendor aliases are accepted ("anthropic", "gemini"). Anything
        unrecognized, including None, falls back to OpenAI.
        """
        if isinstance(value, Provider):
            return value
        key = str(value or "").strip().lower()
        return _PROVIDER_ALIASES.get(key, cls.OPENAI)


_PROVIDER_ALIASES: dict[str, Provider] = {
    "openai": Provider.OPENAI,
    "google": Provider.GOOGLE,
    "gemini": Provider.GOOGLE,
    "claude": Provider.CLAUDE,
    "anthropic": Provider.CLAUDE,
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    API keys are optional here: a key may also arrive with each grading
    request. Missing keys are reported by the provider adapter at call time.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # Credentials
    # ==========================================================================
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("openai_api_key", "OPENAI_API_KEY"),
        description="Fallback OpenAI API key",
    )

    google_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("google_api_key", "GOOGLE_API_KEY", "GEMINI_API_KEY"),
        description="Fallback Google Generative Language API key",
    )

    anthropic_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("anthropic_api_key", "ANTHROPIC_API_KEY"),
        description="Fallback Anthropic API key",
    )

    # ==========================================================================
    # Default models
    # ==========================================================================
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="Model used when a request names none (OpenAI)",
    )

    google_model: str = Field(
        default="gemini-1.5-flash",
        description="Model used when a request names none (Google)",
    )

    claude_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        validation_alias=AliasChoices("claude_model", "CLAUDE_MODEL", "ANTHROPIC_MODEL"),
        description="Model used when a request names none (Claude)",
    )

    # ==========================================================================
    # Endpoints and transport
    # ==========================================================================
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for the OpenAI chat completions API",
    )

    google_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL for the Google generateContent API",
    )

    anthropic_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Base URL for the Anthropic messages API",
    )

    request_timeout: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Per-request network timeout in seconds",
    )

    # ==========================================================================
    # Grading Configuration
    # ==========================================================================
    llm_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Temperature for LLM generation",
    )

    claude_max_tokens: int = Field(
        default=1400,
        ge=1,
        le=8192,
        description="Output token ceiling sent to Claude",
    )

    exam_subject: str = Field(
        default="Research Methods",
        min_length=1,
        description="Exam subject named in the grader persona",
    )

    response_language: str = Field(
        default="Traditional Chinese",
        min_length=1,
        description="Language the model must answer in",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: str = Field(
        default="WARNING",
        description="Minimum log level for structlog output",
    )

    log_json: bool = Field(
        default=False,
        description="Render log lines as JSON instead of console text",
    )

    @field_validator("openai_base_url", "google_base_url", "anthropic_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("openai_api_key", "google_api_key", "anthropic_api_key")
    @classmethod
    def blank_key_is_none(cls, v: str | None) -> str | None:
        """Treat empty or whitespace-only keys as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the log level name."""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def api_key_for(self, provider: Provider) -> str | None:
        """Return the configured fallback API key for a provider."""
        return {
            Provider.OPENAI: self.openai_api_key,
            Provider.GOOGLE: self.google_api_key,
            Provider.CLAUDE: self.anthropic_api_key,
        }[provider]

    def default_model_for(self, provider: Provider) -> str:
        """Return the default model for a provider."""
        return {
            Provider.OPENAI: self.openai_model,
            Provider.GOOGLE: self.google_model,
            Provider.CLAUDE: self.claude_model,
        }[provider]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
