"""Core types and DTOs for the LLM gateway."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class PromptType(str, Enum):
    """Kind of question asked about a business."""

    FACTUAL = "factual"
    OPINION = "opinion"
    RECOMMENDATION = "recommendation"


DEFAULT_MODELS: tuple[str, ...] = (
    "openai/gpt-4-turbo",
    "anthropic/claude-3-opus",
    "google/gemini-2.5-flash",
)

# Lower temperature for factual questions, more variety for recommendations
PROMPT_TYPE_TEMPERATURES: dict[PromptType, float] = {
    PromptType.FACTUAL: 0.3,
    PromptType.OPINION: 0.5,
    PromptType.RECOMMENDATION: 0.7,
}


@dataclass(frozen=True)
class Query:
    """One prompt addressed to one model."""

    model: str
    prompt: str
    prompt_type: PromptType
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class LlmResponse:
    """Decoded reply to a single Query."""

    content: str
    tokens_used: int
    model: str
    cached: bool = False
    processing_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QueryOptions:
    temperature: float = 0.7
    max_tokens: int = 2000
    timeout: float | None = None  # seconds; falls back to the client default


@dataclass
class LlmConfig:
    """Gateway and processor configuration."""

    models: list[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    batch_size: int = 9
    max_concurrency: int = 3
    wave_pause: float = 0.2  # seconds between sub-batch waves
    cache_enabled: bool = True
    cache_ttl_seconds: int = 24 * 60 * 60
    request_timeout: float = 30.0
    temperature: float = 0.7
    max_tokens: int = 2000

    @classmethod
    def from_settings(cls, settings) -> LlmConfig:
        return cls(
            models=settings.llm_model_list or list(DEFAULT_MODELS),
            batch_size=settings.processor_batch_size,
            max_concurrency=settings.processor_max_concurrency,
            wave_pause=settings.processor_wave_pause,
            cache_enabled=settings.cache_enabled,
            cache_ttl_seconds=settings.llm_cache_ttl_seconds,
            request_timeout=settings.llm_request_timeout,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
