# =============================================================================
# Language Model Service — Answer Generation Backend
# =============================================================================
#
# The answer step sends exactly one prompt string and reads back one text
# completion. This module hides which SDK carries that call:
#
#   provider="anthropic"          → AsyncAnthropic   (messages API)
#   provider="openai_compatible"  → AsyncOpenAI      (chat completions; works
#                                   for OpenAI, DeepSeek, Qwen, GLM, Kimi via
#                                   LLM_BASE_URL)
#
# Providers RAISE on failure (network, non-2xx, bad payload). Turning a
# failure into the user-facing apology belongs to the analyst.
#
# Clients are built with an explicit request timeout and SDK retries off:
# the pipeline enforces its own deadline and never retries the model call.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── _ModelOptions             — model/temperature/max_tokens/timeout
#   ├── AnthropicProvider
#   ├── OpenAICompatibleProvider
#   └── get_llm_provider()        — lazy singleton via PROVIDERS registry
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Provider-neutral completion result."""

    content: str           # Generated text ("" if the model returned none)
    model: str             # Model identifier reported by the API
    input_tokens: int
    output_tokens: int


class LLMProvider(Protocol):
    """Single-prompt completion. Raises on any failure."""

    async def complete(self, prompt: str) -> LLMResponse:
        ...


@dataclass(frozen=True)
class _ModelOptions:
    model: str
    temperature: float
    max_tokens: int
    timeout: float

    @classmethod
    def from_settings(
        cls, model: str | None = None, timeout: float | None = None,
    ) -> _ModelOptions:
        return cls(
            model=model or settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=timeout or settings.llm_timeout_seconds,
        )


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """Claude via AsyncAnthropic. Key: LLM_API_KEY, then ANTHROPIC_API_KEY."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._options = _ModelOptions.from_settings(model, timeout)
        self._client = AsyncAnthropic(
            api_key=key, timeout=self._options.timeout, max_retries=0,
        )
        logger.info("Anthropic answer model: %s", self._options.model)

    async def complete(self, prompt: str) -> LLMResponse:
        response = await self._client.messages.create(
            model=self._options.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self._options.temperature,
            max_tokens=self._options.max_tokens,
        )

        text = next(
            (block.text for block in response.content if block.type == "text"),
            "",
        )
        return LLMResponse(
            content=text,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# OpenAI-compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Any chat-completions API. Switching vendors is configuration only:

        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        key = api_key or settings.llm_api_key or settings.openai_api_key
        if not key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        self._options = _ModelOptions.from_settings(model, timeout)
        endpoint = base_url or settings.llm_base_url
        self._client = AsyncOpenAI(
            api_key=key,
            base_url=endpoint,
            timeout=self._options.timeout,
            max_retries=0,
        )
        logger.info(
            "OpenAI-compatible answer model: %s at %s",
            self._options.model, endpoint or "api.openai.com",
        )

    async def complete(self, prompt: str) -> LLMResponse:
        response = await self._client.chat.completions.create(
            model=self._options.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self._options.temperature,
            max_tokens=self._options.max_tokens,
        )

        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model or self._options.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

PROVIDERS: dict[str, type[AnthropicProvider] | type[OpenAICompatibleProvider]] = {
    "anthropic": AnthropicProvider,
    "openai_compatible": OpenAICompatibleProvider,
}

_provider: LLMProvider | None = None


def get_llm_provider() -> LLMProvider:
    """
    Return the provider named by LLM_PROVIDER, creating it on first use.

    Raises:
        ValueError: Unknown provider name, or no API key for it.
    """
    global _provider
    if _provider is None:
        provider_cls = PROVIDERS.get(settings.llm_provider)
        if provider_cls is None:
            raise ValueError(
                f"Unknown LLM_PROVIDER {settings.llm_provider!r}; "
                f"expected one of {sorted(PROVIDERS)}"
            )
        _provider = provider_cls()
    return _provider
