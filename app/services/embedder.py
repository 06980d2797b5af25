# =============================================================================
# Embedding Service — Query Vectors (Provider-Agnostic)
# =============================================================================
#
# Turns a search query into the 768-dimensional vector the index's kNN
# clause expects, using any OpenAI-compatible embeddings endpoint.
#
# DEGRADATION CONTRACT:
# `embed()` never raises. Any failure (missing key, network error, API
# error, wrong dimensionality) yields an all-zero vector, which callers read
# as "no usable signal" and the index adapter turns into a lexical-only
# hybrid query.
#
# ARCHITECTURE:
#   EmbeddingProvider (Protocol)
#   ├── OpenAIEmbeddingProvider — AsyncOpenAI with configurable base_url
#   ├── zero_vector()           — the degraded result
#   └── get_embedding_provider() — lazy singleton from config
# =============================================================================

from __future__ import annotations

import logging
from typing import Protocol

from openai import AsyncOpenAI

from app.config import settings

logger = logging.getLogger(__name__)


def zero_vector(dimensions: int | None = None) -> list[float]:
    """All-zero embedding of the configured size."""
    return [0.0] * (dimensions or settings.embedding_dimensions)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class EmbeddingProvider(Protocol):
    """Anything that can embed one query string without raising."""

    async def embed(self, text: str) -> list[float]:
        ...


# ---------------------------------------------------------------------------
# Implementation: OpenAI-compatible embeddings endpoint
# ---------------------------------------------------------------------------


class OpenAIEmbeddingProvider:
    """
    Embeds queries via the OpenAI SDK.

    API key resolution order:
      1. explicit `api_key` argument
      2. OPENAI_API_KEY
      3. LLM_API_KEY (one key shared by LLM and embeddings)

    With no key at all the provider still constructs, and every call
    returns a zero vector.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        dimensions: int | None = None,
        timeout: float | None = None,
    ) -> None:
        resolved_key = api_key or settings.openai_api_key or settings.llm_api_key
        self._model = model or settings.embedding_model
        self._dimensions = dimensions or settings.embedding_dimensions
        self._client: AsyncOpenAI | None = None

        if not resolved_key:
            logger.warning(
                "No embedding API key configured; queries will be embedded "
                "as zero vectors (lexical-only search)"
            )
            return

        client_kwargs: dict = {
            "api_key": resolved_key,
            "timeout": timeout or settings.embedding_timeout_seconds,
            "max_retries": 0,
        }
        resolved_base_url = base_url or settings.embedding_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, dimensions=%d, base_url=%s)",
            self._model,
            self._dimensions,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def embed(self, text: str) -> list[float]:
        if self._client is None:
            return zero_vector(self._dimensions)

        try:
            response = await self._client.embeddings.create(
                model=self._model,
                input=text[:1000],
                dimensions=self._dimensions,
            )
            embedding = list(response.data[0].embedding)
        except Exception as e:
            logger.warning(
                "Embedding failed, using zero vector: %s", e,
            )
            return zero_vector(self._dimensions)

        if len(embedding) != self._dimensions:
            logger.warning(
                "Embedding has %d dimensions, expected %d; using zero vector",
                len(embedding), self._dimensions,
            )
            return zero_vector(self._dimensions)

        return embedding


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_provider: OpenAIEmbeddingProvider | None = None


def get_embedding_provider() -> OpenAIEmbeddingProvider:
    """Lazy singleton for the configured embedding provider."""
    global _provider
    if _provider is None:
        _provider = OpenAIEmbeddingProvider()
    return _provider
