# =============================================================================
# Collaborator Dependencies — FastAPI Dependency Injection
# =============================================================================
#
# The query pipeline takes its index, embedder and LLM as arguments. These
# dependencies supply the configured production instances; tests replace
# them through `app.dependency_overrides`.
#
# The LLM dependency returns None instead of failing when no provider is
# configured: the answer then degrades to the apology while search results
# are still returned.
# =============================================================================

from __future__ import annotations

import logging

from app.services.document_index import DocumentIndex, get_document_index
from app.services.embedder import EmbeddingProvider, get_embedding_provider
from app.services.llm import LLMProvider, get_llm_provider

logger = logging.getLogger(__name__)


def get_index() -> DocumentIndex:
    return get_document_index()


def get_embedder() -> EmbeddingProvider:
    return get_embedding_provider()


def get_llm() -> LLMProvider | None:
    """Configured LLM provider, or None when it cannot be constructed."""
    try:
        return get_llm_provider()
    except ValueError as e:
        logger.error("LLM provider unavailable: %s", e)
        return None
