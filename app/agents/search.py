# =============================================================================
# Multi-Search Executor — Fan-Out Retrieval with Lexical Fallback
# =============================================================================
#
# Runs the planner's search strings against the document index:
#
# 1. CAP — keep the first `max_search_queries` distinct strings (default 6)
# 2. EMBED — one query vector per string (zero vector on failure)
# 3. HYBRID — kNN OR fuzzy match; on error or zero hits, fall back to…
# 4. LEXICAL — keyword-only search for the same string
# 5. COLLECT — every hit tagged with (query position, rank)
#
# Sub-queries run concurrently, at most `search_concurrency` in flight.
# `asyncio.gather` returns results in submission order, and each hit keeps
# its query position, so completion order never leaks into the output.
#
# Failures stay local: a sub-query whose hybrid and lexical calls both fail
# contributes no hits and a "failed" trace entry. Every collaborator call
# has its own timeout; a timeout is just another failure.
#
# Cancellation of the caller's task cancels the gather, which cancels
# every sub-query still in flight.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.config import settings
from app.models.documents import DocumentHit
from app.models.requests import SearchFilters
from app.services.document_index import DocumentIndex
from app.services.embedder import EmbeddingProvider, zero_vector

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RankedHit:
    """A hit plus where it came from: which sub-query, at which rank."""

    hit: DocumentHit
    query_index: int
    rank: int


@dataclass
class SubQueryTrace:
    """Outcome of one sub-query, for logs and debugging."""

    query: str
    strategy: str  # "hybrid", "lexical", "lexical_fallback" or "failed"
    num_results: int
    error: str | None = None


@dataclass
class MultiSearchResult:
    """All hits from the fan-out (unbounded, undeduplicated) plus the trace."""

    hits: list[RankedHit] = field(default_factory=list)
    trace: list[SubQueryTrace] = field(default_factory=list)

    @property
    def failed_queries(self) -> int:
        return sum(1 for t in self.trace if t.strategy == "failed")


def per_query_top_k(max_results: int) -> int:
    """Results requested per sub-query: half the final budget, at least 3."""
    return max(3, max_results // 2)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def multi_search(
    queries: Sequence[str],
    *,
    index: DocumentIndex,
    embedder: EmbeddingProvider,
    filters: SearchFilters | None = None,
    use_vector_search: bool = True,
    max_results: int = 10,
    max_queries: int | None = None,
    concurrency: int | None = None,
    call_timeout: float | None = None,
) -> MultiSearchResult:
    """
    Execute the fan-out and return every hit in query-priority order.

    Args:
        queries: Search strings, highest priority first. The cap keeps a prefix
            of this list; duplicates inside that prefix run once.
        index: Document index collaborator.
        embedder: Embedding collaborator (only used for hybrid search).
        filters: Optional filters forwarded to every search call.
        use_vector_search: Hybrid search with lexical fallback when True,
            lexical only when False.
        max_results: Final result budget; drives the per-query size.
        max_queries: Fan-out cap (default settings.max_search_queries).
        concurrency: Sub-queries in flight (default settings.search_concurrency).
        call_timeout: Seconds per collaborator call
            (default settings.search_timeout_seconds).

    Returns:
        MultiSearchResult; never raises for collaborator failures.
    """
    cap = max_queries or settings.max_search_queries
    selected = list(dict.fromkeys(list(queries)[:cap]))
    top_k = per_query_top_k(max_results)
    if filters is not None and filters.is_empty():
        filters = None

    executor = _SubQueryExecutor(
        index=index,
        embedder=embedder,
        filters=filters,
        use_vector_search=use_vector_search,
        top_k=top_k,
        call_timeout=call_timeout or settings.search_timeout_seconds,
        semaphore=asyncio.Semaphore(concurrency or settings.search_concurrency),
    )

    logger.info(
        "Fan-out: %d of %d queries, top_k=%d, vector=%s",
        len(selected), len(queries), top_k, use_vector_search,
    )

    outcomes = await asyncio.gather(*(
        executor.run(query) for query in selected
    ))

    result = MultiSearchResult()
    for query_index, (hits, trace) in enumerate(outcomes):
        result.trace.append(trace)
        result.hits.extend(
            RankedHit(hit=hit, query_index=query_index, rank=rank)
            for rank, hit in enumerate(hits)
        )

    logger.info(
        "Fan-out complete: %d hits from %d queries (%d failed)",
        len(result.hits), len(selected), result.failed_queries,
    )
    return result


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


@dataclass
class _SubQueryExecutor:
    """Per-request settings shared by every sub-query."""

    index: DocumentIndex
    embedder: EmbeddingProvider
    filters: SearchFilters | None
    use_vector_search: bool
    top_k: int
    call_timeout: float
    semaphore: asyncio.Semaphore

    async def run(self, query: str) -> tuple[list[DocumentHit], SubQueryTrace]:
        async with self.semaphore:
            if not self.use_vector_search:
                return await self._lexical_only(query)
            return await self._hybrid_with_fallback(query)

    async def _lexical_only(
        self, query: str,
    ) -> tuple[list[DocumentHit], SubQueryTrace]:
        try:
            hits = await self._lexical(query)
        except Exception as e:
            logger.warning("Lexical search failed for '%s': %s", query[:80], e)
            return [], SubQueryTrace(query, "failed", 0, error=str(e))
        return hits, SubQueryTrace(query, "lexical", len(hits))

    async def _hybrid_with_fallback(
        self, query: str,
    ) -> tuple[list[DocumentHit], SubQueryTrace]:
        embedding = await self._embed(query)

        hybrid_error: str | None = None
        try:
            hits = await asyncio.wait_for(
                self.index.hybrid_search(
                    query, embedding, filters=self.filters, size=self.top_k,
                ),
                timeout=self.call_timeout,
            )
        except Exception as e:
            hybrid_error = str(e) or type(e).__name__
            logger.warning(
                "Hybrid search failed for '%s', falling back to lexical: %s",
                query[:80], hybrid_error,
            )
        else:
            if hits:
                return hits, SubQueryTrace(query, "hybrid", len(hits))
            logger.info(
                "Hybrid search empty for '%s', falling back to lexical",
                query[:80],
            )

        try:
            hits = await self._lexical(query)
        except Exception as e:
            logger.warning(
                "Lexical fallback failed for '%s', skipping query: %s",
                query[:80], e,
            )
            error = f"hybrid: {hybrid_error}; lexical: {e}" if hybrid_error else str(e)
            return [], SubQueryTrace(query, "failed", 0, error=error)

        return hits, SubQueryTrace(
            query, "lexical_fallback", len(hits), error=hybrid_error,
        )

    async def _lexical(self, query: str) -> list[DocumentHit]:
        return await asyncio.wait_for(
            self.index.lexical_search(query, filters=self.filters, size=self.top_k),
            timeout=self.call_timeout,
        )

    async def _embed(self, query: str) -> list[float]:
        try:
            return await asyncio.wait_for(
                self.embedder.embed(query),
                timeout=settings.embedding_timeout_seconds,
            )
        except Exception as e:
            logger.warning(
                "Embedding unavailable for '%s', using zero vector: %s",
                query[:80], e,
            )
            return zero_vector()
