# =============================================================================
# Document Index — Elasticsearch Hybrid / Lexical Search Client
# =============================================================================
#
# The index is an external collaborator: the upload subsystem creates and
# fills it, this service only searches it. Two query shapes are supported:
#
#   hybrid_search   bool.should[ knn(embedding), multi_match(fuzzy) ]
#                   minimum_should_match = 1
#   lexical_search  dis_max[ multi_match(fuzzy), query_string(lenient) ]
#                   tie_breaker = 0.2
#
# Field boosts are shared by both: filename ^4, title ^3, content and
# summary ^2, combined text ^1.
#
# DESIGN DECISION: Protocol (structural typing) for the collaborator.
# The orchestration core only sees `DocumentIndex`; tests pass in-memory
# fakes, production passes `ElasticsearchIndex`.
#
# DESIGN DECISION: Plain REST over httpx instead of a full ES SDK.
# Only `_search` and a HEAD on the index are needed.
#
# ARCHITECTURE:
#   DocumentIndex (Protocol)
#   └── ElasticsearchIndex
#       ├── hybrid_search()   — POST /{index}/_search (knn + multi_match)
#       ├── lexical_search()  — POST /{index}/_search (dis_max)
#       └── health_check()    — HEAD /{index}
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from app.config import settings
from app.models.documents import DocumentHit
from app.models.requests import SearchFilters

logger = logging.getLogger(__name__)

SEARCH_FIELDS = [
    "title^3",
    "content^2",
    "text",
    "metadata.summary^2",
    "metadata.fileName^4",
]

KNN_NUM_CANDIDATES = 100
LEXICAL_TIE_BREAKER = 0.2

_HIGHLIGHT = {
    "fields": {
        "title": {"fragment_size": 100},
        "content": {"fragment_size": 200},
        "metadata.summary": {"fragment_size": 150},
    }
}


class ServiceUnavailableError(RuntimeError):
    """The document index is unreachable or unhealthy."""


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class DocumentIndex(Protocol):
    """Read-only search interface over the document index."""

    async def hybrid_search(
        self,
        query: str,
        embedding: Sequence[float],
        filters: SearchFilters | None = None,
        size: int = 10,
    ) -> list[DocumentHit]:
        """Vector-OR-lexical search. Raises on transport/HTTP errors."""
        ...

    async def lexical_search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        size: int = 10,
    ) -> list[DocumentHit]:
        """Keyword-only search. Raises on transport/HTTP errors."""
        ...

    async def health_check(self) -> bool:
        """True when the index answers. Never raises."""
        ...


# ---------------------------------------------------------------------------
# Query Builders (pure)
# ---------------------------------------------------------------------------


def build_filter_clauses(filters: SearchFilters | None) -> list[dict[str, Any]]:
    """
    Translate request filters into Elasticsearch `filter` clauses.

    Empty match sets are skipped rather than sent as `terms: []`, which
    would match nothing.
    """
    if filters is None:
        return []

    clauses: list[dict[str, Any]] = []
    if filters.document_types:
        clauses.append({"terms": {"type": list(filters.document_types)}})
    if filters.categories:
        clauses.append({"terms": {"metadata.category": filters.categories}})
    if filters.departments:
        clauses.append({"terms": {"metadata.department": filters.departments}})
    if filters.tags:
        clauses.append({"terms": {"metadata.tags": filters.tags}})
    bounds = filters.date_range.bounds() if filters.date_range else {}
    if bounds:
        clauses.append({"range": {"createdAt": bounds}})
    return clauses


def _fuzzy_multi_match(query: str) -> dict[str, Any]:
    return {
        "multi_match": {
            "query": query,
            "fields": SEARCH_FIELDS,
            "type": "best_fields",
            "fuzziness": "AUTO",
        }
    }


def is_zero_vector(embedding: Sequence[float]) -> bool:
    return not any(embedding)


def build_hybrid_query(
    query: str,
    embedding: Sequence[float],
    filters: SearchFilters | None,
    size: int,
) -> dict[str, Any]:
    """
    Build the hybrid search body.

    A zero vector carries no similarity signal (and cosine similarity is
    undefined for it), so the kNN clause is left out and the query reduces
    to the lexical clause.
    """
    should: list[dict[str, Any]] = []
    if not is_zero_vector(embedding):
        should.append({
            "knn": {
                "field": "embedding",
                "query_vector": list(embedding),
                "k": size * 2,
                "num_candidates": KNN_NUM_CANDIDATES,
            }
        })
    should.append(_fuzzy_multi_match(query))

    bool_query: dict[str, Any] = {
        "should": should,
        "minimum_should_match": 1,
    }
    clauses = build_filter_clauses(filters)
    if clauses:
        bool_query["filter"] = clauses

    return {
        "size": size,
        "query": {"bool": bool_query},
        "_source": {"excludes": ["embedding"]},
        "highlight": _HIGHLIGHT,
    }


def build_lexical_query(
    query: str,
    filters: SearchFilters | None,
    size: int,
) -> dict[str, Any]:
    """Build the lexical-only body: best of fuzzy match and query_string."""
    dis_max: dict[str, Any] = {
        "dis_max": {
            "tie_breaker": LEXICAL_TIE_BREAKER,
            "queries": [
                _fuzzy_multi_match(query),
                {
                    "query_string": {
                        "query": query,
                        "fields": SEARCH_FIELDS,
                        "default_operator": "AND",
                        "lenient": True,
                        "analyze_wildcard": True,
                    }
                },
            ],
        }
    }

    clauses = build_filter_clauses(filters)
    if clauses:
        search_query: dict[str, Any] = {
            "bool": {"must": dis_max, "filter": clauses}
        }
    else:
        search_query = dis_max

    return {
        "size": size,
        "query": search_query,
        "_source": {"excludes": ["embedding"]},
        "highlight": _HIGHLIGHT,
    }


def parse_search_response(payload: dict[str, Any]) -> list[DocumentHit]:
    """
    Validate the `hits.hits` array into DocumentHit objects.

    Entries that do not match the schema are dropped with a warning; one
    malformed document must not hide the others.
    """
    raw_hits = (payload.get("hits") or {}).get("hits") or []
    hits: list[DocumentHit] = []
    for raw in raw_hits:
        try:
            hits.append(DocumentHit.from_search_hit(raw))
        except ValidationError as e:
            logger.warning(
                "Dropping malformed index hit _id=%s: %s",
                raw.get("_id"), e.error_count(),
            )
    return hits


# ---------------------------------------------------------------------------
# Implementation: Elasticsearch over REST
# ---------------------------------------------------------------------------


class ElasticsearchIndex:
    """
    Elasticsearch-backed DocumentIndex.

    One `httpx.AsyncClient` per instance; it pools connections and must be
    closed with `aclose()` at shutdown.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        index_name: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_url = url or settings.elasticsearch_url
        resolved_key = api_key if api_key is not None else settings.elasticsearch_api_key

        headers = {"Content-Type": "application/json"}
        if resolved_key:
            headers["Authorization"] = f"ApiKey {resolved_key}"

        self._index_name = index_name or settings.elasticsearch_index_name
        self._client = httpx.AsyncClient(
            base_url=resolved_url,
            headers=headers,
            timeout=httpx.Timeout(timeout or settings.search_timeout_seconds),
            transport=transport,
        )

        logger.info(
            "Initialized ElasticsearchIndex (url=%s, index=%s)",
            resolved_url, self._index_name,
        )

    async def hybrid_search(
        self,
        query: str,
        embedding: Sequence[float],
        filters: SearchFilters | None = None,
        size: int = 10,
    ) -> list[DocumentHit]:
        body = build_hybrid_query(query, embedding, filters, size)
        return await self._search(body)

    async def lexical_search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        size: int = 10,
    ) -> list[DocumentHit]:
        body = build_lexical_query(query, filters, size)
        return await self._search(body)

    async def health_check(self) -> bool:
        try:
            response = await self._client.head(f"/{self._index_name}")
        except httpx.HTTPError as e:
            logger.warning("Index health check failed: %s", e)
            return False
        if response.status_code != 200:
            logger.warning(
                "Index health check returned HTTP %d", response.status_code,
            )
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _search(self, body: dict[str, Any]) -> list[DocumentHit]:
        response = await self._client.post(
            f"/{self._index_name}/_search", json=body,
        )
        if response.is_error:
            logger.error(
                "Search request failed: HTTP %d %s",
                response.status_code, response.text[:200],
            )
        response.raise_for_status()

        hits = parse_search_response(response.json())
        logger.debug("Search returned %d hits", len(hits))
        return hits


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_index: ElasticsearchIndex | None = None


def get_document_index() -> ElasticsearchIndex:
    """Lazy singleton for the configured index client."""
    global _index
    if _index is None:
        _index = ElasticsearchIndex()
    return _index


async def close_document_index() -> None:
    """Close the singleton client (called on application shutdown)."""
    global _index
    if _index is not None:
        await _index.aclose()
        _index = None
