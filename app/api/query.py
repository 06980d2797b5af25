# =============================================================================
# Query API — Knowledge-Base Question Answering Endpoint
# =============================================================================
#
# POST /query
#   1. Validate + sanitise the body (pydantic; 400 on failure)
#   2. Health-check the index (503 when it is down)
#   3. Run the query graph (plan → search → extract → analyse)
#   4. Map hits to source summaries and wrap everything in the envelope
#
# GET /health
#   Service liveness plus the index health check result.
#
# This module is thin: the pipeline lives in app/agents. Unexpected errors
# propagate to the generic handler in app/main.py (500 envelope).
# =============================================================================

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from app.agents.orchestrator import answer_query
from app.agents.planner import describe_search_focus
from app.api.deps import get_embedder, get_index, get_llm
from app.config import Settings, get_settings
from app.models.documents import DocumentHit
from app.models.requests import QueryRequest
from app.models.responses import (
    DocumentSourceSummary,
    HealthResponse,
    QueryResponse,
    QueryResult,
)
from app.services.document_index import DocumentIndex, ServiceUnavailableError
from app.services.embedder import EmbeddingProvider
from app.services.llm import LLMProvider

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Query"])

EXCERPT_CHARS = 200


# ---------------------------------------------------------------------------
# POST /query — Ask a question over the knowledge base
# ---------------------------------------------------------------------------


@router.post(
    "/query",
    response_model=QueryResponse,
    response_model_exclude_none=True,
    summary="Ask a question over company documents",
    description=(
        "Plans the question into several searches, runs them against the "
        "document index (hybrid vector + keyword, with keyword fallback), "
        "merges the results and generates an answer grounded in the top "
        "documents with numbered citations."
    ),
)
async def query_endpoint(
    request: QueryRequest,
    index: DocumentIndex = Depends(get_index),
    embedder: EmbeddingProvider = Depends(get_embedder),
    llm: LLMProvider | None = Depends(get_llm),
) -> QueryResponse:
    """
    Error handling:
    - Invalid body / empty query → 400 (exception handler)
    - Index health check fails → 503
    - Sub-query, embedding or LLM failures → 200 with degraded content
    """
    logger.info(
        "Query request: query='%s', filters=%s, history=%d, vector=%s, max_results=%d",
        request.query[:80],
        request.filters is not None,
        len(request.chat_history),
        request.use_vector_search,
        request.max_results,
    )

    start_time = time.monotonic()

    try:
        state = await answer_query(
            request.query,
            index=index,
            embedder=embedder,
            llm=llm,
            filters=request.filters,
            chat_history=request.chat_history,
            use_vector_search=request.use_vector_search,
            max_results=request.max_results,
        )
    except ServiceUnavailableError as e:
        logger.error("Rejecting query: %s", e)
        raise HTTPException(
            status_code=503,
            detail="Search service is currently unavailable. Please try again later.",
        ) from e

    query_time_ms = int((time.monotonic() - start_time) * 1000)
    hits: list[DocumentHit] = state.get("hits", [])

    return QueryResponse(
        success=True,
        data=QueryResult(
            answer=state.get("answer") or "",
            sources=to_source_summaries(hits),
            total_hits=len(hits),
            query_time=query_time_ms,
            expanded_query=describe_search_focus(request.query),
        ),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service and index health",
)
async def health_endpoint(
    index: DocumentIndex = Depends(get_index),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    healthy = await index.health_check()
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        index="ok" if healthy else "unavailable",
    )


# ---------------------------------------------------------------------------
# Response Mapping
# ---------------------------------------------------------------------------


def to_source_summaries(hits: list[DocumentHit]) -> list[DocumentSourceSummary]:
    """Map merged hits to citation-numbered source summaries."""
    return [
        DocumentSourceSummary(
            ordinal=i,
            id=hit.id,
            title=hit.title,
            type=hit.type,
            relevance_score=hit.score,
            excerpt=hit.content[:EXCERPT_CHARS]
            + ("..." if len(hit.content) > EXCERPT_CHARS else ""),
            metadata=hit.metadata.as_dict(),
        )
        for i, hit in enumerate(hits, 1)
    ]
