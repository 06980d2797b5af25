# =============================================================================
# LangGraph Orchestrator — Query Pipeline Assembly
# =============================================================================
#
# Wires the pipeline steps into a LangGraph StateGraph:
#
#   START ──▶ plan ──▶ search ──▶ extract ──▶ analyse ──▶ END
#
#   plan     question → QueryPlan (metrics, years, search strings)
#   search   fan-out against the index, then dedupe/bound to max_results
#   extract  metric/year facts + RevenueByYear from the merged hits
#   analyse  bounded prompt → one model call → answer or apology
#
# Collaborators (index, embedder, llm) travel in the state instead of being
# looked up from module globals, so each request can be given its own
# handles and tests can pass fakes. The compiled graph itself holds no
# per-request data and is shared.
#
# The graph runs under an overall deadline. If it expires, the request
# degrades to no sources plus the apology answer; cancelling the graph task
# also cancels any sub-queries still in flight.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from app.agents.analyst import (
    APOLOGY_MESSAGE,
    build_grounding_context,
    render_prompt,
    synthesize_answer,
)
from app.agents.facts import (
    MetricFact,
    aggregate_facts,
    extract_metric_year_facts,
    extract_revenue_by_year,
)
from app.agents.merger import merge_hits
from app.agents.planner import QueryPlan, plan_information_needs
from app.agents.search import MultiSearchResult, multi_search
from app.config import settings
from app.models.documents import DocumentHit
from app.models.requests import ChatMessage, SearchFilters
from app.services.document_index import DocumentIndex, ServiceUnavailableError
from app.services.embedder import EmbeddingProvider
from app.services.llm import LLMProvider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Query State Schema
# ---------------------------------------------------------------------------


class QueryState(TypedDict, total=False):
    """
    State that flows through the graph.

    total=False so nodes only return the keys they set.
    """

    # --- Input (set by caller) ---
    question: str
    filters: SearchFilters | None
    chat_history: list[ChatMessage]
    use_vector_search: bool
    max_results: int

    # --- Collaborators (set by caller, not serialisable) ---
    index: DocumentIndex
    embedder: EmbeddingProvider
    llm: LLMProvider | None

    # --- Intermediate (set by nodes) ---
    plan: QueryPlan
    search_result: MultiSearchResult
    facts: list[MetricFact]
    revenue_by_year: dict[str, float]
    prompt: str

    # --- Output ---
    hits: list[DocumentHit]
    answer: str
    model: str
    synthesis_succeeded: bool


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def plan_node(state: QueryState) -> dict:
    """Derive metrics, years and search strings from the question."""
    return {"plan": plan_information_needs(state["question"])}


async def search_node(state: QueryState) -> dict:
    """Fan out the planned queries and merge the results."""
    question = state["question"]
    plan = state["plan"]
    max_results = state.get("max_results", 10)

    result = await multi_search(
        [question, *plan.search_queries],
        index=state["index"],
        embedder=state["embedder"],
        filters=state.get("filters"),
        use_vector_search=state.get("use_vector_search", True),
        max_results=max_results,
    )
    hits = merge_hits(result.hits, max_results)

    logger.info(
        "Merged %d raw hits into %d documents (max_results=%d)",
        len(result.hits), len(hits), max_results,
    )
    return {"search_result": result, "hits": hits}


async def extract_node(state: QueryState) -> dict:
    """Mine numeric facts from the merged hits."""
    hits = state.get("hits", [])
    facts = extract_metric_year_facts(hits)
    revenue_by_year = extract_revenue_by_year(hits)

    if facts:
        totals = aggregate_facts(facts)
        logger.info(
            "Extracted %d facts (%d metric/year totals); revenue years=%s",
            len(facts), len(totals), sorted(revenue_by_year),
        )
    return {"facts": facts, "revenue_by_year": revenue_by_year}


async def analyse_node(state: QueryState) -> dict:
    """Assemble the bounded prompt and generate the answer."""
    context = build_grounding_context(
        state.get("hits", []),
        revenue_by_year=state.get("revenue_by_year"),
        history=state.get("chat_history"),
    )
    prompt = render_prompt(state["question"], context)
    result = await synthesize_answer(prompt, state.get("llm"))

    return {
        "prompt": prompt,
        "answer": result.answer,
        "model": result.model,
        "synthesis_succeeded": result.succeeded,
    }


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(QueryState)
_builder.add_node("plan", plan_node)
_builder.add_node("search", search_node)
_builder.add_node("extract", extract_node)
_builder.add_node("analyse", analyse_node)

_builder.add_edge(START, "plan")
_builder.add_edge("plan", "search")
_builder.add_edge("search", "extract")
_builder.add_edge("extract", "analyse")
_builder.add_edge("analyse", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def ensure_index_available(
    index: DocumentIndex,
    timeout: float | None = None,
) -> None:
    """
    Raise ServiceUnavailableError unless the index passes its health check.

    A health check that hangs past `timeout` counts as a failure.
    """
    try:
        healthy = await asyncio.wait_for(
            index.health_check(),
            timeout=timeout or settings.health_check_timeout_seconds,
        )
    except Exception as e:
        logger.warning("Index health check errored: %s", str(e) or type(e).__name__)
        healthy = False

    if not healthy:
        raise ServiceUnavailableError("Document index is unavailable")


async def answer_query(
    question: str,
    *,
    index: DocumentIndex,
    embedder: EmbeddingProvider,
    llm: LLMProvider | None,
    filters: SearchFilters | None = None,
    chat_history: Sequence[ChatMessage] | None = None,
    use_vector_search: bool = True,
    max_results: int = 10,
    deadline: float | None = None,
) -> QueryState:
    """
    Entry point: health-check the index, then run the graph.

    Args:
        question: Sanitised question text.
        index: Document index collaborator.
        embedder: Embedding collaborator.
        llm: LLM collaborator; None means answers degrade to the apology.
        filters: Optional search filters.
        chat_history: Earlier conversation turns, oldest first.
        use_vector_search: Hybrid search when True, lexical only when False.
        max_results: Upper bound on returned documents.
        deadline: Seconds for the whole graph (default from settings).

    Returns:
        Final QueryState; `hits` and `answer` are always present.

    Raises:
        ServiceUnavailableError: The index failed its health check.
    """
    await ensure_index_available(index)

    initial_state: QueryState = {
        "question": question,
        "filters": filters,
        "chat_history": list(chat_history or []),
        "use_vector_search": use_vector_search,
        "max_results": max_results,
        "index": index,
        "embedder": embedder,
        "llm": llm,
    }

    logger.info(
        "Invoking query graph: question='%s', vector=%s, max_results=%d",
        question[:80], use_vector_search, max_results,
    )

    budget = deadline or settings.query_deadline_seconds
    try:
        result: dict[str, Any] = await asyncio.wait_for(
            graph.ainvoke(initial_state), timeout=budget,
        )
    except TimeoutError:
        logger.error("Query exceeded its %.1fs deadline; degrading", budget)
        return {
            **initial_state,
            "hits": [],
            "answer": APOLOGY_MESSAGE,
            "model": "n/a",
            "synthesis_succeeded": False,
        }

    logger.info(
        "Query graph complete: model=%s, sources=%d",
        result.get("model", "n/a"), len(result.get("hits", [])),
    )
    return result
