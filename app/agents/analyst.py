# =============================================================================
# Analyst — Grounding Context Assembly and Answer Synthesis
# =============================================================================
#
# Two steps, kept separate so the prompt can be tested without an LLM:
#
#   build_grounding_context()  hits + revenue facts + history → bounded context
#   render_prompt()            context + question → one prompt string
#   synthesize_answer()        prompt → answer text (never raises)
#
# BOUNDS (the prompt cannot grow with the index or the conversation):
#   - top 5 hits, content clipped to 300 chars, title to 200,
#     category/department to 100
#   - last 6 history turns, each clipped to 200 chars
#   - RevenueByYear holds at most one entry per year 1900–2099
#   - the question itself is capped at 1000 chars by request validation
#
# Hits are numbered 1..5 in merge order; the model cites them by number and
# the response's `sources[].ordinal` uses the same numbering.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.config import settings
from app.models.documents import DocumentHit
from app.models.requests import ChatMessage
from app.services.llm import LLMProvider

logger = logging.getLogger(__name__)

PROMPT_HIT_LIMIT = 5
HIT_CONTENT_CHARS = 300
HIT_TITLE_CHARS = 200
HIT_LABEL_CHARS = 100
HISTORY_TURN_LIMIT = 6
HISTORY_TURN_CHARS = 200

APOLOGY_MESSAGE = (
    "I apologize, but I'm having trouble processing your question right now. "
    "Please try again later."
)

INSTRUCTIONS = """Instructions:
1. Answer ONLY from the company documents above; never fabricate facts or figures.
2. Cite the documents you use by number, e.g. (Doc 1, Doc 3).
3. If no document is relevant, say so briefly and suggest what to search for next.
4. Do not use tools, calculators, or any external resources.
5. Give only final results; do not show calculations or reasoning steps.
6. Use the conversation history for context only, never as a source of facts.
7. Be concise, professional, and conversational.

Format your response as a short answer followed by optional citations like (Doc 1, Doc 3)."""


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class GroundingContext:
    """Everything the model is allowed to see, already trimmed."""

    hits: list[DocumentHit] = field(default_factory=list)
    revenue_by_year: dict[str, float] = field(default_factory=dict)
    history: list[ChatMessage] = field(default_factory=list)
    total_hits: int = 0


@dataclass
class SynthesisResult:
    """Answer text and what produced it."""

    answer: str
    model: str
    succeeded: bool
    input_tokens: int = 0
    output_tokens: int = 0


# ---------------------------------------------------------------------------
# Context Assembly
# ---------------------------------------------------------------------------


def build_grounding_context(
    hits: Sequence[DocumentHit],
    revenue_by_year: dict[str, float] | None = None,
    history: Sequence[ChatMessage] | None = None,
) -> GroundingContext:
    """Trim hits and history to their prompt limits."""
    return GroundingContext(
        hits=list(hits[:PROMPT_HIT_LIMIT]),
        revenue_by_year=dict(sorted((revenue_by_year or {}).items())),
        history=list((history or [])[-HISTORY_TURN_LIMIT:]),
        total_hits=len(hits),
    )


def render_prompt(question: str, context: GroundingContext) -> str:
    """Render the single prompt string sent to the model."""
    parts: list[str] = []

    financials = _format_financials(context.revenue_by_year)
    if financials:
        parts.append(financials)

    parts.append(
        "You are a knowledge-base assistant that helps employees find "
        "information in their company's documents."
    )

    if context.hits:
        parts.append(
            f"Company Knowledge Base ({context.total_hits} relevant documents "
            f"found, top {len(context.hits)} shown):\n\n"
            + _format_hits(context.hits)
        )

    if context.history:
        parts.append(
            "Recent Conversation History:\n" + _format_history(context.history)
        )

    parts.append(f"User Question: {question}")
    parts.append(INSTRUCTIONS)
    return "\n\n".join(parts)


def _clip(text: str | None, limit: int) -> str:
    if not text:
        return ""
    return text[:limit] + ("..." if len(text) > limit else "")


def _format_number(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


def _format_financials(revenue_by_year: dict[str, float]) -> str:
    if not revenue_by_year:
        return ""
    compact = {year: _format_number(v) for year, v in revenue_by_year.items()}
    return (
        "Structured Financial Data (from documents)\n"
        f"RevenueByYear: {json.dumps(compact, separators=(',', ':'))}"
    )


def _format_hits(hits: Sequence[DocumentHit]) -> str:
    """
    Numbered document list.

    Example:
        1. **Sales 2021** (CSV)
           Category: Finance
           Department: N/A
           Content: Month,Revenue ...
    """
    sections = []
    for i, hit in enumerate(hits, 1):
        sections.append(
            f"{i}. **{_clip(hit.title, HIT_TITLE_CHARS)}** ({hit.type.upper()[:10]})\n"
            f"   Category: {_clip(hit.metadata.category, HIT_LABEL_CHARS) or 'N/A'}\n"
            f"   Department: {_clip(hit.metadata.department, HIT_LABEL_CHARS) or 'N/A'}\n"
            f"   Content: {_clip(hit.content, HIT_CONTENT_CHARS)}"
        )
    return "\n\n".join(sections)


def _format_history(history: Sequence[ChatMessage]) -> str:
    return "\n".join(
        f"{msg.role_label}: {_clip(msg.content, HISTORY_TURN_CHARS)}"
        for msg in history
    )


# ---------------------------------------------------------------------------
# Answer Synthesis
# ---------------------------------------------------------------------------


async def synthesize_answer(
    prompt: str,
    llm: LLMProvider | None,
    timeout: float | None = None,
) -> SynthesisResult:
    """
    One model call with the assembled prompt.

    Any failure (no provider, timeout, API error, empty completion) returns
    the fixed apology instead of raising.
    """
    if llm is None:
        logger.warning("No LLM provider available; returning apology")
        return SynthesisResult(answer=APOLOGY_MESSAGE, model="n/a", succeeded=False)

    logger.debug("Prompt composed: %d chars", len(prompt))

    try:
        response = await asyncio.wait_for(
            llm.complete(prompt),
            timeout=timeout or settings.llm_timeout_seconds,
        )
    except Exception as e:
        logger.warning("Answer generation failed: %s", str(e) or type(e).__name__)
        return SynthesisResult(answer=APOLOGY_MESSAGE, model="n/a", succeeded=False)

    if not response.content or not response.content.strip():
        logger.warning("Model %s returned an empty completion", response.model)
        return SynthesisResult(
            answer=APOLOGY_MESSAGE, model=response.model, succeeded=False,
        )

    logger.info(
        "Answer generated: model=%s, tokens=%d+%d",
        response.model, response.input_tokens, response.output_tokens,
    )
    return SynthesisResult(
        answer=response.content,
        model=response.model,
        succeeded=True,
        input_tokens=response.input_tokens,
        output_tokens=response.output_tokens,
    )
