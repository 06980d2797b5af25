# =============================================================================
# Query Planner — Rule-Based Information Needs
# =============================================================================
#
# Derives what a question is asking for (financial metrics, fiscal years)
# and turns that into a short list of search strings for the fan-out.
#
#   "Compare revenue in 2021 and 2020"
#     metrics        → ("revenue",)
#     years          → ("2021", "2020")
#     search_queries → ("Compare revenue in 2021 and 2020",
#                       "revenue 2021 2020", "revenue 2021", "revenue 2020")
#
# DESIGN DECISION: Keywords, not an LLM call. Planning runs before any
# collaborator is touched and must not be able to fail.
#
# "Sets" in the plan are tuples in first-seen order: derived queries are
# built by iterating them, and the search cap keeps a prefix of that list.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_METRIC = "revenue"

# (canonical metric name, trigger pattern), in reporting order
METRIC_KEYWORDS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("revenue", re.compile(r"revenue|sales", re.IGNORECASE)),
    ("net income", re.compile(r"net\s*income|profit", re.IGNORECASE)),
    ("ebitda", re.compile(r"ebitda", re.IGNORECASE)),
    ("assets", re.compile(r"assets", re.IGNORECASE)),
    ("liabilities", re.compile(r"liabilities", re.IGNORECASE)),
    ("equity", re.compile(r"equity", re.IGNORECASE)),
)

YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")


@dataclass(frozen=True)
class QueryPlan:
    """What to look for, and the search strings that look for it."""

    metrics: tuple[str, ...]
    years: tuple[str, ...]
    entities: tuple[str, ...]
    search_queries: tuple[str, ...]


def _unique(items) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def plan_information_needs(question: str) -> QueryPlan:
    """
    Build a QueryPlan for a question.

    Never fails: a question with no recognised metric is planned as a
    revenue question, and the verbatim question is always the first query.
    """
    metrics = [name for name, pattern in METRIC_KEYWORDS if pattern.search(question)]
    if not metrics:
        metrics = [DEFAULT_METRIC]

    years = _unique(YEAR_PATTERN.findall(question))

    base = question.strip()
    queries = [base]
    if years:
        joined = " ".join(years)
        for metric in metrics:
            queries.append(f"{metric} {joined}")
            queries.extend(f"{metric} {year}" for year in years)
    else:
        queries.extend(metrics)

    plan = QueryPlan(
        metrics=_unique(metrics),
        years=years,
        entities=(),
        search_queries=_unique(queries),
    )
    logger.info(
        "Planned query: metrics=%s, years=%s, %d search queries",
        list(plan.metrics), list(plan.years), len(plan.search_queries),
    )
    return plan


# ---------------------------------------------------------------------------
# Search Focus Hint
# ---------------------------------------------------------------------------
# A human-readable note returned as `expandedQuery`: which document types
# and fields the question most likely lives in. Informational only.
# ---------------------------------------------------------------------------

_ALL_DOC_TYPES = "pdf, docx, md, xlsx, csv, json, txt"
_BASE_FIELDS = ("title", "content", "metadata.summary")

_DOC_TYPE_HINTS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("policy", "guideline", "procedure"), ("pdf", "docx", "md")),
    (("report", "metrics", "trend"), ("xlsx", "csv", "pdf")),
    (("api", "schema", "json"), ("json", "md")),
    (("meeting", "notes"), ("txt", "md", "docx")),
)

_FIELD_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("department",), "metadata.department"),
    (("author", "owner"), "metadata.author"),
    (("tag", "topic"), "metadata.tags"),
    (("category",), "metadata.category"),
)


def describe_search_focus(question: str) -> str:
    """Summarise the document types and fields a question points at."""
    q = question.lower()

    doc_types: list[str] = []
    for keywords, types in _DOC_TYPE_HINTS:
        if any(kw in q for kw in keywords):
            doc_types.extend(types)

    fields = list(_BASE_FIELDS)
    for keywords, field in _FIELD_HINTS:
        if any(kw in q for kw in keywords):
            fields.append(field)

    type_text = ", ".join(_unique(doc_types)) or _ALL_DOC_TYPES
    return (
        f"Focus on document types: {type_text}. "
        f"Search fields: {', '.join(_unique(fields))}."
    )
