# =============================================================================
# Fact Extractor — Heuristic Metric/Year Mining
# =============================================================================
#
# Pulls (metric, year, value) triples out of retrieved document text so the
# model sees hard numbers instead of having to add up table rows itself.
#
# RULES (and nothing more — this is not a table or NLP parser):
#
# 1. TABULAR — the first line containing a comma and a metric keyword is
#    the header. A column named month/date/period supplies the year (first
#    19xx/20xx in the cell). Every metric-named column is parsed as a
#    number after stripping everything but digits, "." and "-".
# 2. FREE TEXT — for documents where rule 1 produced nothing (no header,
#    or a "header" that was really prose: "Revenue in 2021 was $1,234,567."
#    has a comma and a metric word):
#    "<metric> … <year> … [$€£]<number>", every match in the content.
# 3. REVENUE BY YEAR — tabular documents (csv/xlsx) mentioning "revenue":
#    the revenue column summed per year. This is the only extract that goes
#    into the prompt.
#
# AGGREGATION: values for the same (metric, year) are SUMMED, across rows
# and across documents. Two documents reporting the same year (a forecast
# and an actual, say) are therefore added together. Known hazard; left
# as-is pending a product decision.
#
# Nothing here raises: a row or match that does not parse is skipped.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from app.models.documents import DocumentHit

logger = logging.getLogger(__name__)

TABULAR_TYPES = frozenset({"csv", "xlsx"})

_METRIC_RE = re.compile(
    r"revenue|net\s*income|assets|liabilities|equity|ebitda", re.IGNORECASE,
)
_PERIOD_RE = re.compile(r"month|date|period", re.IGNORECASE)
_REVENUE_RE = re.compile(r"revenue", re.IGNORECASE)
_YEAR_RE = re.compile(r"(?:19|20)\d{2}")
_LINE_SPLIT_RE = re.compile(r"\r?\n")
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER_RE = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")
_FREE_TEXT_RE = re.compile(
    r"(revenue|net\s*income|assets|liabilities|equity|ebitda)"
    r"[^\d]*"
    r"((?:19|20)\d{2})"
    r"[^\d]*"
    r"([$€£]?\s*[\d,.]+)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class MetricFact:
    """One extracted number."""

    metric: str
    year: str
    value: float
    source: str


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_metric_year_facts(hits: Iterable[DocumentHit]) -> list[MetricFact]:
    """Run the tabular and free-text rules over every hit."""
    facts: list[MetricFact] = []
    for hit in hits:
        source = hit.title or hit.metadata.file_name or "document"
        try:
            tabular = _tabular_facts(hit.content, source)
            if tabular:
                facts.extend(tabular)
            else:
                facts.extend(_free_text_facts(hit.content, source))
        except Exception as e:
            logger.debug("Fact extraction skipped '%s': %s", source, e)
    return facts


def aggregate_facts(facts: Iterable[MetricFact]) -> dict[tuple[str, str], float]:
    """Sum values per (metric, year)."""
    totals: dict[tuple[str, str], float] = {}
    for fact in facts:
        key = (fact.metric, fact.year)
        totals[key] = totals.get(key, 0.0) + fact.value
    return totals


def extract_revenue_by_year(hits: Iterable[DocumentHit]) -> dict[str, float]:
    """
    Year → summed revenue across all tabular hits that mention revenue.

    Feeds the compact `RevenueByYear` block of the prompt.
    """
    totals: dict[str, float] = {}
    for hit in hits:
        if hit.type.lower() not in TABULAR_TYPES:
            continue
        if not _REVENUE_RE.search(hit.content):
            continue
        try:
            per_doc = _revenue_by_year(hit.content)
        except Exception as e:
            logger.debug("Revenue extraction skipped '%s': %s", hit.title, e)
            continue
        for year, value in per_doc.items():
            totals[year] = totals.get(year, 0.0) + value
    return totals


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def parse_number(raw: str | None) -> float | None:
    """
    Lenient numeric parse of a table cell.

    Drops everything except digits, "." and "-", then reads the leading
    number: "$1,200.50" → 1200.5, "12.5.1" → 12.5, "n/a" → None.
    """
    if not raw:
        return None
    cleaned = _NON_NUMERIC_RE.sub("", raw)
    match = _LEADING_NUMBER_RE.match(cleaned)
    if match is None:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def _split_lines(content: str) -> list[str]:
    return _LINE_SPLIT_RE.split(content)


def _find_header(lines: list[str], keyword: re.Pattern[str]) -> int:
    for i, line in enumerate(lines):
        if "," in line and keyword.search(line):
            return i
    return -1


def _row_year(cols: list[str], period_idx: int) -> str | None:
    if period_idx < 0 or period_idx >= len(cols):
        return None
    match = _YEAR_RE.search(cols[period_idx])
    return match.group(0) if match else None


def _tabular_facts(content: str, source: str) -> list[MetricFact] | None:
    """Facts from a CSV-like block, or None when there is no header row."""
    lines = _split_lines(content)
    header_idx = _find_header(lines, _METRIC_RE)
    if header_idx < 0:
        return None

    headers = [h.strip() for h in lines[header_idx].split(",")]
    column_of: dict[str, int] = {}
    for i, header in enumerate(headers):
        column_of[header.lower()] = i
    period_idx = next(
        (i for i, h in enumerate(headers) if _PERIOD_RE.search(h)), -1,
    )
    metric_columns = [name for name in column_of if _METRIC_RE.search(name)]

    facts: list[MetricFact] = []
    for row in lines[header_idx + 1:]:
        if "," not in row:
            continue
        cols = row.split(",")
        year = _row_year(cols, period_idx)
        if year is None:
            continue
        for metric in metric_columns:
            idx = column_of[metric]
            if idx >= len(cols):
                continue
            value = parse_number(cols[idx].strip())
            if value is not None:
                facts.append(MetricFact(metric, year, value, source))
    return facts


def _free_text_facts(content: str, source: str) -> list[MetricFact]:
    facts: list[MetricFact] = []
    for match in _FREE_TEXT_RE.finditer(content):
        value = parse_number(match.group(3))
        if value is None:
            continue
        metric = re.sub(r"\s+", " ", match.group(1).lower())
        facts.append(MetricFact(metric, match.group(2), value, source))
    return facts


def _revenue_by_year(content: str) -> dict[str, float]:
    lines = [line for line in _split_lines(content) if line]
    header_idx = _find_header(lines, _REVENUE_RE)
    if header_idx < 0:
        return {}

    headers = [h.strip() for h in lines[header_idx].split(",")]
    revenue_idx = next(
        (i for i, h in enumerate(headers) if _REVENUE_RE.search(h)), -1,
    )
    period_idx = next(
        (i for i, h in enumerate(headers) if _PERIOD_RE.search(h)), -1,
    )
    if revenue_idx < 0:
        return {}

    totals: dict[str, float] = {}
    for row in lines[header_idx + 1:]:
        if "," not in row:
            continue
        cols = row.split(",")
        if revenue_idx >= len(cols):
            continue
        value = parse_number(cols[revenue_idx].strip())
        if value is None:
            continue
        year = _row_year(cols, period_idx)
        if year is None:
            continue
        totals[year] = totals.get(year, 0.0) + value
    return totals
