# =============================================================================
# Result Merger — Deterministic Dedupe and Bound
# =============================================================================
#
# Collapses the fan-out into one list:
#   - order by (query position, rank within query)
#   - keep the first occurrence of each document identity
#   - truncate to max_results
#
# The sort makes the output a pure function of the hit *contents*, not of
# the order the sub-queries happened to finish in. `sorted` is stable, so
# hits with equal keys keep their incoming order.
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable

from app.agents.search import RankedHit
from app.models.documents import DocumentHit


def merge_hits(hits: Iterable[RankedHit], max_results: int) -> list[DocumentHit]:
    """
    Dedupe ranked hits by identity and keep the first `max_results`.

    A document found by several sub-queries appears once, at the position
    of its highest-priority occurrence.
    """
    if max_results <= 0:
        return []

    ordered = sorted(hits, key=lambda h: (h.query_index, h.rank))

    seen: set[str] = set()
    merged: list[DocumentHit] = []
    for ranked in ordered:
        key = ranked.hit.identity
        if key in seen:
            continue
        seen.add(key)
        merged.append(ranked.hit)
        if len(merged) >= max_results:
            break
    return merged
