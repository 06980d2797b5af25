# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Every response, success or failure, is wrapped in the same envelope:
#   { success, data?, error?, timestamp }
# so the front end never has to special-case error bodies. Field names are
# camelCase on the wire.
# =============================================================================

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def utc_timestamp() -> str:
    """Current time as an ISO-8601 string with a `Z` suffix."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str
    service: str
    index: str = Field(description="'ok' or 'unavailable'")


class DocumentSourceSummary(BaseModel):
    """
    A document cited by the answer.

    `ordinal` is the number the model was told to cite (Doc 1, Doc 2, ...); only
    the first five sources are shown to the model, the rest are returned for
    browsing.
    """

    ordinal: int = Field(description="1-based citation number")
    id: str | None
    title: str
    type: str
    relevance_score: float = Field(description="Search score from the index")
    excerpt: str = Field(description="First 200 characters of the content")
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = _CAMEL_CONFIG


class QueryResult(BaseModel):
    """Payload of a successful POST /query."""

    answer: str
    sources: list[DocumentSourceSummary]
    total_hits: int
    query_time: int = Field(description="End-to-end latency in milliseconds")
    expanded_query: str = Field(description="Search focus hint for the question")

    model_config = _CAMEL_CONFIG


class QueryResponse(BaseModel):
    """Envelope for POST /query."""

    success: bool
    data: QueryResult | None = None
    error: str | None = None
    timestamp: str = Field(default_factory=utc_timestamp)

    model_config = _CAMEL_CONFIG
