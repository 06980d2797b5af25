# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API. The wire
# format is camelCase (the front end's convention); Python code uses the
# snake_case attribute names. `populate_by_name=True` accepts both.
#
# Validation failures never reach the orchestration core: FastAPI rejects
# the body and the exception handler in app/main.py turns the error into a
# 400 envelope.
# =============================================================================

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DocumentType = Literal["pdf", "txt", "csv", "json", "md", "docx", "xlsx"]

_CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# Markup and script fragments stripped from free-text input before use.
_UNSAFE_PATTERNS = (
    re.compile(r"[<>]"),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE),
)


def sanitize_input(text: str) -> str:
    """Remove HTML brackets, `javascript:` and inline event handlers."""
    for pattern in _UNSAFE_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


class DateRange(BaseModel):
    """Inclusive creation-date window (ISO-8601 strings); either bound may be open."""

    start: str | None = None
    end: str | None = None

    def bounds(self) -> dict[str, str]:
        """Elasticsearch `range` operators for the bounds that are set."""
        bounds = {}
        if self.start:
            bounds["gte"] = self.start
        if self.end:
            bounds["lte"] = self.end
        return bounds


class SearchFilters(BaseModel):
    """
    Structured predicates narrowing the search.

    Each clause is either absent or a match set; empty lists are treated
    as absent by the index adapter.
    """

    document_types: list[DocumentType] | None = None
    categories: list[str] | None = None
    departments: list[str] | None = None
    tags: list[str] | None = None
    date_range: DateRange | None = None

    model_config = _CAMEL_CONFIG

    def is_empty(self) -> bool:
        return not (
            self.document_types
            or self.categories
            or self.departments
            or self.tags
            or (self.date_range and self.date_range.bounds())
        )


class ChatMessage(BaseModel):
    """One turn of the client-side conversation."""

    id: str | None = None
    content: str
    is_user: bool = False
    timestamp: str | None = None

    model_config = _CAMEL_CONFIG

    @property
    def role_label(self) -> str:
        return "User" if self.is_user else "Assistant"


class QueryRequest(BaseModel):
    """
    Request body for POST /query — ask a question over the knowledge base.

    Example:
        {
            "query": "What was our revenue in 2021 and 2020?",
            "filters": {"documentTypes": ["csv"]},
            "useVectorSearch": true,
            "maxResults": 10
        }
    """

    query: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="The natural-language question",
        examples=["What was our revenue in 2021 and 2020?"],
    )
    filters: SearchFilters | None = Field(
        default=None,
        description="Optional document type/category/department/tag/date filters",
    )
    chat_history: list[ChatMessage] = Field(
        default_factory=list,
        description="Earlier turns of the conversation, oldest first",
    )
    use_vector_search: bool = Field(
        default=True,
        description="Use hybrid (vector + lexical) search; false for lexical only",
    )
    max_results: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Upper bound on returned source documents",
    )

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "query": "What was our revenue in 2021 and 2020?",
                    "useVectorSearch": True,
                    "maxResults": 10,
                },
                {
                    "query": "Summarise the travel policy",
                    "filters": {"departments": ["HR"]},
                },
            ]
        },
    )

    @field_validator("query")
    @classmethod
    def _sanitize_query(cls, value: str) -> str:
        cleaned = sanitize_input(value)
        if not cleaned:
            raise ValueError("Query is required")
        return cleaned
