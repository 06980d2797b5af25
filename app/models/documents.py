# =============================================================================
# Document Hit Schema — Validated Index Results
# =============================================================================
#
# The document index returns loosely-shaped JSON (Elasticsearch `_source`
# plus `_id`, `_score` and `highlight`). Everything downstream of the index
# adapter works with `DocumentHit` instead, so field access is typed and
# missing optional fields have one well-defined default.
#
# Hits are frozen: once retrieved, nothing in the pipeline mutates them.
# =============================================================================

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocumentMetadata(BaseModel):
    """
    Metadata written by the upload subsystem alongside each document.

    Only the fields this service reads are declared. Anything else the
    uploader stored is kept (extra="allow") and passed through to the
    response untouched.
    """

    file_name: str | None = Field(default=None, alias="fileName")
    category: str | None = None
    department: str | None = None
    author: str | None = None
    tags: list[str] = Field(default_factory=list)
    summary: str | None = None

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    def as_dict(self) -> dict[str, Any]:
        """Serialise back to the uploader's camelCase shape, dropping nulls."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DocumentHit(BaseModel):
    """A single document returned by a search against the index."""

    id: str | None = None
    title: str = ""
    type: str = "txt"
    content: str = ""
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    score: float = 0.0
    highlights: dict[str, list[str]] | None = None
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def identity(self) -> str:
        """
        Dedupe key across fan-out queries.

        The document id when present; otherwise title + creation time, which
        is unique per upload in practice.
        """
        if self.id:
            return self.id
        return f"{self.title}:{self.created_at}"

    @classmethod
    def from_search_hit(cls, raw: dict[str, Any]) -> DocumentHit:
        """
        Build a hit from one entry of an Elasticsearch `hits.hits` array.

        The `_source.id` field written by the uploader wins over the index
        `_id`; both normally agree.

        Raises:
            pydantic.ValidationError: If the source does not match the schema.
        """
        source = dict(raw.get("_source") or {})
        source.pop("embedding", None)
        source.pop("text", None)
        if not source.get("id") and raw.get("_id"):
            source["id"] = raw["_id"]
        if raw.get("_score") is not None:
            source["score"] = raw["_score"]
        if raw.get("highlight"):
            source["highlights"] = raw["highlight"]
        if source.get("metadata") is None:
            source.pop("metadata", None)
        return cls.model_validate(source)
