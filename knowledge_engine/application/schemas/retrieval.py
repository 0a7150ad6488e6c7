"""Pydantic schemas for retrieval requests and results."""

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from knowledge_engine.domain.exceptions import EmbeddingFormatError
from knowledge_engine.domain.filters import MetadataFilter, MetadataValue
from knowledge_engine.domain.vectors import parse_embedding


# ── Request Schemas ──────────────────────────────────────────────────


class RetrievalQuery(BaseModel):
    """An ephemeral retrieval request: question text or a pre-computed vector."""

    text: str | None = Field(default=None, description="Natural-language question")
    embedding: list[float] | str | None = Field(
        default=None, description="Pre-computed embedding, native or bracketed text"
    )
    similarity_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    max_results: int = Field(default=5, ge=1)
    metadata_filter: dict[str, MetadataValue] = Field(default_factory=dict)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("text must not be blank")
        return value

    @field_validator("embedding")
    @classmethod
    def _embedding_parses(cls, value: list[float] | str | None) -> list[float] | str | None:
        if value is not None:
            try:
                parse_embedding(value)
            except EmbeddingFormatError as exc:
                raise ValueError(str(exc)) from exc
        return value

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "RetrievalQuery":
        if (self.text is None) == (self.embedding is None):
            raise ValueError("Provide exactly one of 'text' or 'embedding'")
        return self

    def to_filter(self) -> MetadataFilter:
        return MetadataFilter.from_mapping(self.metadata_filter)


# ── Response Schemas ─────────────────────────────────────────────────


class RetrievedPassage(BaseModel):
    """A single ranked passage handed to answer generation."""

    record_id: int
    content: str
    similarity: float
    metadata: dict[str, Any] = {}
    category: str | None = None


class RetrievalResult(BaseModel):
    """Ranked passages for one query."""

    passages: list[RetrievedPassage] = []
    total: int = 0
    similarity_threshold: float
    max_results: int

    def context_pairs(self) -> list[tuple[str, float]]:
        return [(p.content, p.similarity) for p in self.passages]
