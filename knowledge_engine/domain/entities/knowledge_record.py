"""Domain entities for persisted knowledge records and ranked results."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from knowledge_engine.domain.filters import CHUNK_INDEX_KEY, FILE_ID_KEY
from knowledge_engine.domain.vectors import EmbeddingVector


@dataclass(frozen=True)
class KnowledgeRecord:
    """One embedded chunk as stored.

    Records are insert-only: the store assigns ``id`` and nothing mutates a
    record afterwards. Metadata drives equality filtering only.
    """

    id: int
    content: str
    embedding: EmbeddingVector
    metadata: dict[str, Any] = field(default_factory=dict)
    category: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def file_id(self) -> str | None:
        return self.metadata.get(FILE_ID_KEY)

    @property
    def chunk_index(self) -> int | None:
        return self.metadata.get(CHUNK_INDEX_KEY)

    @property
    def dimensions(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class RankedRecord:
    """A record paired with its cosine similarity to the query."""

    record: KnowledgeRecord
    similarity: float

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def content(self) -> str:
        return self.record.content
