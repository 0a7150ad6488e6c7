"""Abstract repository interface (port) for knowledge records and vector ranking."""

from abc import ABC, abstractmethod
from typing import Any

from knowledge_engine.domain.entities import KnowledgeRecord, RankedRecord
from knowledge_engine.domain.filters import MetadataFilter


class RecordStore(ABC):
    """Port for knowledge record persistence and store-side similarity ranking.

    Vector parameters are accepted in either encoding (native sequence or
    bracketed text); the store resolves the encoding before computing.
    """

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """The embedding length every stored and queried vector must have."""
        ...

    @abstractmethod
    async def insert(
        self,
        content: str,
        embedding: Any,
        metadata: dict[str, Any],
        category: str | None = None,
    ) -> KnowledgeRecord:
        """Persist one embedded chunk and return it with its assigned id.

        Raises:
            EmbeddingDimensionError: wrong vector length.
            DegenerateEmbeddingError: zero-magnitude vector.
            StoreError: empty content or a persistence failure.
        """
        ...

    @abstractmethod
    async def fetch_all(
        self, metadata_filter: MetadataFilter | dict[str, Any] | None = None
    ) -> list[KnowledgeRecord]:
        """Return every record matching the filter, ordered by id."""
        ...

    @abstractmethod
    async def rank(
        self,
        query_embedding: Any,
        threshold: float,
        max_results: int,
        metadata_filter: MetadataFilter | dict[str, Any] | None = None,
    ) -> list[RankedRecord]:
        """Rank records inside the store.

        Must return exactly what ``domain.ranking.rank_all`` returns for
        ``fetch_all(metadata_filter)``: the filter narrows the candidate set
        before the threshold and the ``max_results`` cap are applied.
        """
        ...

    @abstractmethod
    async def get(self, record_id: int) -> KnowledgeRecord | None:
        ...

    @abstractmethod
    async def count(
        self, metadata_filter: MetadataFilter | dict[str, Any] | None = None
    ) -> int:
        ...

    @abstractmethod
    async def delete_by_document(self, file_id: str) -> int:
        """Delete all records whose ``fileId`` metadata equals ``file_id``."""
        ...

    @abstractmethod
    async def delete_all(self) -> int:
        ...

    @abstractmethod
    async def list_categories(self) -> list[str]:
        """Distinct non-null categories, sorted."""
        ...
