"""Retrieval service — query text or vector in, ranked passages out.

The serving path always uses the store-side ranking. Its agreement with
the brute-force ranking is proven by the diagnostics layer and the test
suite, never checked per request.
"""

import logging
import time
from typing import Any

from knowledge_engine.application.interfaces.record_store import RecordStore
from knowledge_engine.application.schemas.retrieval import (
    RetrievalQuery,
    RetrievalResult,
    RetrievedPassage,
)
from knowledge_engine.application.services.embedding_client import EmbeddingClient
from knowledge_engine.domain.entities import RankedRecord
from knowledge_engine.domain.filters import MetadataFilter, coerce_filter

logger = logging.getLogger(__name__)


class RetrievalService:
    """Application service for similarity retrieval."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        record_store: RecordStore,
        *,
        default_threshold: float = 0.3,
        default_max_results: int = 5,
    ):
        self._embedding_client = embedding_client
        self._store = record_store
        self._default_threshold = default_threshold
        self._default_max_results = default_max_results

    async def rank_text(
        self,
        question: str,
        *,
        threshold: float | None = None,
        max_results: int | None = None,
        metadata_filter: MetadataFilter | dict[str, Any] | None = None,
    ) -> list[RankedRecord]:
        """Embed a question, then rank stored records against it."""
        query_vector = await self._embedding_client.embed_query(question)
        return await self.rank_vector(
            query_vector,
            threshold=threshold,
            max_results=max_results,
            metadata_filter=metadata_filter,
        )

    async def rank_vector(
        self,
        embedding: Any,
        *,
        threshold: float | None = None,
        max_results: int | None = None,
        metadata_filter: MetadataFilter | dict[str, Any] | None = None,
    ) -> list[RankedRecord]:
        """Rank stored records against a vector in either encoding."""
        threshold = self._default_threshold if threshold is None else threshold
        max_results = self._default_max_results if max_results is None else max_results

        start = time.monotonic()
        ranked = await self._store.rank(
            embedding, threshold, max_results, coerce_filter(metadata_filter)
        )
        logger.info(
            "Retrieved %d passage(s) in %dms (threshold=%.2f, max_results=%d)",
            len(ranked),
            int((time.monotonic() - start) * 1000),
            threshold,
            max_results,
        )
        return ranked

    async def retrieve(self, query: RetrievalQuery) -> RetrievalResult:
        """Run a validated RetrievalQuery and shape the result for answer generation."""
        options = {
            "threshold": query.similarity_threshold,
            "max_results": query.max_results,
            "metadata_filter": query.to_filter(),
        }
        if query.text is not None:
            ranked = await self.rank_text(query.text, **options)
        else:
            ranked = await self.rank_vector(query.embedding, **options)
        passages = [
            RetrievedPassage(
                record_id=item.record.id,
                content=item.record.content,
                similarity=item.similarity,
                metadata=item.record.metadata,
                category=item.record.category,
            )
            for item in ranked
        ]
        return RetrievalResult(
            passages=passages,
            total=len(passages),
            similarity_threshold=query.similarity_threshold,
            max_results=query.max_results,
        )

    async def context_for(
        self,
        question: str,
        *,
        threshold: float | None = None,
        max_results: int | None = None,
        metadata_filter: MetadataFilter | dict[str, Any] | None = None,
    ) -> list[tuple[str, float]]:
        """Ordered ``(content, similarity)`` pairs for the answer-generation step."""
        ranked = await self.rank_text(
            question,
            threshold=threshold,
            max_results=max_results,
            metadata_filter=metadata_filter,
        )
        return [(item.record.content, item.similarity) for item in ranked]
