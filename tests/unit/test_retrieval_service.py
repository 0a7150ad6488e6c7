"""Unit tests for the RetrievalService and the retrieval schemas."""

import pytest
from pydantic import ValidationError

from knowledge_engine.application.schemas import RetrievalQuery
from knowledge_engine.application.services.embedding_client import EmbeddingClient
from knowledge_engine.application.services.retrieval_service import RetrievalService
from knowledge_engine.domain.exceptions import ConfigurationError, EmbeddingDimensionError
from tests.support.fakes import (
    HistogramEmbeddingProvider,
    InMemoryRecordStore,
    letter_histogram,
)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
async def populated():
    provider = HistogramEmbeddingProvider(dims=8)
    store = InMemoryRecordStore(dimensions=8)
    texts = [
        ("faq", "reset your password from the login page"),
        ("faq", "invoices are sent on the first of the month"),
        ("guide", "password rules require twelve characters"),
        ("guide", "zzz zzz zzz"),
    ]
    for file_id, text in texts:
        await store.insert(text, letter_histogram(text, 8), {"fileId": file_id})
    service = RetrievalService(
        EmbeddingClient(provider, 8), store, default_threshold=0.0, default_max_results=3
    )
    return service, store


# ── RetrievalService ─────────────────────────────────────────────────


class TestRetrievalService:
    async def test_rank_text_uses_defaults_and_orders_results(self, populated):
        service, _ = populated

        ranked = await service.rank_text("how do I reset my password")

        assert 0 < len(ranked) <= 3
        scores = [r.similarity for r in ranked]
        assert scores == sorted(scores, reverse=True)

    async def test_rank_text_embeds_question_in_query_mode(self):
        provider = HistogramEmbeddingProvider(dims=8)
        service = RetrievalService(EmbeddingClient(provider, 8), InMemoryRecordStore(dimensions=8))

        assert await service.rank_text("refund policy") == []

        assert provider.query_flags == [True]

    async def test_rank_vector_matches_brute_force(self, populated):
        service, store = populated
        query = letter_histogram("password", 8)

        ranked = await service.rank_vector(query, threshold=0.0, max_results=10)

        assert [r.id for r in ranked] == [r.id for r in await store.rank(query, 0.0, 10)]

    async def test_filter_restricts_candidates(self, populated):
        service, _ = populated

        ranked = await service.rank_text(
            "password", max_results=10, metadata_filter={"fileId": "guide"}
        )

        assert {r.record.metadata["fileId"] for r in ranked} == {"guide"}
        assert len(ranked) == 2

    async def test_context_for_returns_content_similarity_pairs(self, populated):
        service, _ = populated

        pairs = await service.context_for("password", max_results=2)

        assert len(pairs) == 2
        assert all(isinstance(content, str) and isinstance(score, float) for content, score in pairs)

    async def test_retrieve_with_text_query(self, populated):
        service, _ = populated

        result = await service.retrieve(
            RetrievalQuery(text="password", similarity_threshold=0.0, max_results=2)
        )

        assert result.total == len(result.passages) == 2
        assert result.max_results == 2
        assert result.context_pairs() == [(p.content, p.similarity) for p in result.passages]

    async def test_retrieve_with_textual_embedding(self, populated):
        service, _ = populated
        vector = letter_histogram("invoices", 8)
        textual = "[" + ",".join(str(v) for v in vector) + "]"

        native = await service.retrieve(RetrievalQuery(embedding=vector, similarity_threshold=0.0))
        encoded = await service.retrieve(RetrievalQuery(embedding=textual, similarity_threshold=0.0))

        assert [p.record_id for p in native.passages] == [p.record_id for p in encoded.passages]

    async def test_invalid_parameters_are_rejected(self, populated):
        service, _ = populated

        with pytest.raises(ConfigurationError):
            await service.rank_vector(letter_histogram("x", 8), threshold=1.5)
        with pytest.raises(ConfigurationError):
            await service.rank_vector(letter_histogram("x", 8), max_results=0)

    async def test_wrong_query_dimension_is_rejected(self, populated):
        service, _ = populated

        with pytest.raises(EmbeddingDimensionError):
            await service.rank_vector([1.0, 2.0, 3.0])


# ── RetrievalQuery ───────────────────────────────────────────────────


class TestRetrievalQuery:
    def test_defaults(self):
        query = RetrievalQuery(text="hello")

        assert query.similarity_threshold == 0.3
        assert query.max_results == 5
        assert query.to_filter().is_empty

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"text": "a", "embedding": [1.0]},
            {"text": "   "},
            {"embedding": "not a vector"},
            {"text": "a", "similarity_threshold": 1.2},
            {"text": "a", "max_results": 0},
        ],
    )
    def test_invalid_queries(self, kwargs):
        with pytest.raises(ValidationError):
            RetrievalQuery(**kwargs)

    def test_metadata_filter_converts(self):
        query = RetrievalQuery(text="a", metadata_filter={"fileId": "x", "chunkIndex": 2})

        assert query.to_filter().as_dict() == {"fileId": "x", "chunkIndex": 2}
