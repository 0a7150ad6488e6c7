"""End-to-end tests: ingest a document and retrieve from it through KnowledgeEngine."""

import random
import string

import httpx
import pytest

from knowledge_engine.config import Settings
from knowledge_engine.domain.exceptions import ConfigurationError
from knowledge_engine.infrastructure.container import KnowledgeEngine, build_embedding_provider
from knowledge_engine.infrastructure.providers import (
    HuggingFaceEmbeddingProvider,
    OpenRouterEmbeddingProvider,
)
from tests.support.fakes import HistogramEmbeddingProvider

HANDBOOK = """
Password resets are handled from the login page. Choose "forgot password" and
follow the link sent to your inbox within fifteen minutes.

Invoices are issued on the first working day of each month and are payable
within thirty days. Questions about invoices go to the finance team.

Laptops are replaced every three years. Broken hardware can be reported to
the service desk, which ships a loan device the same day.
"""


def _settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite:///{tmp_path / 'engine.db'}",
        "embedding_dimensions": 8,
        "chunk_size": 160,
        "chunk_overlap": 30,
        "retrieval_threshold": 0.0,
        "retrieval_max_results": 3,
        **overrides,
    }
    return Settings(_env_file=None, **values)


@pytest.fixture
async def engine(tmp_path):
    async with KnowledgeEngine(_settings(tmp_path), provider=HistogramEmbeddingProvider(dims=8)) as kb:
        yield kb


class TestKnowledgeEngine:
    async def test_ingest_then_retrieve(self, engine):
        report = await engine.ingestion.ingest_document("handbook.txt", HANDBOOK, category="it")

        pairs = await engine.retrieval.context_for("how do I reset my password?")

        assert report.inserted == report.total_chunks > 1
        assert await engine.store.count() == report.inserted
        assert 0 < len(pairs) <= 3
        scores = [score for _, score in pairs]
        assert scores == sorted(scores, reverse=True)

    async def test_stored_corpus_passes_every_diagnostic(self, engine):
        await engine.ingestion.ingest_document("handbook.txt", HANDBOOK)
        await engine.ingestion.ingest_document("other.txt", "A short unrelated note about lunch.")
        query = await engine.embedding_client.embed("invoices and finance")

        for record in await engine.store.fetch_all():
            await engine.diagnostics.assert_self_identity(record.id)
        await engine.diagnostics.assert_dimension_invariant()
        for metadata_filter in (None, {"fileId": "other.txt"}):
            comparison = await engine.diagnostics.assert_ranking_agreement(
                query, 0.0, 2, metadata_filter
            )
            assert comparison.ok

    async def test_reingest_with_replace_keeps_one_copy(self, engine):
        first = await engine.ingestion.ingest_document("handbook.txt", HANDBOOK)
        await engine.ingestion.ingest_document("handbook.txt", HANDBOOK, replace_existing=True)

        assert await engine.store.count({"fileId": "handbook.txt"}) == first.inserted


class TestThousandCharacterDocument:
    async def test_each_chunk_retrieves_itself_first(self, tmp_path):
        rng = random.Random(0)
        document = "".join(rng.choice(string.ascii_lowercase) for _ in range(1000))
        settings = _settings(
            tmp_path, embedding_dimensions=16, chunk_size=384, chunk_overlap=40
        )

        async with KnowledgeEngine(settings, provider=HistogramEmbeddingProvider(dims=16)) as kb:
            chunks = kb.ingestion.split("doc.txt", document)
            report = await kb.ingestion.ingest_document("doc.txt", document)

            assert [len(c.content) for c in chunks] == [384, 384, 312]
            assert report.inserted == 3
            for record in await kb.store.fetch_all():
                ranked = await kb.retrieval.rank_vector(
                    record.embedding, threshold=0.0, max_results=5
                )
                assert ranked[0].id == record.id
                assert ranked[0].record.chunk_index == record.chunk_index
                assert ranked[0].similarity >= 0.999


class TestProviderSelection:
    def test_huggingface_is_the_default(self, tmp_path):
        provider = build_embedding_provider(_settings(tmp_path))

        assert isinstance(provider, HuggingFaceEmbeddingProvider)
        assert provider.model == "BAAI/bge-base-en-v1.5"

    def test_openrouter_requires_an_api_key(self, tmp_path):
        settings = _settings(tmp_path, embedding_provider="openrouter", openrouter_api_key=" ")

        with pytest.raises(ConfigurationError):
            build_embedding_provider(settings)

    async def test_openrouter_is_built_when_configured(self, tmp_path):
        settings = _settings(
            tmp_path, embedding_provider="openrouter", openrouter_api_key="sk-or-test"
        )
        async with httpx.AsyncClient() as client:
            provider = build_embedding_provider(settings, client)

        assert isinstance(provider, OpenRouterEmbeddingProvider)
        assert provider.model == settings.embedding_model
