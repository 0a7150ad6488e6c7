"""Unit tests for the IngestionService (chunk → embed → store)."""

import math

import pytest

from knowledge_engine.application.services.embedding_client import EmbeddingClient
from knowledge_engine.application.services.ingestion_service import IngestionService
from knowledge_engine.domain.exceptions import (
    EmbeddingProviderError,
    IngestionError,
    StoreError,
)
from tests.support.fakes import HistogramEmbeddingProvider, InMemoryRecordStore


DOCUMENT = " ".join(f"Sentence number {i} talks about topic {i % 4}." for i in range(12))


# ── Fixtures ─────────────────────────────────────────────────────────


def _service(
    provider: HistogramEmbeddingProvider | None = None,
    store: InMemoryRecordStore | None = None,
    **kwargs,
) -> tuple[IngestionService, HistogramEmbeddingProvider, InMemoryRecordStore]:
    provider = provider or HistogramEmbeddingProvider(dims=8)
    store = store or InMemoryRecordStore(dimensions=8)
    client = EmbeddingClient(provider, 8)
    options = {"chunk_size": 120, "chunk_overlap": 20, **kwargs}
    return IngestionService(client, store, **options), provider, store


# ── Tests ────────────────────────────────────────────────────────────


class TestIngestDocument:
    async def test_stores_every_chunk_with_traceable_metadata(self):
        service, _, store = _service()
        expected = service.split("handbook.txt", DOCUMENT)

        report = await service.ingest_document("handbook.txt", DOCUMENT, category="hr")

        records = await store.fetch_all()
        assert report.total_chunks == len(expected) > 1
        assert report.inserted == len(expected)
        assert report.record_ids == [r.id for r in records]
        assert [r.content for r in records] == [c.content for c in expected]
        assert [r.metadata["chunkIndex"] for r in records] == list(range(len(expected)))
        assert all(r.metadata["fileId"] == "handbook.txt" for r in records)
        assert all(r.category == "hr" for r in records)

    async def test_extra_metadata_never_overrides_traceability_keys(self):
        service, _, store = _service()

        await service.ingest_document(
            "a.txt", "short document", extra_metadata={"fileId": "spoofed", "lang": "en"}
        )

        (record,) = await store.fetch_all()
        assert record.metadata == {"fileId": "a.txt", "chunkIndex": 0, "lang": "en"}

    async def test_text_is_cleaned_before_chunking(self):
        service, _, store = _service()

        await service.ingest_document("a.txt", "  clean\x00 me\x07  ")

        (record,) = await store.fetch_all()
        assert record.content == "clean me"

    async def test_empty_document_stores_nothing(self):
        service, provider, store = _service()

        report = await service.ingest_document("empty.txt", "   \n  ")

        assert report.total_chunks == 0
        assert report.inserted == 0
        assert provider.calls == 0
        assert await store.count() == 0

    async def test_batched_embedding_groups_chunks(self):
        service, provider, store = _service(embed_batch_size=3)
        total = len(service.split("doc", DOCUMENT))

        report = await service.ingest_document("doc", DOCUMENT)

        assert report.inserted == total
        assert len(provider.requests) == math.ceil(total / 3)
        assert any(isinstance(r, list) and len(r) == 3 for r in provider.requests)
        assert await store.count() == total


class TestFailureAndResume:
    async def test_embedding_failure_reports_chunk_index_and_resume_completes(self):
        provider = HistogramEmbeddingProvider(dims=8, fail_on_calls={2})
        service, _, store = _service(provider=provider)
        total = len(service.split("doc", DOCUMENT))

        with pytest.raises(IngestionError) as exc_info:
            await service.ingest_document("doc", DOCUMENT)

        error = exc_info.value
        assert error.chunk_index == 2
        assert len(error.inserted_ids) == 2
        assert isinstance(error.__cause__, EmbeddingProviderError)

        report = await service.ingest_document("doc", DOCUMENT, start_index=error.chunk_index)

        assert report.inserted == total - 2
        indexes = sorted(r.metadata["chunkIndex"] for r in await store.fetch_all())
        assert indexes == list(range(total))

    async def test_store_failure_reports_the_failing_chunk(self):
        store = InMemoryRecordStore(dimensions=8, fail_on_inserts={1})
        service, _, _ = _service(store=store)

        with pytest.raises(IngestionError) as exc_info:
            await service.ingest_document("doc", DOCUMENT)

        assert exc_info.value.chunk_index == 1
        assert isinstance(exc_info.value.__cause__, StoreError)
        assert await store.count() == 1

    async def test_batch_failure_reports_first_index_of_the_batch(self):
        provider = HistogramEmbeddingProvider(dims=8, fail_on_calls={1})
        service, _, _ = _service(provider=provider, embed_batch_size=2)

        with pytest.raises(IngestionError) as exc_info:
            await service.ingest_document("doc", DOCUMENT)

        assert exc_info.value.chunk_index == 2
        assert len(exc_info.value.inserted_ids) == 2

    async def test_replace_existing_removes_previous_records(self):
        service, _, store = _service()
        first = await service.ingest_document("doc", DOCUMENT)

        second = await service.ingest_document("doc", DOCUMENT, replace_existing=True)

        assert second.deleted_existing == first.inserted
        assert await store.count() == second.inserted
        assert set(second.record_ids).isdisjoint(first.record_ids)

    async def test_replace_existing_leaves_other_documents_alone(self):
        service, _, store = _service()
        await service.ingest_document("keep", "kept document")
        await service.ingest_document("doc", DOCUMENT)

        await service.ingest_document("doc", DOCUMENT, replace_existing=True)

        assert await store.count({"fileId": "keep"}) == 1


class TestValidation:
    async def test_replace_cannot_be_combined_with_resume(self):
        service, _, _ = _service()

        with pytest.raises(ValueError):
            await service.ingest_document("doc", DOCUMENT, start_index=1, replace_existing=True)

    async def test_negative_start_index_is_rejected(self):
        service, _, _ = _service()

        with pytest.raises(ValueError):
            await service.ingest_document("doc", DOCUMENT, start_index=-1)

    def test_dimension_mismatch_between_client_and_store(self):
        client = EmbeddingClient(HistogramEmbeddingProvider(dims=8), 8)

        with pytest.raises(ValueError):
            IngestionService(client, InMemoryRecordStore(dimensions=16))
