"""Ingestion service — orchestrates text chunking, embedding generation, and storage.

This is an application service that coordinates:
1. Cleaning and splitting document text into overlapping chunks
2. Generating embeddings via the EmbeddingClient
3. Storing each chunk + embedding via the RecordStore

Chunks are processed in order. The first failure stops the run and raises
IngestionError carrying the failing chunk index, which is also the
``start_index`` to resume from. Records stored before the failure stay
stored (at-least-once per chunk).
"""

import time
from typing import Any

from knowledge_engine.application.interfaces.record_store import RecordStore
from knowledge_engine.application.services.embedding_client import EmbeddingClient
from knowledge_engine.domain.chunking import chunk, clean_text, validate_chunking
from knowledge_engine.domain.entities import Chunk, IngestionReport
from knowledge_engine.domain.exceptions import IngestionError
from knowledge_engine.domain.filters import CHUNK_INDEX_KEY, FILE_ID_KEY
from knowledge_engine.infrastructure.logging.colored_logger import IngestionLogger, IngestionStage

log = IngestionLogger("IngestionService")

# ── Chunking constants ──────────────────────────────────────────────
_DEFAULT_CHUNK_SIZE = 1200  # ~300 tokens (rough 4:1 char-to-token ratio)
_DEFAULT_CHUNK_OVERLAP = 200  # Overlap for context continuity


class IngestionService:
    """Application service for turning documents into stored knowledge records."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        record_store: RecordStore,
        *,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = _DEFAULT_CHUNK_OVERLAP,
        embed_batch_size: int = 1,
    ):
        validate_chunking(chunk_size, chunk_overlap)
        if embed_batch_size <= 0:
            raise ValueError(f"embed_batch_size must be positive, got {embed_batch_size}")
        if embedding_client.dimensions != record_store.dimensions:
            raise ValueError(
                f"Embedding client produces {embedding_client.dimensions}-d vectors "
                f"but the store expects {record_store.dimensions}"
            )
        self._embedding_client = embedding_client
        self._store = record_store
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._embed_batch_size = embed_batch_size

    def split(self, document_id: str, text: str) -> list[Chunk]:
        """Clean and chunk a document without embedding it."""
        return list(
            chunk(
                clean_text(text),
                self._chunk_size,
                self._chunk_overlap,
                source_document_id=document_id,
            )
        )

    async def ingest_document(
        self,
        document_id: str,
        text: str,
        *,
        category: str | None = None,
        extra_metadata: dict[str, Any] | None = None,
        start_index: int = 0,
        replace_existing: bool = False,
    ) -> IngestionReport:
        """Chunk, embed and store one document.

        Args:
            document_id: Stored as ``fileId`` metadata on every record.
            text: Raw document text.
            category: Optional facet stored on every record.
            extra_metadata: Merged into each record's metadata; ``fileId``
                and ``chunkIndex`` always win.
            start_index: Skip chunks before this sequence index (resume).
            replace_existing: Delete the document's records first. Only
                allowed for a fresh run (``start_index == 0``).

        Raises:
            IngestionError: a chunk failed; ``chunk_index`` says which.
        """
        if start_index < 0:
            raise ValueError(f"start_index must not be negative, got {start_index}")
        if replace_existing and start_index > 0:
            raise ValueError("replace_existing cannot be combined with a resumed run")

        start = time.monotonic()
        log.begin_document(document_id)

        deleted = 0
        if replace_existing:
            with log.timed_step(IngestionStage.CLEANUP, "Removing existing records"):
                deleted = await self._store.delete_by_document(document_id)

        with log.timed_step(IngestionStage.CHUNK, f"Chunking document {document_id}"):
            chunks = self.split(document_id, text)
            log.detail(
                "Chunking parameters",
                size=self._chunk_size,
                overlap=self._chunk_overlap,
                chunks=len(chunks),
            )

        report = IngestionReport(
            document_id=document_id,
            total_chunks=len(chunks),
            start_index=start_index,
            deleted_existing=deleted,
        )
        pending = [c for c in chunks if c.sequence_index >= start_index]
        if not pending:
            log.step_complete(IngestionStage.COMPLETE, "Nothing to ingest", document=document_id)
            return report

        for offset in range(0, len(pending), self._embed_batch_size):
            batch = pending[offset : offset + self._embed_batch_size]
            await self._ingest_batch(document_id, batch, report, category, extra_metadata)

        report.duration_ms = int((time.monotonic() - start) * 1000)
        log.step_complete(
            IngestionStage.COMPLETE,
            f"Ingested document {document_id}",
            records=report.inserted,
            chunks=report.total_chunks,
        )
        log.stats(duration_ms=report.duration_ms, resumed_from=start_index)
        return report

    async def _ingest_batch(
        self,
        document_id: str,
        batch: list[Chunk],
        report: IngestionReport,
        category: str | None,
        extra_metadata: dict[str, Any] | None,
    ) -> None:
        first = batch[0].sequence_index
        try:
            log.step_start(
                IngestionStage.EMBED,
                f"Embedding chunk(s) {first}..{batch[-1].sequence_index}",
            )
            if len(batch) == 1:
                vectors = [await self._embedding_client.embed(batch[0].content)]
            else:
                vectors = await self._embedding_client.embed_batch([c.content for c in batch])
        except Exception as exc:
            log.step_error(IngestionStage.EMBED, f"Embedding failed at chunk {first}", error=exc)
            raise IngestionError(document_id, first, list(report.record_ids)) from exc

        for item, vector in zip(batch, vectors, strict=True):
            metadata = {
                **(extra_metadata or {}),
                FILE_ID_KEY: document_id,
                CHUNK_INDEX_KEY: item.sequence_index,
            }
            try:
                record = await self._store.insert(
                    item.content, vector, metadata, category=category
                )
            except Exception as exc:
                log.step_error(
                    IngestionStage.STORE,
                    f"Insert failed at chunk {item.sequence_index}",
                    error=exc,
                )
                raise IngestionError(
                    document_id, item.sequence_index, list(report.record_ids)
                ) from exc
            report.record_ids.append(record.id)
            log.detail("Stored chunk", index=item.sequence_index, record_id=record.id)
