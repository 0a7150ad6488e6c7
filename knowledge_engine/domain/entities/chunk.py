"""Domain entity for document chunks — the unit of embedding and retrieval."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Chunk:
    """A contiguous substring of a source document.

    ``sequence_index`` records emission order for traceability and for
    resuming ingestion. It never influences ranking.
    """

    content: str
    source_document_id: str
    sequence_index: int
