"""Domain entity summarising one document ingestion run."""

from dataclasses import dataclass, field


@dataclass
class IngestionReport:
    """Outcome of ingesting a single document."""

    document_id: str
    total_chunks: int
    start_index: int = 0
    record_ids: list[int] = field(default_factory=list)
    deleted_existing: int = 0
    duration_ms: int = 0

    @property
    def inserted(self) -> int:
        return len(self.record_ids)
