from .chunk import Chunk
from .ingestion import IngestionReport
from .knowledge_record import KnowledgeRecord, RankedRecord

__all__ = [
    "Chunk",
    "IngestionReport",
    "KnowledgeRecord",
    "RankedRecord",
]
