from .diagnostics import ConsistencyDiagnostics
from .embedding_client import EmbeddingClient
from .ingestion_service import IngestionService
from .retrieval_service import RetrievalService

__all__ = [
    "ConsistencyDiagnostics",
    "EmbeddingClient",
    "IngestionService",
    "RetrievalService",
]
