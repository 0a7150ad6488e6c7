from .embedding_provider import EmbeddingProvider
from .record_store import RecordStore

__all__ = [
    "EmbeddingProvider",
    "RecordStore",
]
