"""Domain-specific exceptions — framework-independent."""

from typing import Any


class KnowledgeEngineError(Exception):
    """Base class for every error raised by the knowledge engine."""


class ConfigurationError(KnowledgeEngineError):
    """Raised for invalid chunking or engine parameters."""


class EmbeddingProviderError(KnowledgeEngineError):
    """Raised when the embedding provider fails or times out.

    Provider-agnostic — works for Hugging Face, OpenRouter, etc.
    Retry policy belongs to the caller; the client never retries internally.
    """

    def __init__(self, provider: str, status_code: int | None, message: str):
        self.provider = provider
        self.status_code = status_code
        self.message = message
        status = status_code if status_code is not None else "timeout"
        super().__init__(f"[{provider}] {status}: {message}")

    @property
    def retryable(self) -> bool:
        """Timeouts, rate limits and server-side failures are worth retrying."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class EmbeddingFormatError(KnowledgeEngineError):
    """Raised when a provider response or vector encoding cannot be parsed."""


class DegenerateEmbeddingError(EmbeddingFormatError):
    """Raised for vectors with zero magnitude or non-finite components.

    Cosine similarity is undefined for these, so they are rejected at
    embedding, insert and query time.
    """


class EmbeddingDimensionError(KnowledgeEngineError):
    """Raised when a vector's length disagrees with the configured dimensionality."""

    def __init__(
        self,
        expected: int,
        actual: int,
        *,
        record_id: int | None = None,
        context: str = "",
    ):
        self.expected = expected
        self.actual = actual
        self.record_id = record_id
        self.context = context
        where = f" ({context})" if context else ""
        record = f" for record {record_id}" if record_id is not None else ""
        super().__init__(
            f"Embedding dimension mismatch{record}{where}: expected {expected}, got {actual}"
        )


class MixedDimensionError(EmbeddingDimensionError):
    """Raised when a corpus holds embeddings of more than one length."""

    def __init__(self, expected: int, ids_by_length: dict[int, list[int]]):
        self.ids_by_length = ids_by_length
        offending = {
            length: ids for length, ids in ids_by_length.items() if length != expected
        }
        self.offending_ids = sorted(i for ids in offending.values() for i in ids)
        actual = next(iter(sorted(offending)), expected)
        super().__init__(
            expected,
            actual,
            context=f"mixed corpus, offending ids by length: {offending}",
        )


class StoreError(KnowledgeEngineError):
    """Raised when the persistence boundary fails to read or write."""


class RankingDisagreementError(KnowledgeEngineError):
    """Raised by diagnostics when brute-force and store-side rankings differ.

    Never raised while serving queries. Its appearance means the store-side
    ranking function must be fixed.
    """

    def __init__(self, comparison: Any):
        self.comparison = comparison
        super().__init__(f"Ranking paths disagree: {comparison.describe()}")


class IngestionError(KnowledgeEngineError):
    """Raised when ingestion of a document stops at a specific chunk.

    The original error is chained as ``__cause__``. ``chunk_index`` is the
    sequence index to pass as ``start_index`` when resuming.
    """

    def __init__(self, document_id: str, chunk_index: int, inserted_ids: list[int]):
        self.document_id = document_id
        self.chunk_index = chunk_index
        self.inserted_ids = inserted_ids
        super().__init__(
            f"Ingestion of document '{document_id}' failed at chunk {chunk_index} "
            f"({len(inserted_ids)} chunk(s) already stored)"
        )
