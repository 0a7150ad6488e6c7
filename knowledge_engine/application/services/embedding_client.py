"""Embedding client — turns provider payloads into validated fixed-length vectors.

Coordinates with an EmbeddingProvider adapter:
1. Normalises input text (line breaks collapsed to spaces)
2. Submits single texts or order-preserving sub-batches
3. Unwraps singleton batches (``[[...]]``) into flat vectors
4. Validates length and magnitude — never truncates or pads
"""

import asyncio
import logging
import re
from collections.abc import Sequence
from numbers import Real
from typing import Any

from knowledge_engine.application.interfaces.embedding_provider import EmbeddingProvider
from knowledge_engine.domain.exceptions import EmbeddingFormatError
from knowledge_engine.domain.vectors import (
    EmbeddingVector,
    ensure_usable,
    parse_embedding,
    validate_dimensions,
)

logger = logging.getLogger(__name__)

_LINE_BREAKS = re.compile(r"\r\n|\r|\n")
_DEFAULT_BATCH_SIZE = 50  # Max texts per provider call


def normalize_input(text: str) -> str:
    """Collapse line breaks to spaces; embedding models react to newline tokens."""
    return _LINE_BREAKS.sub(" ", text)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_flat_vector(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(_is_number(v) for v in value)


class EmbeddingClient:
    """Application service for embedding generation with a strict output contract."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        dimensions: int,
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        max_concurrency: int = 1,
    ):
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        self._provider = provider
        self._dimensions = dimensions
        self._batch_size = batch_size
        self._max_concurrency = max_concurrency

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model(self) -> str:
        return self._provider.model

    async def embed(self, text: str) -> EmbeddingVector:
        """Embed one document text and return a flat, validated vector."""
        return await self._embed_one(text, query=False)

    async def embed_query(self, text: str) -> EmbeddingVector:
        """Embed a retrieval question (query task mode where the model has one)."""
        return await self._embed_one(text, query=True)

    async def _embed_one(self, text: str, *, query: bool) -> EmbeddingVector:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        payload = await self._provider.request(normalize_input(text), query=query)
        vector = self._unwrap_single(payload)
        return self._validate(vector, context="query" if query else "single input")

    async def embed_batch(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        """Embed many texts; output position ``i`` always belongs to input ``i``.

        Sub-batches may run concurrently (``max_concurrency``), but results
        are reassembled in input order.
        """
        if not texts:
            return []
        for position, text in enumerate(texts):
            if not text or not text.strip():
                raise ValueError(f"Cannot embed empty text at batch position {position}")

        offsets = range(0, len(texts), self._batch_size)
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(offset: int) -> list[EmbeddingVector]:
            async with semaphore:
                return await self._embed_sub_batch(
                    list(texts[offset : offset + self._batch_size]), offset
                )

        results = await asyncio.gather(*(run(offset) for offset in offsets))

        vectors = [vector for batch in results for vector in batch]
        logger.info(
            "Embedded %d texts in %d batch(es) (model=%s, dims=%d)",
            len(vectors),
            len(results),
            self._provider.model,
            self._dimensions,
        )
        return vectors

    async def _embed_sub_batch(self, batch: list[str], offset: int) -> list[EmbeddingVector]:
        payload = await self._provider.request([normalize_input(t) for t in batch])
        raw_vectors = self._unwrap_batch(payload, len(batch))
        return [
            self._validate(raw, context=f"batch position {offset + i}")
            for i, raw in enumerate(raw_vectors)
        ]

    # ── Payload shape handling ──────────────────────────────────────

    @staticmethod
    def _unwrap_single(payload: Any) -> Any:
        if _is_flat_vector(payload):
            return payload
        if (
            isinstance(payload, list)
            and len(payload) == 1
            and _is_flat_vector(payload[0])
        ):
            return payload[0]
        raise EmbeddingFormatError(
            f"Provider returned an unusable payload for a single input: {_describe(payload)}"
        )

    @staticmethod
    def _unwrap_batch(payload: Any, expected: int) -> list[Any]:
        if expected == 1 and _is_flat_vector(payload):
            return [payload]
        if not isinstance(payload, list) or not payload:
            raise EmbeddingFormatError(
                f"Provider returned an unusable batch payload: {_describe(payload)}"
            )
        if len(payload) != expected:
            raise EmbeddingFormatError(
                f"Provider returned {len(payload)} vectors for {expected} inputs"
            )
        unwrapped = []
        for item in payload:
            if isinstance(item, list) and len(item) == 1 and _is_flat_vector(item[0]):
                item = item[0]
            unwrapped.append(item)
        return unwrapped

    def _validate(self, raw: Any, *, context: str) -> EmbeddingVector:
        if not _is_flat_vector(raw):
            raise EmbeddingFormatError(
                f"Expected a flat numeric vector ({context}), got {_describe(raw)}"
            )
        vector = parse_embedding(raw)
        validate_dimensions(vector, self._dimensions, context=context)
        return ensure_usable(vector)


def _describe(payload: Any) -> str:
    if isinstance(payload, list):
        inner = type(payload[0]).__name__ if payload else "empty"
        return f"list[{inner}] of length {len(payload)}"
    if isinstance(payload, dict):
        return f"object with keys {sorted(payload)[:5]}"
    return type(payload).__name__
