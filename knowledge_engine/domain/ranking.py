"""Similarity ranking — the ground-truth ranking algorithm.

``rank_all`` defines what a correct ranking is:

1. apply the metadata filter to the candidate set,
2. compute cosine similarity for every remaining candidate,
3. drop candidates strictly below the threshold,
4. sort by similarity descending, ties by ascending record id,
5. truncate to ``max_results``.

Store-side ranking functions reimplement exactly this and are tested
against it.
"""

from collections.abc import Iterable, Mapping
from typing import Any

import numpy as np

from knowledge_engine.domain.entities.knowledge_record import KnowledgeRecord, RankedRecord
from knowledge_engine.domain.exceptions import ConfigurationError, EmbeddingDimensionError
from knowledge_engine.domain.filters import MetadataFilter, coerce_filter
from knowledge_engine.domain.vectors import EmbeddingVector, ensure_usable, parse_embedding

# Similarity a vector must reach against itself.
SELF_IDENTITY_TOLERANCE = 1e-6


def cosine_similarity(a: Any, b: Any) -> float:
    """Cosine similarity in ``[-1, 1]``; accepts either vector encoding.

    Raises:
        EmbeddingDimensionError: vectors differ in length.
        DegenerateEmbeddingError: either vector has zero magnitude.
    """
    left = ensure_usable(parse_embedding(a))
    right = ensure_usable(parse_embedding(b))
    if len(left) != len(right):
        raise EmbeddingDimensionError(len(left), len(right), context="cosine similarity")
    return _cosine(np.asarray(left, dtype=np.float64), np.asarray(right, dtype=np.float64))


def _cosine(left: np.ndarray, right: np.ndarray) -> float:
    dot = float(np.dot(left, right))
    norms = float(np.linalg.norm(left)) * float(np.linalg.norm(right))
    return max(-1.0, min(1.0, dot / norms))


def validate_ranking_params(threshold: float, max_results: int) -> None:
    if not 0.0 <= threshold <= 1.0:
        raise ConfigurationError(f"Similarity threshold must be in [0, 1], got {threshold}")
    if isinstance(max_results, bool) or not isinstance(max_results, int) or max_results < 1:
        raise ConfigurationError(f"max_results must be a positive integer, got {max_results}")


def sort_key(ranked: RankedRecord) -> tuple[float, int]:
    return (-ranked.similarity, ranked.record.id)


def rank_all(
    query: Any,
    records: Iterable[KnowledgeRecord],
    threshold: float,
    max_results: int,
    metadata_filter: MetadataFilter | Mapping[str, Any] | None = None,
) -> list[RankedRecord]:
    """Brute-force ranking over an in-memory candidate set."""
    validate_ranking_params(threshold, max_results)
    predicate = coerce_filter(metadata_filter)
    query_vector: EmbeddingVector = ensure_usable(parse_embedding(query))
    query_array = np.asarray(query_vector, dtype=np.float64)

    ranked: list[RankedRecord] = []
    for record in records:
        if not predicate.matches(record.metadata):
            continue
        if len(record.embedding) != len(query_vector):
            raise EmbeddingDimensionError(
                len(query_vector),
                len(record.embedding),
                record_id=record.id,
                context="ranking",
            )
        similarity = _cosine(query_array, np.asarray(record.embedding, dtype=np.float64))
        if similarity < threshold:
            continue
        ranked.append(RankedRecord(record=record, similarity=similarity))

    ranked.sort(key=sort_key)
    return ranked[:max_results]


def encoded_cosine_similarity(stored: str | None, query: str | None) -> float | None:
    """Cosine over two textual encodings; used as a SQL function.

    Parses with the same code and computes with the same arithmetic as
    ``rank_all`` so both ranking paths produce bit-identical scores.
    NULL in, NULL out; a length mismatch raises EmbeddingDimensionError.
    """
    if stored is None or query is None:
        return None
    record = np.asarray(parse_embedding(stored), dtype=np.float64)
    query_array = np.asarray(parse_embedding(query), dtype=np.float64)
    if record.shape != query_array.shape:
        raise EmbeddingDimensionError(len(query_array), len(record), context="store ranking")
    # Same operand order as rank_all
    return _cosine(query_array, record)
