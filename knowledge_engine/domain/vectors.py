"""Embedding vector encodings — parsing, formatting and validation.

Two wire encodings exist for the same vector and must be interchangeable:

* a native numeric sequence (list, tuple or 1-D numpy array)
* the bracketed textual form ``"[v0,v1,...,vn]"`` used by pgvector

Every entry point resolves the encoding with ``parse_embedding`` before any
computation, so the rest of the engine only ever sees ``EmbeddingVector``
(a tuple of Python floats).
"""

import math
from collections.abc import Sequence
from numbers import Real
from typing import Any

import numpy as np

from knowledge_engine.domain.exceptions import (
    DegenerateEmbeddingError,
    EmbeddingDimensionError,
    EmbeddingFormatError,
)

EmbeddingVector = tuple[float, ...]

# Accepted by every store operation and by the ranking engine.
EmbeddingInput = str | Sequence[float] | np.ndarray


def parse_embedding(value: Any) -> EmbeddingVector:
    """Resolve either encoding into a canonical tuple of floats."""
    if isinstance(value, str):
        return _parse_text(value)

    if isinstance(value, np.ndarray):
        if value.ndim != 1:
            raise EmbeddingFormatError(
                f"Expected a 1-D embedding array, got shape {value.shape}"
            )
        return tuple(float(v) for v in value.tolist())

    if isinstance(value, (list, tuple)):
        components = []
        for position, item in enumerate(value):
            if isinstance(item, bool) or not isinstance(item, (Real, np.floating, np.integer)):
                raise EmbeddingFormatError(
                    f"Embedding component {position} is not a number: {type(item).__name__}"
                )
            components.append(float(item))
        if not components:
            raise EmbeddingFormatError("Embedding is empty")
        return tuple(components)

    raise EmbeddingFormatError(f"Unsupported embedding encoding: {type(value).__name__}")


def _parse_text(raw: str) -> EmbeddingVector:
    text = raw.strip()
    if len(text) < 2 or text[0] != "[" or text[-1] != "]":
        raise EmbeddingFormatError(f"Textual embedding must be bracketed: {text[:40]!r}")

    inner = text[1:-1].strip()
    if not inner:
        raise EmbeddingFormatError("Embedding is empty")

    try:
        return tuple(float(part) for part in inner.split(","))
    except ValueError as exc:
        raise EmbeddingFormatError(f"Unparseable embedding component: {exc}") from exc


def format_embedding(vector: EmbeddingInput) -> str:
    """Render the bracketed textual encoding without losing precision."""
    components = parse_embedding(vector)
    return "[" + ",".join(repr(v) for v in components) + "]"


def validate_dimensions(
    vector: EmbeddingVector,
    expected: int,
    *,
    record_id: int | None = None,
    context: str = "",
) -> EmbeddingVector:
    """Fail with ``EmbeddingDimensionError`` unless ``len(vector) == expected``."""
    if len(vector) != expected:
        raise EmbeddingDimensionError(
            expected, len(vector), record_id=record_id, context=context
        )
    return vector


def vector_norm(vector: EmbeddingVector) -> float:
    return float(np.linalg.norm(np.asarray(vector, dtype=np.float64)))


def ensure_usable(vector: EmbeddingVector) -> EmbeddingVector:
    """Reject vectors for which cosine similarity is undefined."""
    if not all(math.isfinite(v) for v in vector):
        raise DegenerateEmbeddingError("Embedding contains NaN or infinite components")
    if vector_norm(vector) == 0.0:
        raise DegenerateEmbeddingError("Embedding has zero magnitude")
    return vector


def resolve_embedding(value: Any, dimensions: int, *, context: str = "") -> EmbeddingVector:
    """Parse, dimension-check and degeneracy-check in one step."""
    vector = parse_embedding(value)
    validate_dimensions(vector, dimensions, context=context)
    return ensure_usable(vector)
