"""Unit tests for embedding encodings and vector validation."""

import math

import numpy as np
import pytest

from knowledge_engine.domain.exceptions import (
    DegenerateEmbeddingError,
    EmbeddingDimensionError,
    EmbeddingFormatError,
)
from knowledge_engine.domain.vectors import (
    ensure_usable,
    format_embedding,
    parse_embedding,
    resolve_embedding,
    validate_dimensions,
    vector_norm,
)


# ── parse_embedding ──


def test_parse_accepts_list_tuple_array_and_text():
    expected = (0.5, -1.0, 2.0)

    assert parse_embedding([0.5, -1.0, 2.0]) == expected
    assert parse_embedding((0.5, -1, 2)) == expected
    assert parse_embedding(np.array([0.5, -1.0, 2.0], dtype=np.float64)) == expected
    assert parse_embedding("[0.5,-1.0,2.0]") == expected
    assert parse_embedding(" [0.5, -1, 2] ") == expected


def test_parse_returns_plain_python_floats():
    parsed = parse_embedding(np.array([1, 2], dtype=np.float32))

    assert all(type(v) is float for v in parsed)


@pytest.mark.parametrize(
    "value",
    [
        "0.1,0.2",
        "[0.1,abc]",
        "[]",
        "[",
        [],
        [0.1, "0.2"],
        [0.1, True],
        [[0.1, 0.2]],
        np.zeros((2, 2)),
        {"embedding": [0.1]},
        None,
    ],
)
def test_parse_rejects_malformed_encodings(value):
    with pytest.raises(EmbeddingFormatError):
        parse_embedding(value)


# ── format_embedding ──


def test_format_is_bracketed_and_comma_separated():
    assert format_embedding([1.0, -0.25]) == "[1.0,-0.25]"


def test_text_round_trip_is_exact():
    rng = np.random.default_rng(7)
    vector = tuple(float(v) for v in rng.normal(size=768))

    assert parse_embedding(format_embedding(vector)) == vector


def test_format_accepts_text_input():
    assert format_embedding("[1, 2]") == "[1.0,2.0]"


# ── validation ──


def test_validate_dimensions_reports_lengths_and_record():
    with pytest.raises(EmbeddingDimensionError) as exc_info:
        validate_dimensions((1.0, 2.0), 3, record_id=42, context="insert")

    error = exc_info.value
    assert error.expected == 3
    assert error.actual == 2
    assert error.record_id == 42
    assert "record 42" in str(error)


def test_ensure_usable_rejects_zero_and_non_finite_vectors():
    with pytest.raises(DegenerateEmbeddingError):
        ensure_usable((0.0, 0.0, 0.0))
    with pytest.raises(DegenerateEmbeddingError):
        ensure_usable((1.0, math.nan))
    with pytest.raises(DegenerateEmbeddingError):
        ensure_usable((1.0, math.inf))


def test_degenerate_error_is_a_format_error():
    assert issubclass(DegenerateEmbeddingError, EmbeddingFormatError)


def test_vector_norm():
    assert vector_norm((3.0, 4.0)) == pytest.approx(5.0)


def test_resolve_embedding_checks_everything():
    assert resolve_embedding("[3,4]", 2) == (3.0, 4.0)
    with pytest.raises(EmbeddingDimensionError):
        resolve_embedding([1.0, 2.0, 3.0], 2)
    with pytest.raises(DegenerateEmbeddingError):
        resolve_embedding([0.0, 0.0], 2)
