"""Unit tests for text cleaning and fixed-window chunking."""

import pytest

from knowledge_engine.domain.chunking import ChunkSequence, chunk, clean_text
from knowledge_engine.domain.exceptions import ConfigurationError


def _document(length: int) -> str:
    alphabet = "abcdefghijklmnopqrstuvwxyz"
    return "".join(alphabet[i % len(alphabet)] for i in range(length))


# ── chunk ──


def test_thousand_characters_with_384_40_yields_three_windows():
    text = _document(1000)

    chunks = list(chunk(text, 384, 40))

    assert [len(c.content) for c in chunks] == [384, 384, 312]
    assert [c.sequence_index for c in chunks] == [0, 1, 2]
    assert chunks[0].content == text[0:384]
    assert chunks[1].content == text[344:728]
    assert chunks[2].content == text[688:1000]


def test_consecutive_chunks_share_exactly_overlap_characters():
    text = _document(2500)

    chunks = list(chunk(text, 300, 50))

    for previous, current in zip(chunks, chunks[1:]):
        if len(previous.content) == 300:
            assert previous.content[-50:] == current.content[:50]


def test_text_shorter_than_size_yields_single_chunk():
    chunks = list(chunk("short text", 384, 40, source_document_id="doc-1"))

    assert len(chunks) == 1
    assert chunks[0].content == "short text"
    assert chunks[0].source_document_id == "doc-1"


def test_empty_and_whitespace_text_yield_nothing():
    assert list(chunk("", 100, 10)) == []
    assert list(chunk("     \n\t  ", 100, 10)) == []


def test_whitespace_only_windows_are_skipped_without_gaps_in_index():
    text = "a" * 10 + " " * 30 + "b" * 10

    chunks = list(chunk(text, 10, 0))

    assert [c.content for c in chunks] == ["a" * 10, "b" * 10]
    assert [c.sequence_index for c in chunks] == [0, 1]


def test_zero_overlap_partitions_the_text():
    text = _document(95)

    chunks = list(chunk(text, 20, 0))

    assert "".join(c.content for c in chunks) == text
    assert len(chunks) == 5


def test_sequence_is_lazy_and_restartable():
    sequence = chunk(_document(1000), 384, 40)

    assert isinstance(sequence, ChunkSequence)
    first_pass = list(sequence)
    second_pass = list(sequence)

    assert first_pass == second_pass
    assert len(sequence) == 3


@pytest.mark.parametrize(
    "size, overlap",
    [(0, 0), (-5, 0), (100, -1), (100, 100), (100, 150)],
)
def test_invalid_parameters_raise_configuration_error(size, overlap):
    with pytest.raises(ConfigurationError):
        chunk("some text", size, overlap)


# ── clean_text ──


def test_clean_text_strips_control_characters_and_keeps_line_breaks():
    raw = "Hello\x00 wor\x07ld\r\nnext\tline\x7f"

    assert clean_text(raw) == "Hello world\r\nnext\tline"


def test_clean_text_removes_lone_surrogates_and_replacement_characters():
    raw = "caf\ud800e \ufffdmenu\uffff"

    assert clean_text(raw) == "cafe menu"


def test_clean_text_trims_surrounding_whitespace():
    assert clean_text("  \n padded \n ") == "padded"
