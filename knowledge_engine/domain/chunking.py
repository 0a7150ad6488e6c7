"""Structural text chunking — fixed-size windows with character overlap.

Boundaries are deliberately not semantic: a window of ``size`` characters
is emitted, the offset advances by ``size - overlap``, and the last window
may be shorter. The resulting sequence is lazy and can be iterated again.
"""

import re
from collections.abc import Iterator

from knowledge_engine.domain.entities.chunk import Chunk
from knowledge_engine.domain.exceptions import ConfigurationError

# Control characters except tab, newline and carriage return.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
# Unpaired UTF-16 surrogates (can appear after lossy PDF/Office extraction).
_LONE_SURROGATES = re.compile("[\ud800-\udfff]")
_NON_CHARACTERS = re.compile("[\ufffd\ufffe\uffff]")


def clean_text(text: str) -> str:
    """Strip characters that break providers or the database, then trim."""
    cleaned = _CONTROL_CHARS.sub("", text)
    cleaned = _LONE_SURROGATES.sub("", cleaned)
    cleaned = _NON_CHARACTERS.sub("", cleaned)
    return cleaned.strip()


def validate_chunking(size: int, overlap: int) -> None:
    if size <= 0:
        raise ConfigurationError(f"Chunk size must be positive, got {size}")
    if overlap < 0:
        raise ConfigurationError(f"Chunk overlap must not be negative, got {overlap}")
    if overlap >= size:
        raise ConfigurationError(
            f"Chunk overlap ({overlap}) must be smaller than chunk size ({size})"
        )


class ChunkSequence:
    """Lazy, restartable sequence of chunks for one document."""

    def __init__(self, text: str, size: int, overlap: int, source_document_id: str):
        validate_chunking(size, overlap)
        self._text = text
        self._size = size
        self._step = size - overlap
        self._source_document_id = source_document_id

    def __iter__(self) -> Iterator[Chunk]:
        sequence_index = 0
        offset = 0
        length = len(self._text)
        while offset < length:
            window = self._text[offset : offset + self._size]
            offset += self._step
            if not window.strip():
                continue
            yield Chunk(
                content=window,
                source_document_id=self._source_document_id,
                sequence_index=sequence_index,
            )
            sequence_index += 1

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return (
            f"ChunkSequence(document={self._source_document_id!r}, "
            f"chars={len(self._text)}, size={self._size}, step={self._step})"
        )


def chunk(text: str, size: int, overlap: int, *, source_document_id: str = "") -> ChunkSequence:
    """Split ``text`` into overlapping fixed-size chunks.

    Raises:
        ConfigurationError: ``size <= 0`` or ``overlap`` not in ``[0, size)``.
    """
    return ChunkSequence(text, size, overlap, source_document_id)
