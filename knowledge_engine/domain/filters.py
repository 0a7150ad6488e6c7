"""Metadata equality predicate applied before any top-K cap."""

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from knowledge_engine.domain.exceptions import ConfigurationError

MetadataValue = str | int | bool

FILE_ID_KEY = "fileId"
CHUNK_INDEX_KEY = "chunkIndex"

# Characters a quoted JSON path label cannot carry verbatim.
_UNMATCHABLE_KEY_CHARS = re.compile(r'["\\\x00-\x1f]')


@dataclass(frozen=True)
class MetadataFilter:
    """Exact-match predicate over a record's metadata.

    Every condition must hold. Comparison is type-sensitive, so ``"1"``
    never matches ``1``. An empty filter matches every record.
    """

    conditions: tuple[tuple[str, MetadataValue], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        keys = [key for key, _ in self.conditions]
        if len(keys) != len(set(keys)):
            raise ConfigurationError(f"Duplicate metadata filter keys: {keys}")
        for key, value in self.conditions:
            if not isinstance(key, str) or not key:
                raise ConfigurationError(f"Metadata filter key must be a non-empty string: {key!r}")
            if _UNMATCHABLE_KEY_CHARS.search(key):
                raise ConfigurationError(
                    f"Metadata filter key {key!r} contains a quote, backslash or control character"
                )
            if not isinstance(value, (str, int, bool)):
                raise ConfigurationError(
                    f"Metadata filter value for '{key}' must be str, int or bool, "
                    f"got {type(value).__name__}"
                )
        object.__setattr__(self, "conditions", tuple(sorted(self.conditions)))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, MetadataValue] | None) -> "MetadataFilter":
        return cls(tuple((mapping or {}).items()))

    @classmethod
    def for_file(cls, file_id: str) -> "MetadataFilter":
        return cls(((FILE_ID_KEY, file_id),))

    @property
    def is_empty(self) -> bool:
        return not self.conditions

    def matches(self, metadata: Mapping[str, Any] | None) -> bool:
        metadata = metadata or {}
        for key, expected in self.conditions:
            if key not in metadata:
                return False
            actual = metadata[key]
            # bool is an int subclass; keep True distinct from 1
            if type(actual) is not type(expected) or actual != expected:
                return False
        return True

    def as_dict(self) -> dict[str, MetadataValue]:
        return dict(self.conditions)

    def __iter__(self) -> Iterator[tuple[str, MetadataValue]]:
        return iter(self.conditions)

    def __bool__(self) -> bool:
        return not self.is_empty


def coerce_filter(
    value: "MetadataFilter | Mapping[str, MetadataValue] | None",
) -> MetadataFilter:
    """Accept a ``MetadataFilter``, a plain mapping or ``None``."""
    if isinstance(value, MetadataFilter):
        return value
    return MetadataFilter.from_mapping(value)
