"""Colored ingestion logger — follows one document from raw text to stored records.

Every ingestion step (cleanup of a replaced document, chunking, embedding of a
chunk range, storing each chunk) logs one colored line, so a failed run shows
at a glance which chunk index to resume from.

Stages:
    🔵 CLEANUP  — existing records of the document removed
    🟡 CHUNK    — text split into overlapping windows
    🟣 EMBED    — a chunk range sent to the embedding provider
    🟢 STORE    — records inserted with fileId / chunkIndex metadata
    🟢 COMPLETE — ingestion report ready
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, NamedTuple

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[91m"
_GREEN = "\033[92m"
_YELLOW = "\033[93m"
_BLUE = "\033[94m"
_MAGENTA = "\033[95m"
_GRAY = "\033[90m"


class Stage(NamedTuple):
    label: str
    color: str
    icon: str


class IngestionStage:
    """The steps of ``IngestionService.ingest_document``."""

    CLEANUP = Stage("CLEANUP", _BLUE, "🧹")
    CHUNK = Stage("CHUNK", _YELLOW, "✂️")
    EMBED = Stage("EMBED", _MAGENTA, "🧮")
    STORE = Stage("STORE", _GREEN, "💾")
    COMPLETE = Stage("COMPLETE", _GREEN, "✅")


class IngestionLogger:
    """Stage-colored wrapper around a standard ``logging.Logger``.

    Usage:
        log = IngestionLogger("IngestionService")
        log.begin_document("handbook.txt")
        with log.timed_step(IngestionStage.CHUNK, "Chunking handbook.txt"):
            chunks = chunker.split("handbook.txt", text)
        log.detail("Stored chunk", index=0, record_id=41)
    """

    def __init__(self, component_name: str):
        self._logger = logging.getLogger(component_name)

    def begin_document(self, document_id: str) -> None:
        title = f"ingest {document_id}"
        self._logger.info(f"{_GRAY}{'─' * 10} {title} {'─' * max(0, 50 - len(title))}{_RESET}")

    def step_start(self, stage: Stage, message: str, **fields: Any) -> None:
        self._logger.info(
            f"{stage.color}{_BOLD}{stage.icon} [{stage.label}]{_RESET} "
            f"{stage.color}{message}{_RESET}{_fields(fields, _GRAY)}"
        )

    def step_complete(self, stage: Stage, message: str, **fields: Any) -> None:
        self._logger.info(
            f"{stage.color}{stage.icon} [{stage.label}]{_RESET} "
            f"{_GREEN}✓ {message}{_RESET}{_fields(fields, _GRAY)}"
        )

    def step_error(self, stage: Stage, message: str, error: Exception | None = None) -> None:
        line = f"{_RED}{_BOLD}❌ [{stage.label}]{_RESET} {_RED}{message}{_RESET}"
        if error is not None:
            line += f" {_DIM}→ {type(error).__name__}: {error}{_RESET}"
        self._logger.error(line)

    def detail(self, message: str, **fields: Any) -> None:
        """Per-chunk detail; DEBUG only."""
        self._logger.debug(f"   {_GRAY}├─ {message}{_RESET}{_fields(fields, _DIM)}")

    def stats(self, **fields: Any) -> None:
        summary = " | ".join(f"{k}: {v}" for k, v in fields.items())
        self._logger.info(f"   {_GRAY}📈 {summary}{_RESET}")

    @contextmanager
    def timed_step(self, stage: Stage, message: str, **fields: Any):
        """Log start and end of a step with its elapsed time; re-raises failures."""
        self.step_start(stage, message, **fields)
        start = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.step_error(
                stage, f"{message} failed after {time.perf_counter() - start:.2f}s", error=exc
            )
            raise
        self.step_complete(stage, f"{message} ({time.perf_counter() - start:.2f}s)", **fields)


def _fields(fields: dict[str, Any], color: str) -> str:
    if not fields:
        return ""
    return f" {color}({' | '.join(f'{k}={v}' for k, v in fields.items())}){_RESET}"
