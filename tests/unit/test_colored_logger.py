"""Unit tests for the colored ingestion logger."""

import logging

import pytest

from knowledge_engine.infrastructure.logging.colored_logger import IngestionLogger, IngestionStage


def test_timed_step_logs_start_and_completion(caplog):
    log = IngestionLogger("tests.ingestion")

    with caplog.at_level(logging.INFO, logger="tests.ingestion"):
        with log.timed_step(IngestionStage.CHUNK, "Chunking handbook.txt", chunks=3):
            pass

    messages = [record.getMessage() for record in caplog.records]
    assert len(messages) == 2
    assert "[CHUNK]" in messages[0] and "chunks=3" in messages[0]
    assert "✓ Chunking handbook.txt" in messages[1]


def test_timed_step_logs_error_and_reraises(caplog):
    log = IngestionLogger("tests.ingestion")

    with caplog.at_level(logging.INFO, logger="tests.ingestion"):
        with pytest.raises(RuntimeError):
            with log.timed_step(IngestionStage.EMBED, "Embedding chunk(s) 0..3"):
                raise RuntimeError("provider down")

    error = caplog.records[-1]
    assert error.levelno == logging.ERROR
    assert "[EMBED]" in error.getMessage()
    assert "RuntimeError: provider down" in error.getMessage()


def test_detail_is_debug_only(caplog):
    log = IngestionLogger("tests.ingestion")

    with caplog.at_level(logging.INFO, logger="tests.ingestion"):
        log.detail("Stored chunk", index=0, record_id=41)
    assert caplog.records == []

    with caplog.at_level(logging.DEBUG, logger="tests.ingestion"):
        log.begin_document("handbook.txt")
        log.detail("Stored chunk", index=0, record_id=41)
    assert "ingest handbook.txt" in caplog.records[0].getMessage()
    assert "record_id=41" in caplog.records[1].getMessage()
