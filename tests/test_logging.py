"""
Tests for structured logging.
"""

from __future__ import annotations

import logging
from pathlib import Path

import orjson

from pollard.logging import (
    ContextLogger,
    current_context,
    get_logger,
    log_context,
    setup_logging,
    short_run_id,
)


class TestLogContext:
    """Test scoped context fields."""

    def test_nested_blocks_merge_and_restore(self) -> None:
        with log_context(run_id="run_1", project="proj"):
            with log_context(hunter="h1"):
                assert current_context() == {"run_id": "run_1", "project": "proj", "hunter": "h1"}
            assert current_context() == {"run_id": "run_1", "project": "proj"}
        assert current_context() == {}

    def test_short_run_id(self) -> None:
        assert short_run_id("run_0190a1b2-c3d4-7e5f-8a9b-0c1d2e3f4a5b") == "2e3f4a5b"
        assert short_run_id("plainid") == "plainid"


class TestContextLogger:
    """Test field handling."""

    def test_fields_and_context_on_record(self) -> None:
        records: list[logging.LogRecord] = []
        handler = logging.Handler()
        handler.emit = records.append  # type: ignore[method-assign]
        base = logging.getLogger("pollard.test_fields")
        base.addHandler(handler)
        base.setLevel(logging.INFO)
        try:
            with log_context(hunter="h1"):
                ContextLogger(base).info("Hunter complete", insights=4)
        finally:
            base.removeHandler(handler)

        (record,) = records
        assert record.getMessage() == "Hunter complete"
        assert record.fields == {"hunter": "h1", "insights": 4}

    def test_get_logger_prefixes_name(self) -> None:
        assert get_logger("tests.something").logger.name == "pollard.tests.something"
        assert get_logger("pollard.research").logger.name == "pollard.research"


class TestSetupLogging:
    """Test the JSON log file."""

    def test_json_file_lines(self, temp_dir: Path) -> None:
        log_file = temp_dir / "logs" / "pollard.log"
        setup_logging("INFO", log_file=log_file, console_output=False)
        try:
            with log_context(run_id="run_1"):
                get_logger("pollard.test_json").debug("Dropped stale update", hunter="h2")
            for handler in logging.getLogger("pollard").handlers:
                handler.flush()

            (line,) = log_file.read_bytes().splitlines()
            payload = orjson.loads(line)
            assert payload["msg"] == "Dropped stale update"
            assert payload["level"] == "DEBUG"
            assert payload["run_id"] == "run_1"
            assert payload["hunter"] == "h2"
        finally:
            setup_logging()
