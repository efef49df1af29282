"""Tests for the observability package: structured logging and stats."""

from __future__ import annotations

import io
import json
import logging
from datetime import datetime

import pytest

from theskyx_mcp.observability import (
    CaptureStats,
    JSONFormatter,
    LogContext,
    StructuredFormatter,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from theskyx_mcp.observability.stats import CaptureStatsCollector, _percentile


@pytest.fixture
def buffer() -> io.StringIO:
    """Package logging at DEBUG into a text buffer."""
    stream = io.StringIO()
    configure_logging(level=logging.DEBUG, stream=stream, force=True)
    return stream


@pytest.fixture
def json_buffer() -> io.StringIO:
    stream = io.StringIO()
    configure_logging(level=logging.DEBUG, json_format=True, stream=stream, force=True)
    return stream


def _records(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestStructuredLogging:
    def test_get_logger_returns_structured_logger(self):
        assert isinstance(get_logger("theskyx_mcp.tests"), StructuredLogger)

    def test_keyword_data_appended(self, buffer):
        get_logger("theskyx_mcp.tests").info(
            "Exposure started", kind="dark", seconds=20.0
        )

        line = buffer.getvalue().strip()
        assert " - INFO - Exposure started | kind=dark seconds=20.0" in line

    def test_plain_message_has_no_separator(self, buffer):
        get_logger("theskyx_mcp.tests").info("Camera connected")
        assert "|" not in buffer.getvalue()

    def test_level_filtering(self):
        stream = io.StringIO()
        configure_logging(level="WARNING", stream=stream, force=True)
        logger = get_logger("theskyx_mcp.tests")

        logger.info("hidden")
        logger.warning("shown")

        assert "hidden" not in stream.getvalue()
        assert "shown" in stream.getvalue()

    def test_configure_is_idempotent_without_force(self, buffer):
        other = io.StringIO()
        configure_logging(stream=other)

        get_logger("theskyx_mcp.tests").info("once")

        assert "once" in buffer.getvalue()
        assert other.getvalue() == ""

    def test_package_logs_do_not_reach_root_logger(self, buffer):
        assert logging.getLogger("theskyx_mcp").propagate is False

    def test_reset_removes_handlers(self, buffer):
        reset_logging()
        assert logging.getLogger("theskyx_mcp").handlers == []


class TestJSONFormat:
    def test_record_shape(self, json_buffer):
        get_logger("theskyx_mcp.tests").warning("Timeout", waited_seconds=602)

        (record,) = _records(json_buffer)
        assert record["level"] == "WARNING"
        assert record["logger"] == "theskyx_mcp.tests"
        assert record["message"] == "Timeout"
        assert record["waited_seconds"] == 602
        assert datetime.fromisoformat(record["timestamp"]).tzinfo is not None

    def test_exception_included(self, json_buffer):
        logger = get_logger("theskyx_mcp.tests")
        try:
            raise RuntimeError("socket closed")
        except RuntimeError:
            logger.exception("Capture failed")

        (record,) = _records(json_buffer)
        assert "RuntimeError: socket closed" in record["exception"]

    def test_non_serializable_values_stringified(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", (), None)
        record.structured_data = {"path": object()}

        assert "object object" in json.loads(JSONFormatter().format(record))["path"]


class TestLogContext:
    def test_context_applies_to_records(self, json_buffer):
        """Verifies LogContext tags every record in scope.

        Arrangement:
        1. JSON logging into a buffer.

        Action:
        Logs inside nested contexts, then once outside.

        Assertion Strategy:
        Validates inner values override outer ones, keyword data
        overrides both, and nothing leaks after exit.

        Testing Principle:
        Every line of one capture can be correlated by operation.
        """
        logger = get_logger("theskyx_mcp.tests")

        with LogContext(operation="capture_dark_frame", binning=1):
            logger.info("outer")
            with LogContext(binning=2):
                logger.info("inner")
                logger.info("explicit", binning=3)
        logger.info("after")

        outer, inner, explicit, after = _records(json_buffer)
        assert (outer["operation"], outer["binning"]) == ("capture_dark_frame", 1)
        assert (inner["operation"], inner["binning"]) == ("capture_dark_frame", 2)
        assert explicit["binning"] == 3
        assert "operation" not in after


class TestFormatterOptions:
    def test_structured_data_can_be_omitted(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", (), None)
        record.structured_data = {"a": 1}

        assert "a=1" not in StructuredFormatter(include_structured=False).format(record)

    @pytest.mark.parametrize(
        ("value", "rendered"),
        [
            (None, "a=null"),
            ("H-alpha filter", 'a="H-alpha filter"'),
            (["red", "green"], 'a=["red", "green"]'),
            (2.5, "a=2.5"),
        ],
    )
    def test_value_rendering(self, value, rendered):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", (), None)
        record.structured_data = {"a": value}

        assert StructuredFormatter().format(record).endswith(f"| {rendered}")


class TestCaptureStats:
    def test_empty_summary(self):
        summary = CaptureStats().get_summary("dark")

        assert summary.total_captures == 0
        assert summary.success_rate == 0.0
        assert summary.last_capture_time is None

    def test_counts_and_durations(self):
        stats = CaptureStats()
        for duration in (100.0, 200.0, 300.0):
            stats.record_capture("dark", duration, True)
        stats.record_capture("dark", 50.0, False, "timeout")
        stats.record_capture("dark", 0.0, False, "timeout")

        summary = stats.get_summary("dark")
        assert summary.total_captures == 5
        assert summary.successful_captures == 3
        assert summary.failed_captures == 2
        assert summary.success_rate == pytest.approx(0.6)
        assert summary.min_duration_ms == 100.0
        assert summary.max_duration_ms == 300.0
        assert summary.avg_duration_ms == 200.0
        assert summary.p95_duration_ms == pytest.approx(290.0)
        assert summary.error_counts == {"timeout": 2}

    def test_kinds_are_independent(self):
        stats = CaptureStats()
        stats.record_capture("bias", 10.0, True)

        assert stats.get_summary("flat").total_captures == 0
        assert set(stats.get_all_summaries()) == {"bias", "flat"}

    def test_reset_one_kind(self):
        stats = CaptureStats()
        stats.record_capture("bias", 10.0, True)
        stats.record_capture("dark", 10.0, True)

        stats.reset("bias")

        assert stats.get_summary("bias").total_captures == 0
        assert stats.get_summary("dark").total_captures == 1

    def test_reset_all(self):
        stats = CaptureStats()
        stats.record_capture("bias", 10.0, True)
        stats.reset()
        assert stats.get_summary("bias").total_captures == 0

    def test_window_bounds_duration_stats(self):
        collector = CaptureStatsCollector("dark", window_size=2)
        for duration in (1000.0, 10.0, 20.0):
            collector.record(duration, True)

        summary = collector.get_summary()
        assert summary.total_captures == 3
        assert summary.max_duration_ms == 20.0

    def test_to_dict_is_json_serializable(self):
        stats = CaptureStats()
        stats.record_capture("flat", 1500.0, True)

        exported = json.loads(json.dumps(stats.to_dict()))

        assert exported["kinds"]["flat"]["successful_captures"] == 1
        assert exported["kinds"]["flat"]["last_capture_time"] is not None
        assert "timestamp" in exported


class TestPercentile:
    def test_interpolates(self):
        assert _percentile([100.0, 150.0, 200.0], 95) == pytest.approx(195.0)

    def test_empty(self):
        assert _percentile([], 50) == 0.0

    def test_single_value(self):
        assert _percentile([42.0], 99) == 42.0

    @pytest.mark.parametrize("p", [-1, 101])
    def test_out_of_range(self, p):
        with pytest.raises(ValueError):
            _percentile([1.0], p)
