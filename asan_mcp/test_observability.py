"""Tests for observability module."""

from __future__ import annotations

import json
import logging
import os
import sys
import unittest

from asan_mcp.config import McpObservabilityConfig
from asan_mcp.observability import (
    JsonLogFormatter,
    MetricsCollector,
    ObservabilityContext,
    generate_correlation_id,
    setup_logging,
)


def _record(msg: str = "Test", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestCorrelationId(unittest.TestCase):
    def test_generates_8_char_id(self):
        self.assertEqual(len(generate_correlation_id()), 8)

    def test_generates_unique_ids(self):
        ids = {generate_correlation_id() for _ in range(100)}
        self.assertEqual(len(ids), 100, "Should generate unique IDs")


class TestJsonLogFormatter(unittest.TestCase):
    """Test JSON log formatting."""

    def test_basic_format(self):
        data = json.loads(JsonLogFormatter().format(_record("Hello world")))

        self.assertEqual(data["level"], "info")
        self.assertEqual(data["logger"], "test")
        self.assertEqual(data["msg"], "Hello world")
        self.assertTrue(data["ts"].endswith("Z"))

    def test_includes_correlation_id(self):
        record = _record()
        record.correlation_id = "abc12345"
        data = json.loads(JsonLogFormatter(include_correlation_id=True).format(record))
        self.assertEqual(data["cid"], "abc12345")

    def test_correlation_id_can_be_omitted(self):
        record = _record()
        record.correlation_id = "abc12345"
        data = json.loads(JsonLogFormatter(include_correlation_id=False).format(record))
        self.assertNotIn("cid", data)

    def test_includes_session_id(self):
        os.environ["ASAN_MCP_SESSION_ID"] = "sess_123"
        try:
            data = json.loads(JsonLogFormatter().format(_record()))
            self.assertEqual(data["session_id"], "sess_123")
        finally:
            del os.environ["ASAN_MCP_SESSION_ID"]

    def test_includes_extra_fields(self):
        record = _record()
        record.tool = "security_scan"
        record.latency_ms = 42.5
        record.status = "error"
        record.error = "Scan root does not exist: /x"

        data = json.loads(JsonLogFormatter().format(record))

        self.assertEqual(data["tool"], "security_scan")
        self.assertEqual(data["latency_ms"], 42.5)
        self.assertEqual(data["status"], "error")
        self.assertEqual(data["error"], "Scan root does not exist: /x")

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())
        data = json.loads(JsonLogFormatter().format(record))
        self.assertIn("RuntimeError: boom", data["exc"])


class TestMetricsCollector(unittest.TestCase):
    """Test in-memory metrics collection."""

    def setUp(self):
        self.collector = MetricsCollector()

    def test_records_call(self):
        self.collector.record_call("query", latency_ms=10.0, success=True)
        stats = self.collector.get_stats()

        self.assertEqual(stats["total_requests"], 1)
        self.assertEqual(stats["total_errors"], 0)
        self.assertEqual(stats["tools"]["query"]["calls"], 1)

    def test_tracks_errors(self):
        self.collector.record_call("query", latency_ms=5.0, success=True)
        self.collector.record_call("query", latency_ms=10.0, success=False)

        stats = self.collector.get_stats()
        self.assertEqual(stats["total_errors"], 1)
        self.assertEqual(stats["error_rate"], 0.5)
        self.assertEqual(stats["tools"]["query"]["errors"], 1)

    def test_tracks_latency_stats(self):
        for ms in (5.0, 15.0, 10.0):
            self.collector.record_call("security_scan", latency_ms=ms, success=True)

        tool_stats = self.collector.get_stats()["tools"]["security_scan"]

        self.assertEqual(tool_stats["min_ms"], 5.0)
        self.assertEqual(tool_stats["max_ms"], 15.0)
        self.assertEqual(tool_stats["avg_ms"], 10.0)

    def test_reset(self):
        self.collector.record_call("query", latency_ms=10.0, success=True)
        self.collector.reset()

        stats = self.collector.get_stats()
        self.assertEqual(stats["total_requests"], 0)
        self.assertEqual(len(stats["tools"]), 0)


class TestObservabilityContext(unittest.TestCase):
    def test_generates_correlation_id(self):
        obs = ObservabilityContext(McpObservabilityConfig(enabled=True))
        self.assertEqual(len(obs.correlation_id()), 8)

    def test_records_to_metrics(self):
        obs = ObservabilityContext(McpObservabilityConfig(enabled=True))
        obs.record("abc123", "query", latency_ms=10.0, success=True)
        self.assertEqual(obs.get_stats()["total_requests"], 1)

    def test_record_logs_correlation_id(self):
        obs = ObservabilityContext(McpObservabilityConfig(enabled=True))
        with self.assertLogs("asan-mcp.observability", level="DEBUG") as captured:
            obs.record("abc12345", "security_scan", latency_ms=3.4, success=False)

        record = captured.records[0]
        self.assertEqual(record.correlation_id, "abc12345")
        self.assertEqual(record.tool, "security_scan")
        self.assertIn("error in 3.4ms", record.getMessage())

    def test_disabled_skips_recording(self):
        obs = ObservabilityContext(McpObservabilityConfig(enabled=False))
        obs.record("abc123", "query", latency_ms=10.0, success=True)
        self.assertEqual(obs.get_stats()["total_requests"], 0)


class TestSetupLogging(unittest.TestCase):
    def test_json_format(self):
        config = McpObservabilityConfig(enabled=True, log_format="json", log_level="info")
        logger = setup_logging(config, "test-json")

        self.assertEqual(len(logger.handlers), 1)
        self.assertIsInstance(logger.handlers[0].formatter, JsonLogFormatter)
        self.assertFalse(logger.propagate)

    def test_text_format(self):
        config = McpObservabilityConfig(enabled=True, log_format="text", log_level="debug")
        logger = setup_logging(config, "test-text")

        self.assertEqual(len(logger.handlers), 1)
        self.assertNotIsInstance(logger.handlers[0].formatter, JsonLogFormatter)
        self.assertEqual(logger.level, logging.DEBUG)

    def test_repeated_setup_does_not_stack_handlers(self):
        config = McpObservabilityConfig(enabled=True)
        setup_logging(config, "test-repeat")
        logger = setup_logging(config, "test-repeat")
        self.assertEqual(len(logger.handlers), 1)


if __name__ == "__main__":
    unittest.main()
