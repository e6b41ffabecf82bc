"""Tests for structured logging helpers."""

import json
import logging

from src.shared.infrastructure.logging import (
    CustomJsonFormatter,
    get_context_logger,
    log_latency,
)


def format_record(formatter, **extra):
    record = logging.LogRecord("escalation", logging.INFO, __file__, 1, "Complaint escalated", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


class TestCustomJsonFormatter:
    def test_service_fields(self):
        formatter = CustomJsonFormatter(service="complaint-escalation", environment="staging")
        payload = format_record(formatter, complaint_id=42, sweep_id="abc123")

        assert payload["message"] == "Complaint escalated"
        assert payload["service"] == "complaint-escalation"
        assert payload["environment"] == "staging"
        assert payload["complaint_id"] == 42
        assert payload["sweep_id"] == "abc123"
        assert "timestamp" in payload

    def test_secrets_redacted(self):
        formatter = CustomJsonFormatter()
        payload = format_record(
            formatter,
            slack_webhook_url="https://hooks.slack.com/services/T/B/X",
            access_token="xoxb-1",
            level=2,
        )

        assert payload["slack_webhook_url"] == "***REDACTED***"
        assert payload["access_token"] == "***REDACTED***"
        assert payload["level"] == 2


class TestContextLogger:
    def test_context_merged_with_call_extra(self, caplog):
        log = get_context_logger("tests.context", sweep_id="s-1")
        with caplog.at_level(logging.INFO, logger="tests.context"):
            log.info("Escalation sweep started", extra={"candidates": 3})

        record = caplog.records[-1]
        assert record.sweep_id == "s-1"
        assert record.candidates == 3

    def test_log_latency(self, caplog):
        log = logging.getLogger("tests.latency")
        with caplog.at_level(logging.INFO, logger="tests.latency"):
            with log_latency(log, "escalation_sweep", sweep_id="s-2"):
                pass

        record = caplog.records[-1]
        assert record.operation == "escalation_sweep"
        assert record.latency_ms >= 0
        assert record.sweep_id == "s-2"
