"""
Symptom Triage - Logging Tests

Tests context binding, credential masking and record formatting.

Run with: pytest tests/test_logging.py -v
"""

import json
import logging

from symptom_triage.core.logging import (
    ContextFilter,
    HumanReadableFormatter,
    LogContext,
    StructuredFormatter,
    correlation_id_var,
    mask_secret,
    mask_sensitive_data,
    mask_session_id,
    session_id_var,
)


def make_record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="symptom_triage.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for name, value in extra.items():
        setattr(record, name, value)
    ContextFilter().filter(record)
    return record


class TestMasking:

    def test_mask_session_id(self):
        assert mask_session_id("0123456789abcdef") == "01234567"
        assert mask_session_id("short") == "short"
        assert mask_session_id(None) is None

    def test_mask_secret(self):
        assert mask_secret("sk-live-abcdef1234") == "***1234"
        assert mask_secret("tiny") == "***"
        assert mask_secret("") == ""

    def test_credential_fields_masked(self):
        masked = mask_sensitive_data({
            "openai_api_key": "sk-live-abcdef1234",
            "headers": {"Authorization": "Bearer abcdefghijkl"},
            "token": 12345,
            "field": "risk_score",
            "raw": 500,
        })

        assert masked["openai_api_key"] == "***1234"
        assert masked["headers"]["Authorization"] == "***ijkl"
        assert masked["token"] == "[REDACTED]"
        assert masked["field"] == "risk_score"
        assert masked["raw"] == 500


class TestLogContext:

    def test_values_bound_and_reset(self):
        with LogContext(correlation_id="req_1", session_id="session-abcdef123"):
            assert correlation_id_var.get() == "req_1"
            with LogContext(correlation_id="req_2"):
                assert correlation_id_var.get() == "req_2"
                assert session_id_var.get() == "session-abcdef123"
            assert correlation_id_var.get() == "req_1"

        assert correlation_id_var.get() is None
        assert session_id_var.get() is None

    def test_filter_stamps_masked_context(self):
        with LogContext(correlation_id="req_1", session_id="0123456789abcdef", provider="openai:gpt"):
            record = make_record()

        assert record.correlation_id == "req_1"
        assert record.session_id == "01234567"
        assert record.provider == "openai:gpt"


class TestFormatters:

    def test_structured_formatter(self):
        with LogContext(correlation_id="req_1"):
            record = make_record(
                "Sanitized risk_score",
                event_type="validation_clamped",
                data={"field": "risk_score", "api_key": "sk-live-abcdef1234"},
            )

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "Sanitized risk_score"
        assert entry["correlation_id"] == "req_1"
        assert entry["event_type"] == "validation_clamped"
        assert entry["data"] == {"field": "risk_score", "api_key": "***1234"}
        assert "session_id" not in entry

    def test_human_readable_formatter(self):
        with LogContext(correlation_id="req_1", provider="ollama:llama3.2:3b"):
            record = make_record("Classifying")

        line = HumanReadableFormatter().format(record)

        assert "INFO" in line
        assert "[correlation_id=req_1, provider=ollama:llama3.2:3b]" in line
        assert line.endswith("| Classifying")
