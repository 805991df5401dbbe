"""
Symptom Triage - Structured Logging

Every record is stamped with the request context (correlation id, masked
session id, provider id) by ContextFilter, then rendered as JSON lines in
production or as a single readable line in development.

Privacy Notes:
    - Session ids are truncated to 8 characters
    - Credentials in structured data are masked to their last 4 characters
    - Symptom text is never passed to the logger (see anonymize_logs)
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# Request Context
# =============================================================================

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
provider_var: ContextVar[Optional[str]] = ContextVar("provider", default=None)

_CONTEXT_VARS: Dict[str, ContextVar] = {
    "correlation_id": correlation_id_var,
    "session_id": session_id_var,
    "provider": provider_var,
}


# =============================================================================
# Masking
# =============================================================================

CREDENTIAL_FIELDS = frozenset({
    "api_key", "apikey", "x-api-key", "x-goog-api-key", "key",
    "authorization", "token", "secret", "password",
})
CREDENTIAL_SUFFIXES = ("_api_key", "_key", "_token", "_secret", "_password")


def mask_session_id(sid: Optional[str]) -> Optional[str]:
    """Mask session ID to first 8 characters."""
    if not sid:
        return None
    return sid[:8] if len(sid) > 8 else sid


def mask_secret(value: Optional[str]) -> str:
    """Mask a credential, keeping only the last 4 characters."""
    if not value:
        return ""
    return f"***{value[-4:]}" if len(value) > 8 else "***"


def _is_credential(field_name: Any) -> bool:
    name = str(field_name).lower()
    return name in CREDENTIAL_FIELDS or name.endswith(CREDENTIAL_SUFFIXES)


def mask_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a structured payload with credential fields masked (recursive)."""
    masked: Dict[str, Any] = {}
    for name, value in data.items():
        if _is_credential(name):
            masked[name] = mask_secret(value) if isinstance(value, str) else "[REDACTED]"
        elif isinstance(value, dict):
            masked[name] = mask_sensitive_data(value)
        else:
            masked[name] = value
    return masked


# =============================================================================
# Filter and Formatters
# =============================================================================

class ContextFilter(logging.Filter):
    """Copy the current request context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        record.session_id = mask_session_id(session_id_var.get())
        record.provider = provider_var.get()
        return True


def _context_of(record: logging.LogRecord) -> List[Tuple[str, str]]:
    pairs = []
    for name in _CONTEXT_VARS:
        value = getattr(record, name, None)
        if value:
            pairs.append((name, value))
    return pairs


def _data_of(record: logging.LogRecord) -> Optional[Dict[str, Any]]:
    data = getattr(record, "data", None)
    if isinstance(data, dict) and data:
        return mask_sensitive_data(data)
    return None


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Example:
        {"timestamp": "2024-11-30T00:00:00.000Z", "level": "INFO",
         "logger": "symptom_triage.services.response_parser",
         "message": "Sanitized risk_score", "correlation_id": "req_abc123",
         "session_id": "3f2a9c1d", "provider": "openai:gpt-3.5-turbo",
         "event_type": "validation_clamped", "data": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context_of(record))

        event_type = getattr(record, "event_type", None)
        if event_type:
            entry["event_type"] = event_type

        data = _data_of(record)
        if data:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """`time | LEVEL | logger [context] | message {data}` for development."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
        context = ", ".join(f"{name}={value}" for name, value in _context_of(record))
        context = f" [{context}]" if context else ""

        line = f"{timestamp} | {record.levelname:<8} | {record.name}{context} | {record.getMessage()}"

        data = _data_of(record)
        if data:
            line += f" {json.dumps(data, default=str)}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Setup
# =============================================================================

def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines (production) instead of readable lines
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.addFilter(ContextFilter())
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Provider HTTP traffic is summarized by the adapters themselves
    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def log_event(
    logger: logging.Logger,
    level: int,
    message: str,
    event_type: str,
    data: Optional[dict] = None,
) -> None:
    """Emit a record carrying an event type and structured data."""
    extra: Dict[str, Any] = {"event_type": event_type}
    if data:
        extra["data"] = data
    logger.log(level, message, extra=extra)


class LogContext:
    """
    Bind request context for the duration of a block.

    Usage:
        with LogContext(correlation_id="req_abc123", session_id=session.id):
            logger.info("Classifying")

    Unset (None) values leave the surrounding context untouched.
    """

    def __init__(
        self,
        correlation_id: Optional[str] = None,
        session_id: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        self._values = {
            "correlation_id": correlation_id,
            "session_id": session_id,
            "provider": provider,
        }
        self._tokens: List[tuple] = []

    def __enter__(self) -> "LogContext":
        for name, value in self._values.items():
            if value:
                var = _CONTEXT_VARS[name]
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        return False
