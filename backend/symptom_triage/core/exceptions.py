"""
Symptom Triage - Exception Hierarchy

Structured exceptions for consistent error handling across the system.
All exceptions include error codes for API responses.
"""

from typing import Optional


class SymptomTriageError(Exception):
    """Base exception for all Symptom Triage errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Provider Errors
# =============================================================================

class ProviderError(SymptomTriageError):
    """Error invoking a text-generation provider."""
    code = "PROVIDER_ERROR"
    status_code = 502

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        cause: Optional[BaseException] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.provider = provider
        self.cause = cause


class ProviderUnavailableError(ProviderError):
    """No provider has a configured credential."""
    code = "PROVIDER_UNAVAILABLE"
    status_code = 503


class ProviderCallFailedError(ProviderError):
    """Network failure, timeout, non-2xx status or unexpected response shape."""
    code = "PROVIDER_CALL_FAILED"


# =============================================================================
# Classification Errors
# =============================================================================

class ClassificationError(SymptomTriageError):
    """Error during triage classification."""
    code = "CLASSIFICATION_ERROR"


class ResponseParseError(ClassificationError):
    """Provider reply could not be turned into a triage result."""
    code = "RESPONSE_PARSE_FAILED"


# =============================================================================
# Session Errors
# =============================================================================

class SessionError(SymptomTriageError):
    """Error related to session management."""
    code = "SESSION_ERROR"
    status_code = 400


class SessionNotFoundError(SessionError):
    """Session not found."""
    code = "SESSION_NOT_FOUND"
    status_code = 404


class SessionLimitError(SessionError):
    """Maximum active sessions exceeded."""
    code = "SESSION_LIMIT_EXCEEDED"
    status_code = 429


class InvalidSessionTransitionError(SessionError):
    """Requested operation is not allowed in the session's current status."""
    code = "INVALID_SESSION_TRANSITION"
    status_code = 409


class ClassificationInProgressError(SessionError):
    """The session already has an unresolved classification request."""
    code = "CLASSIFICATION_IN_PROGRESS"
    status_code = 409


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(SymptomTriageError):
    """Input validation error."""
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidMessageError(ValidationError):
    """Invalid message content."""
    code = "INVALID_MESSAGE"
