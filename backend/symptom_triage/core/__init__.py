"""
Symptom Triage - Core Package

Contains the domain layer:
- types: Domain enums, TriageResult and related value objects
- models: Session and chat message records
- session_store: Session repository
- orchestrator: Session state machine (import from its module)
"""

from .types import (
    Priority,
    SessionStatus,
    MessageRole,
    MessageType,
    PatientContext,
    TriageResult,
    MedicalAlert,
)
from .models import PatientProfile, Session, ChatMessage
from .session_store import (
    SessionStore,
    InMemorySessionStore,
    create_session_store,
)

__all__ = [
    # Types
    "Priority",
    "SessionStatus",
    "MessageRole",
    "MessageType",
    "PatientContext",
    "TriageResult",
    "MedicalAlert",
    # Sessions
    "PatientProfile",
    "Session",
    "ChatMessage",
    "SessionStore",
    "InMemorySessionStore",
    "create_session_store",
]
