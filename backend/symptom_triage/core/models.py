"""
Symptom Triage - Session Data Models

Pydantic models for assessment sessions and their chat messages.
These are the records owned by the session store.
"""

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .types import MessageRole, MessageType, PatientContext, Priority, SessionStatus


def _new_id() -> str:
    return uuid4().hex


class PatientProfile(BaseModel):
    """Patient context captured when the session starts."""

    age: int = Field(ge=0, le=130)
    gender: str = "prefer_not_to_say"
    medical_history: List[str] = Field(default_factory=list)

    def to_context(self) -> PatientContext:
        return PatientContext(
            age=self.age,
            gender=self.gender,
            medical_history=tuple(self.medical_history),
        )


class Session(BaseModel):
    """
    One assessment conversation.

    Lifecycle:
        ACTIVE -> COMPLETED once a triage result has been produced
        ACTIVE -> ABANDONED if discarded without a result
        COMPLETED -> ACTIVE only through an explicit restart
    """

    # Identifiers
    id: str = Field(default_factory=_new_id)
    user_id: str
    chief_complaint: str
    patient: PatientProfile

    status: SessionStatus = SessionStatus.ACTIVE

    # Latest assessment
    risk_score: int = 0
    priority_level: Priority = Priority.NON_URGENT
    ai_analysis: str = ""
    recommendations: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    follow_up_required: bool = False

    # Timestamps
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ChatMessage(BaseModel):
    """A single message in a session. Messages are append-only."""

    id: str = Field(default_factory=_new_id)
    session_id: str
    role: MessageRole
    message_type: MessageType
    content: str
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
