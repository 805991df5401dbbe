"""
Symptom Triage - API Schemas

Pydantic models for request/response validation.
These define the contract between the chat frontend and the backend.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ===========================================
# Enums
# ===========================================

class PriorityLevel(str, Enum):
    """Triage priority."""
    EMERGENCY = "emergency"
    URGENT = "urgent"
    NON_URGENT = "non_urgent"


class SessionStatus(str, Enum):
    """Lifecycle status of an assessment session."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


# ===========================================
# Patient Context
# ===========================================

class PatientInfo(BaseModel):
    """Patient details used to build the classification prompt."""

    age: int = Field(ge=0, le=130, description="Age in years")
    gender: str = Field(default="prefer_not_to_say", max_length=50)
    medical_history: List[str] = Field(
        default_factory=list,
        description="Known conditions, e.g. ['asthma', 'hypertension']",
    )


# ===========================================
# Triage Schemas
# ===========================================

class TriageRequest(BaseModel):
    """Stateless classification request."""

    symptoms: str = Field(
        description="Free-text symptom description",
        min_length=1,
        max_length=5000,
    )
    patient: PatientInfo
    conversation_history: List[str] = Field(
        default_factory=list,
        description="Prior conversation turns, oldest first",
    )


class TriageResultSchema(BaseModel):
    """
    A complete triage assessment.

    Always well-formed: degraded results still carry a priority and advice.
    """

    priority: PriorityLevel
    risk_score: int = Field(ge=0, le=100, description="0 (low) to 100 (critical)")
    confidence: float = Field(ge=0.0, le=1.0)
    recommendations: List[str]
    red_flags: List[str]
    explanation: str
    next_steps: List[str]
    follow_up_questions: List[str] = Field(default_factory=list)
    medical_disclaimer: str
    source: str = Field(description="Provider id, keyword_fallback or failsafe")
    degraded: bool = Field(
        description="True unless the result came from a parsed provider JSON reply"
    )


class MedicalAlertSchema(BaseModel):
    """Red-flag alert for a single detected symptom."""

    type: str = Field(description="emergency | urgent | warning")
    message: str
    action_required: str
    confidence: int = Field(ge=0, le=100)


class FollowUpRequest(BaseModel):
    symptoms: str = Field(min_length=1, max_length=5000)
    context: List[str] = Field(default_factory=list)


class FollowUpResponse(BaseModel):
    questions: List[str]


class RedFlagRequest(BaseModel):
    text: str = Field(min_length=1, max_length=5000)


class RedFlagResponse(BaseModel):
    alerts: List[MedicalAlertSchema]


# ===========================================
# Session Schemas
# ===========================================

class SessionCreateRequest(BaseModel):
    """Start an assessment with the first message."""

    user_id: str = Field(min_length=1, max_length=128)
    message: str = Field(min_length=1, max_length=5000)
    patient: PatientInfo


class MessageCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class SessionSchema(BaseModel):
    """Current state of a session."""

    id: str
    user_id: str
    chief_complaint: str
    status: SessionStatus
    risk_score: int = Field(ge=0, le=100)
    priority_level: PriorityLevel
    ai_analysis: str
    recommendations: List[str]
    red_flags: List[str]
    follow_up_required: bool
    start_time: datetime
    end_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ChatMessageSchema(BaseModel):
    id: str
    session_id: str
    role: str = Field(description="user | assistant | system")
    message_type: str = Field(description="question | answer | assessment | recommendation | alert")
    content: str
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    timestamp: datetime


class AssessmentResponse(BaseModel):
    """Result of one classification cycle on a session."""

    session: SessionSchema
    result: TriageResultSchema
    alerts: List[MedicalAlertSchema] = Field(default_factory=list)
    messages: List[ChatMessageSchema] = Field(
        default_factory=list,
        description="Messages appended during this cycle",
    )


class SessionListResponse(BaseModel):
    sessions: List[SessionSchema]
    total: int


class MessageListResponse(BaseModel):
    messages: List[ChatMessageSchema]
    total: int


# ===========================================
# Health / Error Schemas
# ===========================================

class HealthResponse(BaseModel):
    """System health status."""

    status: str = Field(description="Overall status: healthy | degraded")
    components: Dict[str, str] = Field(description="Status of individual components")
    version: str = Field(default="0.1.0")


class ErrorResponse(BaseModel):
    """Body of every domain error response."""

    error: str = Field(description="Machine-readable error code")
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
