"""
Symptom Triage - Core Domain Types

Internal type definitions for the triage classifier. These are domain objects
used within the core and service layers, independent of API serialization.

Design Notes:
- TriageResult is frozen and holds tuples, so a result handed to a caller
  can never be mutated afterwards. Escalation rules build new instances
  with dataclasses.replace().
- Enums match the API schema enums for consistency but are defined here
  to avoid circular imports and maintain domain independence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple


# =============================================================================
# Enums
# =============================================================================

class Priority(str, Enum):
    """Triage priority, ordered from least to most severe."""
    NON_URGENT = "non_urgent"
    URGENT = "urgent"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def max(cls, first: "Priority", second: "Priority") -> "Priority":
        """Return the more severe of two priorities."""
        return first if first.rank >= second.rank else second


_PRIORITY_RANK = {
    Priority.NON_URGENT: 0,
    Priority.URGENT: 1,
    Priority.EMERGENCY: 2,
}


class SessionStatus(str, Enum):
    """Lifecycle status of an assessment session."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageType(str, Enum):
    QUESTION = "question"
    ANSWER = "answer"
    ASSESSMENT = "assessment"
    RECOMMENDATION = "recommendation"
    ALERT = "alert"


class AlertType(str, Enum):
    EMERGENCY = "emergency"
    URGENT = "urgent"
    WARNING = "warning"


# =============================================================================
# Canonical Scores
# =============================================================================

EMERGENCY_RISK_SCORE = 85
URGENT_RISK_SCORE = 65
NON_URGENT_RISK_SCORE = 25
FAILSAFE_RISK_SCORE = 75

DEFAULT_RISK_SCORE = 50
DEFAULT_CONFIDENCE = 0.7

DEFAULT_RECOMMENDATION = "Consult a healthcare provider"
DEFAULT_NEXT_STEP = "Monitor symptoms and consult a healthcare provider"
DEFAULT_EXPLANATION = "Analysis completed based on reported symptoms."
MEDICAL_DISCLAIMER = (
    "This analysis is for informational purposes only and should not "
    "replace professional medical advice."
)
UNCERTAINTY_RECOMMENDATION = (
    "Consult a healthcare provider due to uncertainty in this assessment"
)


# =============================================================================
# Patient Context
# =============================================================================

@dataclass(frozen=True)
class PatientContext:
    """Patient details embedded in every classification prompt."""
    age: int
    gender: str
    medical_history: Tuple[str, ...] = ()


# =============================================================================
# Triage Result (Core Domain Object)
# =============================================================================

@dataclass(frozen=True)
class TriageResult:
    """
    Complete triage assessment result.

    Attributes:
        priority: Triage priority
        risk_score: Integer risk score (0-100)
        confidence: Confidence in the assessment (0-1)
        recommendations: Ordered recommendations for the patient
        red_flags: Concerning symptoms that drove the priority
        explanation: Human-readable rationale
        next_steps: Immediate actions to take
        follow_up_questions: Questions to refine the assessment
        medical_disclaimer: Disclaimer shown alongside the result
        source: Provider id, "keyword_fallback" or "failsafe"
        degraded: True unless a provider reply was parsed as JSON
    """
    priority: Priority
    risk_score: int
    confidence: float
    recommendations: Tuple[str, ...]
    red_flags: Tuple[str, ...]
    explanation: str
    next_steps: Tuple[str, ...]
    follow_up_questions: Tuple[str, ...] = ()
    medical_disclaimer: str = MEDICAL_DISCLAIMER
    source: str = "keyword_fallback"
    degraded: bool = False

    def __post_init__(self):
        """Validate constraints."""
        if not 0 <= self.risk_score <= 100:
            raise ValueError(f"risk_score must be 0-100, got {self.risk_score}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be 0-1, got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the provider JSON shape (plus bookkeeping fields)."""
        return {
            "priority": self.priority.value,
            "risk_score": self.risk_score,
            "confidence": self.confidence,
            "recommendations": list(self.recommendations),
            "red_flags": list(self.red_flags),
            "explanation": self.explanation,
            "next_steps": list(self.next_steps),
            "follow_up_questions": list(self.follow_up_questions),
            "medical_disclaimer": self.medical_disclaimer,
            "source": self.source,
            "degraded": self.degraded,
        }

    @classmethod
    def create_failsafe(cls, reason: str = "Assessment could not be completed") -> "TriageResult":
        """
        Factory for the conservative result used when classification fails.

        Never under-triages: the patient is always told to seek care.
        """
        return cls(
            priority=Priority.URGENT,
            risk_score=FAILSAFE_RISK_SCORE,
            confidence=0.0,
            recommendations=("Please consult a healthcare provider promptly",),
            red_flags=("Unable to complete symptom analysis",),
            explanation=(
                f"{reason}. Confidence in this result is degraded, so seeking "
                "medical attention is recommended."
            ),
            next_steps=("Contact your doctor or visit an urgent care center",),
            source="failsafe",
            degraded=True,
        )


# =============================================================================
# Medical Alerts
# =============================================================================

@dataclass(frozen=True)
class MedicalAlert:
    """A red-flag alert raised for a single detected keyword."""
    type: AlertType
    message: str
    action_required: str
    confidence: int  # 0-100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "action_required": self.action_required,
            "confidence": self.confidence,
        }


# =============================================================================
# Classification Request
# =============================================================================

@dataclass
class ClassificationRequest:
    """Everything the classifier needs for one assessment."""
    symptoms: str
    patient: PatientContext
    conversation_history: List[str] = field(default_factory=list)
