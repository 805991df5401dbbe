"""
Symptom Triage - Deterministic Keyword Classifier

Rule-based triage used when no provider is configured or a provider call
fails, and as a floor under provider results.

The rules are deliberately simple:
    1. Any EMERGENCY keyword -> emergency
    2. Else any URGENT keyword -> urgent
    3. Else non_urgent

WARNING: Keyword matching has no clinical validity. It exists so that the
service always produces a conservative answer.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from symptom_triage.config import (
    DEFAULT_EMERGENCY_KEYWORDS,
    DEFAULT_URGENT_KEYWORDS,
    split_csv,
)
from symptom_triage.core.types import (
    EMERGENCY_RISK_SCORE,
    NON_URGENT_RISK_SCORE,
    URGENT_RISK_SCORE,
    AlertType,
    MedicalAlert,
    Priority,
    TriageResult,
)

logger = logging.getLogger(__name__)


RED_FLAG_KEYWORDS = (
    "chest pain", "severe headache", "difficulty breathing", "shortness of breath",
    "sudden weakness", "slurred speech", "severe abdominal pain", "high fever",
    "loss of consciousness", "severe bleeding", "severe burn", "poisoning",
    "suicide", "self-harm", "stroke symptoms", "heart attack",
)
RED_FLAG_CONFIDENCE = 95

KEYWORD_SOURCE = "keyword_fallback"


def find_matches(text: str, keywords: Iterable[str]) -> List[str]:
    """Keywords contained in the (already lowercased) text, in keyword order."""
    return [keyword for keyword in keywords if keyword in text]


class KeywordTriageClassifier:
    """
    Deterministic triage from configurable keyword sets.

    Emergency keywords always dominate urgent ones. The same text always
    produces the same result.
    """

    def __init__(
        self,
        emergency_keywords: Optional[Sequence[str]] = None,
        urgent_keywords: Optional[Sequence[str]] = None,
    ):
        """
        Args:
            emergency_keywords: Lowercase phrases forcing emergency
            urgent_keywords: Lowercase phrases forcing at least urgent
        """
        if emergency_keywords is None:
            emergency_keywords = split_csv(DEFAULT_EMERGENCY_KEYWORDS)
        if urgent_keywords is None:
            urgent_keywords = split_csv(DEFAULT_URGENT_KEYWORDS)

        self._emergency_keywords = tuple(k.lower() for k in emergency_keywords)
        self._urgent_keywords = tuple(k.lower() for k in urgent_keywords)

    @property
    def emergency_keywords(self) -> tuple:
        return self._emergency_keywords

    @property
    def urgent_keywords(self) -> tuple:
        return self._urgent_keywords

    def classify(self, symptoms: str) -> TriageResult:
        """Classify symptom text using keyword rules."""
        text = symptoms.lower()

        emergency_matches = find_matches(text, self._emergency_keywords)
        if emergency_matches:
            result = TriageResult(
                priority=Priority.EMERGENCY,
                risk_score=EMERGENCY_RISK_SCORE,
                confidence=min(0.9, 0.5 + 0.2 * len(emergency_matches)),
                recommendations=(
                    "Seek immediate emergency medical care",
                    "Call 911 or go to the nearest emergency room",
                    "Do not delay seeking treatment",
                ),
                red_flags=tuple(emergency_matches),
                explanation=(
                    "Emergency symptoms detected: "
                    f"{', '.join(emergency_matches)}."
                ),
                next_steps=("Call 911 or go to the nearest emergency room now",),
                source=KEYWORD_SOURCE,
                degraded=True,
            )
        else:
            urgent_matches = find_matches(text, self._urgent_keywords)
            if urgent_matches:
                result = TriageResult(
                    priority=Priority.URGENT,
                    risk_score=URGENT_RISK_SCORE,
                    confidence=min(0.85, 0.75 + 0.05 * (len(urgent_matches) - 1)),
                    recommendations=(
                        "Seek medical care within 24 hours",
                        "Monitor symptoms closely",
                        "Contact your healthcare provider",
                    ),
                    red_flags=tuple(urgent_matches),
                    explanation=(
                        "Symptoms that warrant prompt attention detected: "
                        f"{', '.join(urgent_matches)}."
                    ),
                    next_steps=("Schedule a visit with a healthcare provider within 24 hours",),
                    source=KEYWORD_SOURCE,
                    degraded=True,
                )
            else:
                result = TriageResult(
                    priority=Priority.NON_URGENT,
                    risk_score=NON_URGENT_RISK_SCORE,
                    confidence=0.75,
                    recommendations=(
                        "Monitor symptoms",
                        "Rest and hydrate",
                        "Contact healthcare provider if symptoms persist",
                    ),
                    red_flags=(),
                    explanation="No emergency or urgent symptoms detected.",
                    next_steps=("Monitor symptoms and consult a healthcare provider",),
                    source=KEYWORD_SOURCE,
                    degraded=True,
                )

        logger.debug(
            "KeywordTriage: priority=%s risk=%d matches=%d",
            result.priority.value,
            result.risk_score,
            len(result.red_flags),
        )
        return result


def detect_red_flags(text: str) -> List[MedicalAlert]:
    """One emergency alert per red-flag keyword found in text."""
    lowered = text.lower()
    return [
        MedicalAlert(
            type=AlertType.EMERGENCY,
            message=f"Critical symptom detected: {keyword}",
            action_required="Seek immediate emergency medical attention",
            confidence=RED_FLAG_CONFIDENCE,
        )
        for keyword in find_matches(lowered, RED_FLAG_KEYWORDS)
    ]
