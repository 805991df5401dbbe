"""
Symptom Triage - Triage Classifier

Single entry point for symptom classification. Wraps an optional injected
text-generation provider and the deterministic keyword classifier.

Flow per request:
    1. PROVIDER: build the prompt, make one provider call, parse + sanitize
    2. FLOOR: a provider result never ranks below the keyword result
    3. FALLBACK: no provider, provider failure or parse failure -> keywords
    4. OVERRIDE: low-confidence, non-emergency results are escalated
    5. FAILSAFE: anything unexpected -> conservative urgent result

The classifier holds no cross-request state and never raises to its caller.

Safety Notes:
    - Emergency keywords always dominate (never under-triage)
    - Degraded results always tell the patient to seek care
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import replace
from typing import List, Optional, Sequence

from symptom_triage.config import Settings
from symptom_triage.core.exceptions import ProviderError, ProviderUnavailableError
from symptom_triage.core.logging import LogContext
from symptom_triage.core.types import (
    EMERGENCY_RISK_SCORE,
    UNCERTAINTY_RECOMMENDATION,
    URGENT_RISK_SCORE,
    ClassificationRequest,
    MedicalAlert,
    PatientContext,
    Priority,
    TriageResult,
)
from symptom_triage.services.keyword_classifier import (
    KEYWORD_SOURCE,
    KeywordTriageClassifier,
    detect_red_flags,
)
from symptom_triage.services.prompts import build_follow_up_prompt, build_triage_prompt
from symptom_triage.services.providers import TextGenerationProvider, select_provider
from symptom_triage.services.response_parser import parse_provider_response

logger = logging.getLogger(__name__)


FALLBACK_FOLLOW_UP_QUESTIONS = (
    "How long have you been experiencing these symptoms?",
    "Have you had similar symptoms before?",
    "Are you currently taking any medications?",
    "Have you noticed any triggers that make symptoms worse?",
    "Are there any other symptoms you're experiencing?",
)
MAX_FOLLOW_UP_QUESTIONS = 5

HEALTH_CHECK_PROMPT = 'Hello, this is a health check. Please respond with "OK".'

# Leading "1.", "2)", "-", "*" or bullet characters on a provider line
_LIST_MARKER = re.compile(r"^\s*(?:\d+\s*[.)]|[-*•])\s*")


# =============================================================================
# Result Adjustments
# =============================================================================

def apply_keyword_floor(result: TriageResult, floor: TriageResult) -> TriageResult:
    """
    Raise a provider result to at least the keyword classifier's priority.

    Emergency keywords force emergency (risk >= 85) and their matched terms
    are merged into red_flags. Urgent keywords force at least urgent.
    """
    if floor.priority == Priority.EMERGENCY:
        known = {flag.lower() for flag in result.red_flags}
        extra = tuple(flag for flag in floor.red_flags if flag.lower() not in known)
        return replace(
            result,
            priority=Priority.EMERGENCY,
            risk_score=max(result.risk_score, EMERGENCY_RISK_SCORE),
            red_flags=result.red_flags + extra,
        )

    if floor.priority == Priority.URGENT and result.priority == Priority.NON_URGENT:
        return replace(
            result,
            priority=Priority.URGENT,
            risk_score=max(result.risk_score, URGENT_RISK_SCORE),
        )

    return result


def apply_safety_override(result: TriageResult, threshold: float) -> TriageResult:
    """
    Escalate a low-confidence, non-emergency result.

    Priority becomes at least urgent, risk at least the urgent score, and the
    uncertainty recommendation is placed first (exactly once).
    """
    if result.confidence >= threshold or result.priority == Priority.EMERGENCY:
        return result

    recommendations = (UNCERTAINTY_RECOMMENDATION,) + tuple(
        r for r in result.recommendations if r != UNCERTAINTY_RECOMMENDATION
    )

    escalated = replace(
        result,
        priority=Priority.max(result.priority, Priority.URGENT),
        risk_score=max(result.risk_score, URGENT_RISK_SCORE),
        recommendations=recommendations,
    )

    if escalated.priority != result.priority:
        logger.info(
            "Escalated low-confidence result: %s -> %s (confidence=%.2f)",
            result.priority.value,
            escalated.priority.value,
            result.confidence,
        )
    return escalated


def strip_list_marker(line: str) -> str:
    return _LIST_MARKER.sub("", line).strip()


# =============================================================================
# Classifier
# =============================================================================

class SymptomTriageClassifier:
    """
    Provider-backed classifier with deterministic fallback.

    Attributes:
        provider: Injected text-generation provider, or None
        settings: Application settings (threshold, privacy flags)
        keyword_classifier: Deterministic fallback and floor
    """

    def __init__(
        self,
        provider: Optional[TextGenerationProvider],
        settings: Settings,
        keyword_classifier: Optional[KeywordTriageClassifier] = None,
    ):
        self._provider = provider
        self._settings = settings
        self._keyword_classifier = keyword_classifier or KeywordTriageClassifier(
            settings.emergency_keyword_list,
            settings.urgent_keyword_list,
        )
        self._threshold = settings.confidence_escalation_threshold

        logger.info(
            "SymptomTriageClassifier initialized: provider=%s, threshold=%.2f",
            provider.provider_id if provider else "none",
            self._threshold,
        )

    @property
    def classifier_id(self) -> str:
        """Provider id, or the keyword fallback id when no provider is set."""
        return self._provider.provider_id if self._provider else KEYWORD_SOURCE

    @property
    def has_provider(self) -> bool:
        return self._provider is not None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def classify(
        self,
        symptoms: str,
        age: int,
        gender: str,
        medical_history: Optional[Sequence[str]] = None,
        conversation_history: Optional[Sequence[str]] = None,
        session_id: Optional[str] = None,
    ) -> TriageResult:
        """
        Classify free-text symptoms.

        Args:
            symptoms: Patient's symptom description
            age: Patient age in years
            gender: Patient gender
            medical_history: Known conditions
            conversation_history: Prior conversation turns, oldest first
            session_id: Optional session id for log context

        Returns:
            A valid TriageResult. Never raises.
        """
        request = ClassificationRequest(
            symptoms=symptoms,
            patient=PatientContext(
                age=age,
                gender=gender,
                medical_history=tuple(medical_history or ()),
            ),
            conversation_history=list(conversation_history or ()),
        )
        return await self.classify_request(request, session_id=session_id)

    async def classify_request(
        self,
        request: ClassificationRequest,
        session_id: Optional[str] = None,
    ) -> TriageResult:
        """Classify a prepared request. Never raises."""
        request_id = f"req_{uuid.uuid4().hex[:12]}"

        with LogContext(
            correlation_id=request_id,
            session_id=session_id,
            provider=self.classifier_id,
        ):
            start_time = time.time()
            self._log_input(request)

            try:
                result = await self._classify_with_fallback(request)
                result = apply_safety_override(result, self._threshold)

            except Exception as e:
                logger.error("Classification failed: %s", e, exc_info=True)
                result = self._failsafe(request, f"Classification failed: {type(e).__name__}")

            self._log_output(result, (time.time() - start_time) * 1000)
            return result

    async def generate_follow_ups(
        self,
        symptoms: str,
        context: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """
        Up to five follow-up questions.

        Provider lines are stripped of numbering and bullets; the fixed
        generic list is returned when no provider is set, the call fails, or
        the reply contains no usable lines.
        """
        try:
            reply = await self._generate(build_follow_up_prompt(symptoms, list(context or ())))
        except ProviderError as e:
            logger.info("Follow-up generation using fallback questions: %s", e.message)
            return list(FALLBACK_FOLLOW_UP_QUESTIONS)
        except Exception as e:
            logger.error("Follow-up generation failed: %s", e, exc_info=True)
            return list(FALLBACK_FOLLOW_UP_QUESTIONS)

        questions = [strip_list_marker(line) for line in reply.splitlines()]
        questions = [q for q in questions if q]
        if not questions:
            return list(FALLBACK_FOLLOW_UP_QUESTIONS)
        return questions[:MAX_FOLLOW_UP_QUESTIONS]

    async def check_health(self) -> bool:
        """Round trip against the provider. False when none is configured."""
        try:
            await self._generate(HEALTH_CHECK_PROMPT)
        except ProviderError as e:
            logger.warning("Provider health check failed: %s", e.message)
            return False
        except Exception as e:
            logger.error("Provider health check raised: %s", e, exc_info=True)
            return False
        return True

    def detect_red_flags(self, text: str) -> List[MedicalAlert]:
        return detect_red_flags(text)

    # -------------------------------------------------------------------------
    # Classification Paths (Internal)
    # -------------------------------------------------------------------------

    async def _generate(self, prompt: str) -> str:
        if self._provider is None:
            raise ProviderUnavailableError("No text-generation provider configured")
        return await self._provider.generate(prompt)

    async def _classify_with_fallback(self, request: ClassificationRequest) -> TriageResult:
        keyword_result = self._keyword_classifier.classify(request.symptoms)

        try:
            reply = await self._generate(build_triage_prompt(request))
            result = parse_provider_response(
                reply,
                source=self.classifier_id,
                red_flag_keywords=self._keyword_classifier.emergency_keywords,
            )
        except ProviderError as e:
            logger.info("Using keyword fallback: %s", e.message)
            return keyword_result
        except Exception as e:
            logger.error("Provider path failed, using keyword fallback: %s", e, exc_info=True)
            return keyword_result

        return apply_keyword_floor(result, keyword_result)

    def _failsafe(self, request: ClassificationRequest, reason: str) -> TriageResult:
        """Conservative result, never ranked below the keyword classifier."""
        failsafe = TriageResult.create_failsafe(reason)
        try:
            return apply_keyword_floor(failsafe, self._keyword_classifier.classify(request.symptoms))
        except Exception as e:
            logger.error("Keyword floor unavailable for failsafe: %s", e, exc_info=True)
            return failsafe

    # -------------------------------------------------------------------------
    # Logging (Privacy-Aware)
    # -------------------------------------------------------------------------

    def _log_input(self, request: ClassificationRequest) -> None:
        if self._settings.anonymize_logs:
            logger.info(
                "Classifying symptoms: chars=%d, history_turns=%d",
                len(request.symptoms),
                len(request.conversation_history),
            )
        else:
            preview = request.symptoms[:50] + "..." if len(request.symptoms) > 50 else request.symptoms
            logger.info("Classifying symptoms: preview='%s'", preview)

    def _log_output(self, result: TriageResult, elapsed_ms: float) -> None:
        logger.info(
            "Result: priority=%s, risk=%d, confidence=%.2f, source=%s, degraded=%s, total_ms=%.1f",
            result.priority.value,
            result.risk_score,
            result.confidence,
            result.source,
            result.degraded,
            elapsed_ms,
        )

        if result.priority == Priority.EMERGENCY:
            logger.warning(
                "EMERGENCY result: risk=%d, red_flags=%d",
                result.risk_score,
                len(result.red_flags),
            )


# =============================================================================
# Factory Function
# =============================================================================

def create_classifier(settings: Settings, transport=None) -> SymptomTriageClassifier:
    """
    Build a classifier from settings.

    The provider is selected once here and never changes afterwards.

    Args:
        settings: Application settings
        transport: Optional httpx transport passed to the provider (tests)
    """
    provider = select_provider(settings, transport=transport)
    keyword_classifier = KeywordTriageClassifier(
        settings.emergency_keyword_list,
        settings.urgent_keyword_list,
    )
    return SymptomTriageClassifier(provider, settings, keyword_classifier)
