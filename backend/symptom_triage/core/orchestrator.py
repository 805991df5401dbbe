"""
Symptom Triage - Assessment Orchestrator

Session state machine around the triage classifier. This is the single entry
point the API layer uses for session-based assessments.

Architecture:
    One classification cycle runs these stages:

    1. GUARD: reject a second cycle while one is in flight
    2. RECORD INPUT: append the user's message
    3. CLASSIFY: one classifier call (never raises)
    4. RECORD OUTPUT: assessment, recommendation and alert messages
    5. COMPLETE: update the session with the result, ACTIVE -> COMPLETED

State transitions:
    ACTIVE    -> COMPLETED   classification cycle finished
    ACTIVE    -> ABANDONED   abandon_session()
    COMPLETED -> ACTIVE      restart_assessment()

Design Principles:
    - The classifier never touches the store; the orchestrator does
    - Privacy-aware: message content is never logged
    - Hook failures never fail an assessment

Usage:
    orchestrator = create_orchestrator(get_settings())
    outcome = await orchestrator.start_assessment(
        user_id="user-1",
        message="I have a fever and a sore throat",
        patient=PatientProfile(age=34, gender="female"),
    )
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, List, Optional, Set

from symptom_triage.config import Settings
from symptom_triage.core.exceptions import (
    ClassificationInProgressError,
    InvalidMessageError,
    InvalidSessionTransitionError,
    SessionNotFoundError,
)
from symptom_triage.core.logging import LogContext, log_event, mask_session_id
from symptom_triage.core.models import ChatMessage, PatientProfile, Session
from symptom_triage.core.session_store import SessionStore, create_session_store
from symptom_triage.core.types import (
    ClassificationRequest,
    MedicalAlert,
    MessageRole,
    MessageType,
    Priority,
    SessionStatus,
    TriageResult,
)
from symptom_triage.services.triage_classifier import (
    SymptomTriageClassifier,
    create_classifier,
)

logger = logging.getLogger(__name__)


MAX_MESSAGE_LENGTH = 5000

EMERGENCY_ALERT_TEXT = (
    "Emergency symptoms detected. Seek immediate emergency medical attention "
    "or call 911."
)


# =============================================================================
# Assessment Metrics (for observability)
# =============================================================================

@dataclass
class AssessmentMetrics:
    """Metrics for a single classification cycle."""
    request_id: str
    session_id: str
    classify_ms: Optional[float] = None
    total_ms: Optional[float] = None
    priority: Optional[str] = None
    source: Optional[str] = None
    success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "session_id": mask_session_id(self.session_id),
            "classify_ms": round(self.classify_ms, 2) if self.classify_ms else None,
            "total_ms": round(self.total_ms, 2) if self.total_ms else None,
            "priority": self.priority,
            "source": self.source,
            "success": self.success,
            "error_message": self.error_message,
        }


def log_assessment_metrics(metrics: AssessmentMetrics) -> None:
    """Metrics callback that writes each cycle as an `assessment_metrics` event."""
    level = logging.INFO if metrics.success else logging.WARNING
    log_event(logger, level, "Assessment metrics", event_type="assessment_metrics", data=metrics.to_dict())


@dataclass
class AssessmentOutcome:
    """Everything produced by one classification cycle."""
    session: Session
    result: TriageResult
    alerts: List[MedicalAlert] = field(default_factory=list)
    messages: List[ChatMessage] = field(default_factory=list)


AssessmentHook = Callable[[Session, TriageResult], Any]
"""Hook called after a completed cycle. May be sync or async."""


# =============================================================================
# Orchestrator
# =============================================================================

class AssessmentOrchestrator:
    """
    Drives sessions through classification cycles.

    Attributes:
        classifier: Triage classifier (provider-backed or keyword-only)
        store: Session repository
        settings: Application configuration
    """

    def __init__(
        self,
        classifier: SymptomTriageClassifier,
        store: SessionStore,
        settings: Settings,
    ):
        self._classifier = classifier
        self._store = store
        self._settings = settings

        self._in_flight: Set[str] = set()
        self._in_flight_lock = asyncio.Lock()

        self._post_hooks: List[AssessmentHook] = []
        self._metrics_callback: Optional[Callable[[AssessmentMetrics], None]] = None

        logger.info(
            "AssessmentOrchestrator initialized: classifier=%s",
            classifier.classifier_id,
        )

    @property
    def classifier(self) -> SymptomTriageClassifier:
        return self._classifier

    @property
    def store(self) -> SessionStore:
        return self._store

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def start_assessment(
        self,
        user_id: str,
        message: str,
        patient: PatientProfile,
    ) -> AssessmentOutcome:
        """
        Create a session from the first message and run its first cycle.

        Raises:
            InvalidMessageError: empty or oversized message
            SessionLimitError: store is at capacity
        """
        content = self._validate_message(message)
        session = await self._store.create_session(
            user_id=user_id,
            chief_complaint=content,
            patient=patient,
        )
        return await self._run_cycle(session.id, content)

    async def submit_message(self, session_id: str, content: str) -> AssessmentOutcome:
        """
        Run a classification cycle for a further message on an ACTIVE session.

        Raises:
            SessionNotFoundError: unknown session
            InvalidSessionTransitionError: session is completed or abandoned
            ClassificationInProgressError: a cycle is already running
        """
        text = self._validate_message(content)
        await self._get_session_or_raise(session_id)
        return await self._run_cycle(session_id, text)

    async def restart_assessment(self, session_id: str) -> Session:
        """Re-open a COMPLETED session for another cycle."""
        async with self._guard(session_id):
            session = await self._get_session_or_raise(session_id)
            if session.status != SessionStatus.COMPLETED:
                raise InvalidSessionTransitionError(
                    f"Cannot restart a session in status '{session.status.value}'",
                    details={"status": session.status.value},
                )
            return await self._store.update_session(
                session_id,
                status=SessionStatus.ACTIVE,
                end_time=None,
            )

    async def abandon_session(self, session_id: str) -> Session:
        """Discard an ACTIVE session without a result."""
        async with self._guard(session_id):
            session = await self._get_session_or_raise(session_id)
            if session.status != SessionStatus.ACTIVE:
                raise InvalidSessionTransitionError(
                    f"Cannot abandon a session in status '{session.status.value}'",
                    details={"status": session.status.value},
                )
            return await self._store.update_session(
                session_id,
                status=SessionStatus.ABANDONED,
                end_time=datetime.utcnow(),
            )

    async def get_session(self, session_id: str) -> Session:
        return await self._get_session_or_raise(session_id)

    async def get_messages(self, session_id: str) -> List[ChatMessage]:
        return await self._store.get_messages(session_id)

    async def list_user_sessions(self, user_id: str) -> List[Session]:
        return await self._store.list_user_sessions(user_id)

    # -------------------------------------------------------------------------
    # Classification Cycle (Internal)
    # -------------------------------------------------------------------------

    async def _run_cycle(self, session_id: str, content: str) -> AssessmentOutcome:
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        metrics = AssessmentMetrics(request_id=request_id, session_id=session_id)
        start_time = time.time()

        try:
            async with self._guard(session_id):
                with LogContext(correlation_id=request_id, session_id=session_id):
                    session = await self._get_session_or_raise(session_id)
                    if session.status != SessionStatus.ACTIVE:
                        raise InvalidSessionTransitionError(
                            f"Session is {session.status.value}; restart the assessment first",
                            details={"status": session.status.value},
                        )

                    previous = await self._store.get_messages(session_id)
                    history = [m.content for m in previous if m.role == MessageRole.USER]

                    user_message = await self._store.append_message(ChatMessage(
                        session_id=session_id,
                        role=MessageRole.USER,
                        message_type=MessageType.ANSWER,
                        content=content,
                    ))

                    symptoms = content if not history else f"{session.chief_complaint}. {content}"
                    classify_start = time.time()
                    request = ClassificationRequest(
                        symptoms=symptoms,
                        patient=session.patient.to_context(),
                        conversation_history=history,
                    )
                    result = await self._classifier.classify_request(request, session_id=session_id)
                    metrics.classify_ms = (time.time() - classify_start) * 1000

                    alerts = self._classifier.detect_red_flags(content)
                    recorded = await self._record_result(session_id, result, alerts)

                    session = await self._store.update_session(
                        session_id,
                        status=SessionStatus.COMPLETED,
                        risk_score=result.risk_score,
                        priority_level=result.priority,
                        ai_analysis=result.explanation,
                        recommendations=list(result.recommendations),
                        red_flags=list(result.red_flags),
                        follow_up_required=result.priority != Priority.NON_URGENT,
                        end_time=datetime.utcnow(),
                    )

                    metrics.priority = result.priority.value
                    metrics.source = result.source
                    metrics.total_ms = (time.time() - start_time) * 1000

                    await self._execute_hooks(session, result)
                    self._log_output(session, result, metrics)

                    return AssessmentOutcome(
                        session=session,
                        result=result,
                        alerts=alerts,
                        messages=[user_message] + recorded,
                    )

        except Exception as e:
            metrics.success = False
            metrics.error_message = str(e)
            metrics.total_ms = (time.time() - start_time) * 1000
            raise
        finally:
            self._emit_metrics(metrics)

    async def _record_result(
        self,
        session_id: str,
        result: TriageResult,
        alerts: List[MedicalAlert],
    ) -> List[ChatMessage]:
        """Append the assistant messages for one result."""
        messages = [
            ChatMessage(
                session_id=session_id,
                role=MessageRole.ASSISTANT,
                message_type=MessageType.ASSESSMENT,
                content=result.explanation,
                confidence_score=result.confidence,
            ),
            ChatMessage(
                session_id=session_id,
                role=MessageRole.ASSISTANT,
                message_type=MessageType.RECOMMENDATION,
                content="\n".join(result.recommendations),
            ),
        ]

        if result.priority == Priority.EMERGENCY or alerts:
            lines = [EMERGENCY_ALERT_TEXT] + [alert.message for alert in alerts]
            messages.append(ChatMessage(
                session_id=session_id,
                role=MessageRole.SYSTEM,
                message_type=MessageType.ALERT,
                content="\n".join(lines),
            ))

        for message in messages:
            await self._store.append_message(message)
        return messages

    @asynccontextmanager
    async def _guard(self, session_id: str) -> AsyncIterator[None]:
        """Mark a session busy for the duration of a block."""
        async with self._in_flight_lock:
            if session_id in self._in_flight:
                raise ClassificationInProgressError(
                    "A classification is already in progress for this session"
                )
            self._in_flight.add(session_id)
        try:
            yield
        finally:
            async with self._in_flight_lock:
                self._in_flight.discard(session_id)

    async def _get_session_or_raise(self, session_id: str) -> Session:
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {mask_session_id(session_id)}")
        return session

    def _validate_message(self, message: str) -> str:
        content = (message or "").strip()
        if not content:
            raise InvalidMessageError("Message cannot be empty")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidMessageError(
                f"Message exceeds {MAX_MESSAGE_LENGTH} characters",
                details={"length": len(content)},
            )
        return content

    # -------------------------------------------------------------------------
    # Hooks and Observability
    # -------------------------------------------------------------------------

    def register_hook(self, hook: AssessmentHook) -> None:
        """
        Register a post-assessment hook.

        Hooks receive the updated session and the result after every
        completed cycle. Use for alerting on emergency results, audit logging
        or persistence to external systems.
        """
        self._post_hooks.append(hook)
        logger.info("Registered assessment hook: %s", getattr(hook, "__name__", str(hook)))

    def set_metrics_callback(self, callback: Callable[[AssessmentMetrics], None]) -> None:
        """Set callback called after every cycle (success or failure)."""
        self._metrics_callback = callback

    async def _execute_hooks(self, session: Session, result: TriageResult) -> None:
        for hook in self._post_hooks:
            try:
                hook_result = hook(session, result)
                if hasattr(hook_result, "__await__"):
                    await hook_result
            except Exception as e:
                logger.error(
                    "Hook execution failed [%s]: %s",
                    getattr(hook, "__name__", "unknown"),
                    str(e),
                )

    def _emit_metrics(self, metrics: AssessmentMetrics) -> None:
        if self._metrics_callback:
            try:
                self._metrics_callback(metrics)
            except Exception as e:
                logger.warning("Metrics emission failed: %s", e)

    def _log_output(
        self,
        session: Session,
        result: TriageResult,
        metrics: AssessmentMetrics,
    ) -> None:
        logger.info(
            "Assessment complete: session=%s, priority=%s, risk=%d, total_ms=%.1f",
            mask_session_id(session.id),
            result.priority.value,
            result.risk_score,
            metrics.total_ms or 0,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def startup(self) -> None:
        """Check provider reachability at startup. Failures are logged only."""
        if self._classifier.has_provider:
            healthy = await self._classifier.check_health()
            logger.info(
                "Orchestrator startup: provider %s %s",
                self._classifier.classifier_id,
                "reachable" if healthy else "unreachable, keyword fallback active",
            )
        else:
            logger.info("Orchestrator startup: keyword fallback only")

    async def shutdown(self) -> None:
        async with self._in_flight_lock:
            pending = len(self._in_flight)
        logger.info("Orchestrator shutdown: %d cycles in flight", pending)


# =============================================================================
# Factory Function
# =============================================================================

def create_orchestrator(
    settings: Settings,
    classifier: Optional[SymptomTriageClassifier] = None,
    store: Optional[SessionStore] = None,
) -> AssessmentOrchestrator:
    """
    Factory function to create a configured AssessmentOrchestrator.

    The classifier's provider is selected from settings unless a classifier
    is injected; the store defaults to the in-memory implementation.

    IMPORTANT SAFETY NOTICE:
        Results are preliminary guidance only and never a diagnosis.
    """
    return AssessmentOrchestrator(
        classifier=classifier or create_classifier(settings),
        store=store or create_session_store(settings),
        settings=settings,
    )
