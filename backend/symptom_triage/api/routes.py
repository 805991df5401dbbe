"""
Symptom Triage - REST API Routes

Endpoints for stateless triage, session-based assessments, and health.

Architecture:
    All session operations flow through the AssessmentOrchestrator, accessed
    via dependency injection from app.state. Stateless endpoints use the
    orchestrator's classifier directly. Domain errors raised here are turned
    into JSON responses by the exception handler registered in main.py.
"""

from typing import List

from fastapi import APIRouter, Depends, Request, status

from symptom_triage import __version__
from symptom_triage.core.models import ChatMessage, PatientProfile, Session
from symptom_triage.core.orchestrator import AssessmentOrchestrator, AssessmentOutcome
from symptom_triage.core.types import MedicalAlert, TriageResult
from symptom_triage.services.triage_classifier import SymptomTriageClassifier

from .schemas import (
    AssessmentResponse,
    ChatMessageSchema,
    ErrorResponse,
    FollowUpRequest,
    FollowUpResponse,
    HealthResponse,
    MedicalAlertSchema,
    MessageCreateRequest,
    MessageListResponse,
    RedFlagRequest,
    RedFlagResponse,
    SessionCreateRequest,
    SessionListResponse,
    SessionSchema,
    TriageRequest,
    TriageResultSchema,
)

router = APIRouter(
    tags=["api"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)


# =============================================================================
# Dependencies
# =============================================================================

def get_orchestrator(request: Request) -> AssessmentOrchestrator:
    """Dependency to get the orchestrator from app state."""
    return request.app.state.orchestrator


def get_classifier(request: Request) -> SymptomTriageClassifier:
    return request.app.state.orchestrator.classifier


# =============================================================================
# Converters (Domain -> API Schema)
# =============================================================================

def domain_to_schema(result: TriageResult) -> TriageResultSchema:
    """
    Convert a domain TriageResult to the API schema.

    Keeps the API contract independent of the frozen domain type.
    """
    return TriageResultSchema(**result.to_dict())


def session_to_schema(session: Session) -> SessionSchema:
    return SessionSchema(
        id=session.id,
        user_id=session.user_id,
        chief_complaint=session.chief_complaint,
        status=session.status.value,
        risk_score=session.risk_score,
        priority_level=session.priority_level.value,
        ai_analysis=session.ai_analysis,
        recommendations=session.recommendations,
        red_flags=session.red_flags,
        follow_up_required=session.follow_up_required,
        start_time=session.start_time,
        end_time=session.end_time,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


def message_to_schema(message: ChatMessage) -> ChatMessageSchema:
    return ChatMessageSchema(
        id=message.id,
        session_id=message.session_id,
        role=message.role.value,
        message_type=message.message_type.value,
        content=message.content,
        confidence_score=message.confidence_score,
        timestamp=message.timestamp,
    )


def alerts_to_schema(alerts: List[MedicalAlert]) -> List[MedicalAlertSchema]:
    return [MedicalAlertSchema(**alert.to_dict()) for alert in alerts]


def outcome_to_schema(outcome: AssessmentOutcome) -> AssessmentResponse:
    return AssessmentResponse(
        session=session_to_schema(outcome.session),
        result=domain_to_schema(outcome.result),
        alerts=alerts_to_schema(outcome.alerts),
        messages=[message_to_schema(m) for m in outcome.messages],
    )


# =============================================================================
# Health & Status
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    orchestrator: AssessmentOrchestrator = Depends(get_orchestrator),
):
    """
    System health check.

    The service is "degraded" (but still answering) when only the keyword
    fallback is available.
    """
    classifier = orchestrator.classifier
    components = {
        "api": "operational",
        "classifier": classifier.classifier_id,
        "provider": "configured" if classifier.has_provider else "not_configured",
        "session_store": getattr(orchestrator.store, "store_id", "custom"),
    }

    return HealthResponse(
        status="healthy" if classifier.has_provider else "degraded",
        components=components,
        version=__version__,
    )


# =============================================================================
# Stateless Triage Operations
# =============================================================================

@router.post("/triage", response_model=TriageResultSchema)
async def classify_symptoms(
    request: TriageRequest,
    classifier: SymptomTriageClassifier = Depends(get_classifier),
):
    """
    Classify symptoms without creating a session.

    Never fails because of the provider: provider errors fall back to the
    keyword classifier and the result says so via `source` and `degraded`.
    """
    result = await classifier.classify(
        symptoms=request.symptoms,
        age=request.patient.age,
        gender=request.patient.gender,
        medical_history=request.patient.medical_history,
        conversation_history=request.conversation_history,
    )
    return domain_to_schema(result)


@router.post("/follow-ups", response_model=FollowUpResponse)
async def follow_up_questions(
    request: FollowUpRequest,
    classifier: SymptomTriageClassifier = Depends(get_classifier),
):
    """Up to five follow-up questions for the given symptoms."""
    questions = await classifier.generate_follow_ups(request.symptoms, request.context)
    return FollowUpResponse(questions=questions)


@router.post("/red-flags", response_model=RedFlagResponse)
async def red_flags(
    request: RedFlagRequest,
    classifier: SymptomTriageClassifier = Depends(get_classifier),
):
    """Emergency alerts for red-flag symptoms mentioned in the text."""
    return RedFlagResponse(alerts=alerts_to_schema(classifier.detect_red_flags(request.text)))


# =============================================================================
# Session Management
# =============================================================================

@router.post(
    "/sessions",
    response_model=AssessmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    request: SessionCreateRequest,
    orchestrator: AssessmentOrchestrator = Depends(get_orchestrator),
):
    """
    Start an assessment.

    Creates the session from the first message and runs the first
    classification cycle. The returned session is COMPLETED.
    """
    outcome = await orchestrator.start_assessment(
        user_id=request.user_id,
        message=request.message,
        patient=PatientProfile(**request.patient.model_dump()),
    )
    return outcome_to_schema(outcome)


@router.get("/sessions/{session_id}", response_model=SessionSchema)
async def get_session(
    session_id: str,
    orchestrator: AssessmentOrchestrator = Depends(get_orchestrator),
):
    return session_to_schema(await orchestrator.get_session(session_id))


@router.get("/sessions/{session_id}/messages", response_model=MessageListResponse)
async def get_session_messages(
    session_id: str,
    orchestrator: AssessmentOrchestrator = Depends(get_orchestrator),
):
    """All messages of a session, oldest first."""
    messages = await orchestrator.get_messages(session_id)
    return MessageListResponse(
        messages=[message_to_schema(m) for m in messages],
        total=len(messages),
    )


@router.post("/sessions/{session_id}/messages", response_model=AssessmentResponse)
async def post_session_message(
    session_id: str,
    request: MessageCreateRequest,
    orchestrator: AssessmentOrchestrator = Depends(get_orchestrator),
):
    """
    Send a further message on an ACTIVE session.

    Returns 409 when the session is completed, abandoned, or already has a
    classification in flight.
    """
    outcome = await orchestrator.submit_message(session_id, request.content)
    return outcome_to_schema(outcome)


@router.post("/sessions/{session_id}/restart", response_model=SessionSchema)
async def restart_session(
    session_id: str,
    orchestrator: AssessmentOrchestrator = Depends(get_orchestrator),
):
    """Re-open a completed session for another assessment."""
    return session_to_schema(await orchestrator.restart_assessment(session_id))


@router.post("/sessions/{session_id}/abandon", response_model=SessionSchema)
async def abandon_session(
    session_id: str,
    orchestrator: AssessmentOrchestrator = Depends(get_orchestrator),
):
    """Discard an active session without a result."""
    return session_to_schema(await orchestrator.abandon_session(session_id))


@router.get("/users/{user_id}/sessions", response_model=SessionListResponse)
async def list_user_sessions(
    user_id: str,
    orchestrator: AssessmentOrchestrator = Depends(get_orchestrator),
):
    """A user's sessions, newest first."""
    sessions = await orchestrator.list_user_sessions(user_id)
    return SessionListResponse(
        sessions=[session_to_schema(s) for s in sessions],
        total=len(sessions),
    )
