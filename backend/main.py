"""
Symptom Triage - Backend Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn main:app --reload   (from the backend/ directory)
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from symptom_triage import __version__
from symptom_triage.api import routes
from symptom_triage.config import Settings, get_settings
from symptom_triage.core.exceptions import SymptomTriageError
from symptom_triage.core.logging import setup_structured_logging
from symptom_triage.core.orchestrator import (
    AssessmentOrchestrator,
    create_orchestrator,
    log_assessment_metrics,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Configure logging
        - Select the provider (once) and build the orchestrator
        - Log per-cycle assessment metrics
        - Check provider reachability

    Shutdown:
        - Report in-flight classification cycles
    """
    # === Startup ===
    settings: Settings = app.state.settings
    setup_structured_logging(settings.app_log_level, json_format=settings.log_json)
    logger.info("Symptom Triage starting in %s mode", settings.app_env)

    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = create_orchestrator(settings)
        orchestrator.set_metrics_callback(log_assessment_metrics)
        app.state.orchestrator = orchestrator

    await orchestrator.startup()

    logger.info("Orchestrator initialized and ready")
    logger.info(
        "   Classifier: %s, escalation_threshold=%.2f",
        orchestrator.classifier.classifier_id,
        settings.confidence_escalation_threshold,
    )
    logger.info("   Privacy: anonymize_logs=%s", settings.anonymize_logs)

    yield

    # === Shutdown ===
    logger.info("Symptom Triage shutting down")
    await orchestrator.shutdown()
    logger.info("Shutdown complete")


async def handle_domain_error(request: Request, exc: SymptomTriageError) -> JSONResponse:
    """Map domain exceptions to {error, message, details} responses."""
    if exc.status_code >= 500:
        logger.error("Request failed [%s]: %s", exc.code, exc.message)
    else:
        logger.info("Request rejected [%s]: %s", exc.code, exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "details": exc.details,
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[AssessmentOrchestrator] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Settings to use (defaults to environment settings)
        orchestrator: Pre-built orchestrator (tests inject one)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Symptom Triage",
        description="Preliminary symptom triage API for a symptom-checking chat application",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    if orchestrator is not None:
        app.state.orchestrator = orchestrator

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Errors ---
    app.add_exception_handler(SymptomTriageError, handle_domain_error)

    # --- Routes ---
    app.include_router(routes.router, prefix="/api")

    # --- Health check at root ---
    @app.get("/")
    async def root():
        """Root health check."""
        return {
            "service": "Symptom Triage",
            "status": "operational",
            "version": __version__,
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    run_settings = get_settings()
    uvicorn.run(
        "main:app",
        host=run_settings.backend_host,
        port=run_settings.backend_port,
        reload=not run_settings.is_production,
    )
