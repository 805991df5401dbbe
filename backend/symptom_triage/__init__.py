"""
Symptom Triage - Backend Application Package

This package contains the core backend logic:
- API routes for assessment sessions and stateless triage
- Session orchestration around the triage classifier
- Provider adapters for hosted and local text-generation backends
- Deterministic keyword fallback classification
"""

__version__ = "0.1.0"
