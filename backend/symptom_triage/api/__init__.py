"""
Symptom Triage - API Package

REST routes and their request/response schemas.
"""
