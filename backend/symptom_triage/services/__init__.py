"""
Symptom Triage - Services Package

Contains the classification services:
- Provider adapters (OpenAI, Anthropic, Google, Ollama, custom HTTP)
- Prompt construction and response parsing
- Deterministic keyword classification and red-flag detection
- The triage classifier that ties them together

Design Pattern:
    Providers are defined by a Protocol. The classifier receives a concrete
    provider (or None) at startup, so tests inject fakes and deployments
    switch vendors through configuration alone.
"""

from .providers import (
    TextGenerationProvider,
    ProviderConfig,
    HTTPProvider,
    OpenAIProvider,
    AnthropicProvider,
    GoogleProvider,
    OllamaProvider,
    CustomHTTPProvider,
    select_provider,
)
from .keyword_classifier import KeywordTriageClassifier, detect_red_flags
from .response_parser import parse_provider_response, sanitize_result
from .triage_classifier import (
    SymptomTriageClassifier,
    apply_safety_override,
    create_classifier,
)

__all__ = [
    # Providers
    "TextGenerationProvider",
    "ProviderConfig",
    "HTTPProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "GoogleProvider",
    "OllamaProvider",
    "CustomHTTPProvider",
    "select_provider",
    # Parsing
    "parse_provider_response",
    "sanitize_result",
    # Classification
    "KeywordTriageClassifier",
    "detect_red_flags",
    "SymptomTriageClassifier",
    "apply_safety_override",
    "create_classifier",
]
