"""
Symptom Triage - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and environment-specific values are loaded from environment variables.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_EMERGENCY_KEYWORDS = (
    "chest pain,chest pressure,chest tightness,"
    "difficulty breathing,shortness of breath,can't breathe,cannot breathe,"
    "severe bleeding,unconscious,passed out,fainted,"
    "paralysis,slurred speech,seizure,severe allergic reaction"
)

DEFAULT_URGENT_KEYWORDS = (
    "fever,high temperature,severe pain,intense pain,"
    "dizziness,dizzy,lightheaded,vomiting,diarrhea,"
    "infection,swelling,warm to touch"
)


def split_csv(value: str) -> List[str]:
    return [item.strip().lower() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Hierarchy (highest to lowest priority):
    1. Environment variables
    2. .env file
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json: bool = False

    # --- Server ---
    backend_host: str = "0.0.0.0"
    backend_port: int = 8000

    # --- Privacy ---
    anonymize_logs: bool = True  # If True, symptom text never reaches the logs

    # --- Provider Selection ---
    # First provider in this order with a non-empty credential is used.
    # Hosted providers need an API key; custom and ollama need a base URL.
    provider_priority: str = "openai,anthropic,google,custom,ollama"
    provider_timeout_seconds: float = 30.0
    provider_temperature: float = 0.1
    provider_max_tokens: int = 2000

    # --- OpenAI ---
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com"
    openai_model: str = "gpt-3.5-turbo"
    openai_timeout_seconds: Optional[float] = None

    # --- Anthropic ---
    anthropic_api_key: str = ""
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_model: str = "claude-3-haiku-20240307"
    anthropic_timeout_seconds: Optional[float] = None

    # --- Google ---
    google_api_key: str = ""
    google_base_url: str = "https://generativelanguage.googleapis.com"
    google_model: str = "gemini-pro"
    google_timeout_seconds: Optional[float] = None

    # --- Custom HTTP endpoint ---
    custom_api_key: str = ""
    custom_base_url: str = ""
    custom_model: str = "default"
    custom_timeout_seconds: Optional[float] = None

    # --- Ollama (local inference server) ---
    ollama_base_url: str = ""  # e.g. http://localhost:11434
    ollama_model: str = "llama3.2:3b"
    ollama_timeout_seconds: Optional[float] = None

    # --- Triage Safety ---
    emergency_keywords: str = DEFAULT_EMERGENCY_KEYWORDS
    urgent_keywords: str = DEFAULT_URGENT_KEYWORDS
    confidence_escalation_threshold: float = Field(default=0.70, ge=0.0, le=1.0)

    # --- Sessions ---
    max_active_sessions: int = 1000
    max_sessions: int = Field(default=10000, ge=1)  # finished sessions beyond this are evicted

    # --- Security ---
    allowed_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def provider_priority_list(self) -> List[str]:
        """Provider names in order of preference."""
        return split_csv(self.provider_priority)

    @property
    def emergency_keyword_list(self) -> List[str]:
        return split_csv(self.emergency_keywords)

    @property
    def urgent_keyword_list(self) -> List[str]:
        return split_csv(self.urgent_keywords)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.

    Use dependency injection in routes:
        settings: Settings = Depends(get_settings)
    """
    return Settings()

