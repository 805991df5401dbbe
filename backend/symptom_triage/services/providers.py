"""
Symptom Triage - Text Generation Provider Adapters

Uniform access to interchangeable text-generation backends.

Architecture:
    - Protocol defines the single capability: generate(prompt) -> text
    - HTTPProvider owns the outbound call (one POST, timeout, error mapping)
    - One subclass per vendor builds the payload and extracts the reply:
        OpenAIProvider      chat-completions
        AnthropicProvider   messages
        GoogleProvider      generateContent
        OllamaProvider      local inference server (/api/generate)
        CustomHTTPProvider  generic JSON endpoint
    - select_provider() applies the priority-ordered selection policy

No retries happen at this layer. Every failure surfaces as
ProviderCallFailedError and the caller decides what to do.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from symptom_triage.config import Settings
from symptom_triage.core.exceptions import ProviderCallFailedError
from symptom_triage.core.logging import mask_secret

logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTION = (
    "You are a medical AI assistant. Always prioritize patient safety and "
    "provide conservative medical guidance."
)


# =============================================================================
# Protocol (Interface)
# =============================================================================

@runtime_checkable
class TextGenerationProvider(Protocol):
    """Protocol for text-generation backends."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Send a single prompt and return the raw text reply.

        Raises:
            ProviderCallFailedError: network failure, timeout, non-2xx
                status or an unexpected response shape
        """
        ...

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Return provider/model identifier."""
        ...


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class ProviderConfig:
    """Resolved configuration for one provider."""
    name: str
    model: str
    base_url: str
    api_key: str = ""
    timeout_seconds: float = 30.0
    temperature: float = 0.1
    max_tokens: int = 2000


# =============================================================================
# Base HTTP Provider
# =============================================================================

class HTTPProvider(ABC):
    """
    Shared outbound-call logic for all HTTP adapters.

    Subclasses implement _endpoint(), _payload() and _extract_text(), and may
    override _headers() / _params().
    """

    name = "http"

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            config: Resolved provider configuration
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self._config = config
        self._transport = transport

    @property
    def provider_id(self) -> str:
        return f"{self.name}:{self._config.model}"

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def generate(self, prompt: str) -> str:
        url = self._endpoint()
        logger.debug("Calling provider %s (%d prompt chars)", self.provider_id, len(prompt))

        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    url,
                    json=self._payload(prompt),
                    headers=self._headers(),
                    params=self._params(),
                )
                response.raise_for_status()
                body = response.json()

        except httpx.TimeoutException as e:
            logger.warning(
                "Provider %s timed out after %.1fs",
                self.provider_id,
                self._config.timeout_seconds,
            )
            raise ProviderCallFailedError(
                f"{self.name} request timed out",
                provider=self.name,
                cause=e,
            ) from e

        except httpx.HTTPStatusError as e:
            logger.warning(
                "Provider %s returned HTTP %d",
                self.provider_id,
                e.response.status_code,
            )
            raise ProviderCallFailedError(
                f"{self.name} returned HTTP {e.response.status_code}",
                provider=self.name,
                cause=e,
                details={"status_code": e.response.status_code},
            ) from e

        except httpx.HTTPError as e:
            logger.warning("Provider %s request failed: %s", self.provider_id, e)
            raise ProviderCallFailedError(
                f"{self.name} request failed: {type(e).__name__}",
                provider=self.name,
                cause=e,
            ) from e

        except ValueError as e:
            raise ProviderCallFailedError(
                f"{self.name} returned a non-JSON body",
                provider=self.name,
                cause=e,
            ) from e

        try:
            text = self._extract_text(body)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderCallFailedError(
                f"Unexpected {self.name} response shape",
                provider=self.name,
                cause=e,
            ) from e

        if not isinstance(text, str):
            raise ProviderCallFailedError(
                f"Unexpected {self.name} response shape",
                provider=self.name,
            )

        logger.debug("Provider %s replied (%d chars)", self.provider_id, len(text))
        return text

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _params(self) -> Optional[Dict[str, str]]:
        return None

    @abstractmethod
    def _endpoint(self) -> str:
        ...

    @abstractmethod
    def _payload(self, prompt: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def _extract_text(self, body: Any) -> str:
        ...


# =============================================================================
# Vendor Adapters
# =============================================================================

class OpenAIProvider(HTTPProvider):
    """OpenAI-style chat completions."""

    name = "openai"

    def _endpoint(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/v1/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }

    def _extract_text(self, body: Any) -> str:
        return body["choices"][0]["message"]["content"]


class AnthropicProvider(HTTPProvider):
    """Anthropic-style messages."""

    name = "anthropic"
    api_version = "2023-06-01"

    def _endpoint(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/v1/messages"

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._config.api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
            "system": SYSTEM_INSTRUCTION,
            "messages": [{"role": "user", "content": prompt}],
        }

    def _extract_text(self, body: Any) -> str:
        return body["content"][0]["text"]


class GoogleProvider(HTTPProvider):
    """Google-style generateContent."""

    name = "google"

    def _endpoint(self) -> str:
        return (
            f"{self._config.base_url.rstrip('/')}/v1beta/models/"
            f"{self._config.model}:generateContent"
        )

    def _params(self) -> Optional[Dict[str, str]]:
        return {"key": self._config.api_key}

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._config.temperature,
                "maxOutputTokens": self._config.max_tokens,
            },
        }

    def _extract_text(self, body: Any) -> str:
        return body["candidates"][0]["content"]["parts"][0]["text"]


class OllamaProvider(HTTPProvider):
    """Local-network inference server (Ollama /api/generate, non-streaming)."""

    name = "ollama"

    def _endpoint(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/api/generate"

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self._config.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self._config.temperature,
                "top_p": 0.9,
                "num_predict": self._config.max_tokens,
            },
        }

    def _extract_text(self, body: Any) -> str:
        return body["response"]


class CustomHTTPProvider(HTTPProvider):
    """
    Generic JSON endpoint.

    Posts {prompt, model, temperature, max_tokens} to the configured URL and
    reads the reply from the first of "response", "text" or "content".
    """

    name = "custom"
    reply_fields = ("response", "text", "content")

    def _endpoint(self) -> str:
        return self._config.base_url

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "prompt": prompt,
            "model": self._config.model,
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }

    def _extract_text(self, body: Any) -> str:
        for field_name in self.reply_fields:
            value = body.get(field_name)
            if value:
                return value
        raise KeyError("no reply field in custom provider response")


PROVIDER_CLASSES = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
    "custom": CustomHTTPProvider,
    "ollama": OllamaProvider,
}


# =============================================================================
# Selection Policy
# =============================================================================

def resolve_provider_config(name: str, settings: Settings) -> Optional[ProviderConfig]:
    """
    Build a ProviderConfig from settings, or None if the provider has no
    credential. Hosted providers need an API key; custom and ollama need a
    base URL.
    """
    api_key = getattr(settings, f"{name}_api_key", "") or ""
    base_url = getattr(settings, f"{name}_base_url", "") or ""

    if name in ("custom", "ollama"):
        if not base_url.strip():
            return None
    elif not api_key.strip():
        return None

    timeout = getattr(settings, f"{name}_timeout_seconds", None)
    return ProviderConfig(
        name=name,
        model=getattr(settings, f"{name}_model"),
        base_url=base_url.strip(),
        api_key=api_key.strip(),
        timeout_seconds=timeout if timeout is not None else settings.provider_timeout_seconds,
        temperature=settings.provider_temperature,
        max_tokens=settings.provider_max_tokens,
    )


def select_provider(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[HTTPProvider]:
    """
    Pick the first configured provider in priority order.

    Returns None when nothing is configured; the caller then uses the
    deterministic keyword fallback.
    """
    for name in settings.provider_priority_list:
        provider_class = PROVIDER_CLASSES.get(name)
        if provider_class is None:
            logger.warning("Unknown provider in priority list: %s", name)
            continue

        config = resolve_provider_config(name, settings)
        if config is None:
            continue

        provider = provider_class(config, transport=transport)
        logger.info(
            "Selected provider %s (timeout=%.1fs, key=%s)",
            provider.provider_id,
            config.timeout_seconds,
            mask_secret(config.api_key) or "none",
        )
        return provider

    logger.info("No text-generation provider configured; keyword fallback only")
    return None
