"""
Symptom Triage - Provider Adapter Tests

Tests the vendor adapters against httpx.MockTransport and the selection
policy. No network access is needed.

Run with: pytest tests/test_providers.py -v
"""

import json

import httpx
import pytest

from symptom_triage.core.exceptions import ProviderCallFailedError, ProviderError
from symptom_triage.services.providers import (
    AnthropicProvider,
    CustomHTTPProvider,
    GoogleProvider,
    OllamaProvider,
    OpenAIProvider,
    ProviderConfig,
    TextGenerationProvider,
    resolve_provider_config,
    select_provider,
)


def recording_transport(body, status_code: int = 200):
    """MockTransport that records requests and returns a fixed JSON body."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler), requests


def make_config(name: str, base_url: str = "https://llm.test", **overrides) -> ProviderConfig:
    values = dict(name=name, model="test-model", base_url=base_url, api_key="sk-test-key-1234")
    values.update(overrides)
    return ProviderConfig(**values)


class TestVendorAdapters:
    """Request shape and reply extraction per vendor."""

    @pytest.mark.asyncio
    async def test_openai(self):
        transport, requests = recording_transport(
            {"choices": [{"message": {"content": "openai reply"}}]}
        )
        provider = OpenAIProvider(make_config("openai"), transport=transport)

        assert await provider.generate("hello") == "openai reply"

        request = requests[0]
        assert request.url == "https://llm.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test-key-1234"
        payload = json.loads(request.content)
        assert payload["model"] == "test-model"
        assert payload["messages"][0]["role"] == "system"
        assert payload["messages"][1] == {"role": "user", "content": "hello"}
        assert payload["temperature"] == 0.1
        assert payload["max_tokens"] == 2000

    @pytest.mark.asyncio
    async def test_anthropic(self):
        transport, requests = recording_transport({"content": [{"text": "anthropic reply"}]})
        provider = AnthropicProvider(make_config("anthropic"), transport=transport)

        assert await provider.generate("hello") == "anthropic reply"

        request = requests[0]
        assert request.url == "https://llm.test/v1/messages"
        assert request.headers["x-api-key"] == "sk-test-key-1234"
        assert request.headers["anthropic-version"] == "2023-06-01"
        payload = json.loads(request.content)
        assert payload["messages"] == [{"role": "user", "content": "hello"}]
        assert "system" in payload

    @pytest.mark.asyncio
    async def test_google(self):
        transport, requests = recording_transport(
            {"candidates": [{"content": {"parts": [{"text": "google reply"}]}}]}
        )
        provider = GoogleProvider(make_config("google"), transport=transport)

        assert await provider.generate("hello") == "google reply"

        request = requests[0]
        assert request.url.path == "/v1beta/models/test-model:generateContent"
        assert request.url.params["key"] == "sk-test-key-1234"
        payload = json.loads(request.content)
        assert payload["contents"][0]["parts"][0]["text"] == "hello"
        assert payload["generationConfig"]["maxOutputTokens"] == 2000

    @pytest.mark.asyncio
    async def test_ollama(self):
        transport, requests = recording_transport({"response": "ollama reply"})
        provider = OllamaProvider(
            make_config("ollama", base_url="http://localhost:11434/", api_key=""),
            transport=transport,
        )

        assert await provider.generate("hello") == "ollama reply"

        request = requests[0]
        assert request.url == "http://localhost:11434/api/generate"
        payload = json.loads(request.content)
        assert payload["stream"] is False
        assert payload["prompt"] == "hello"
        assert payload["options"]["num_predict"] == 2000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field_name", ["response", "text", "content"])
    async def test_custom_reply_fields(self, field_name: str):
        transport, requests = recording_transport({field_name: "custom reply"})
        provider = CustomHTTPProvider(
            make_config("custom", base_url="https://custom.test/generate"),
            transport=transport,
        )

        assert await provider.generate("hello") == "custom reply"
        assert requests[0].url == "https://custom.test/generate"
        assert json.loads(requests[0].content)["prompt"] == "hello"

    @pytest.mark.asyncio
    async def test_custom_without_key_sends_no_auth(self):
        transport, requests = recording_transport({"response": "ok"})
        provider = CustomHTTPProvider(
            make_config("custom", api_key=""),
            transport=transport,
        )

        await provider.generate("hello")
        assert "Authorization" not in requests[0].headers

    def test_provider_id_and_protocol(self):
        provider = OpenAIProvider(make_config("openai"))

        assert provider.provider_id == "openai:test-model"
        assert isinstance(provider, TextGenerationProvider)


class TestProviderErrors:
    """Every failure surfaces as ProviderCallFailedError."""

    @pytest.mark.asyncio
    async def test_non_2xx_status(self):
        transport, _ = recording_transport({"error": "rate limited"}, status_code=429)
        provider = OpenAIProvider(make_config("openai"), transport=transport)

        with pytest.raises(ProviderCallFailedError) as exc_info:
            await provider.generate("hello")

        assert exc_info.value.details["status_code"] == 429
        assert exc_info.value.provider == "openai"
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        provider = AnthropicProvider(
            make_config("anthropic"),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(ProviderCallFailedError) as exc_info:
            await provider.generate("hello")
        assert isinstance(exc_info.value.cause, httpx.TimeoutException)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = OllamaProvider(
            make_config("ollama", api_key=""),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(ProviderError):
            await provider.generate("hello")

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        transport, _ = recording_transport({"choices": []})
        provider = OpenAIProvider(make_config("openai"), transport=transport)

        with pytest.raises(ProviderCallFailedError):
            await provider.generate("hello")

    @pytest.mark.asyncio
    async def test_non_string_reply(self):
        transport, _ = recording_transport({"response": {"nested": True}})
        provider = OllamaProvider(make_config("ollama", api_key=""), transport=transport)

        with pytest.raises(ProviderCallFailedError):
            await provider.generate("hello")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        provider = GoogleProvider(
            make_config("google"),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(ProviderCallFailedError):
            await provider.generate("hello")

    @pytest.mark.asyncio
    async def test_custom_missing_reply_field(self):
        transport, _ = recording_transport({"result": "wrong field"})
        provider = CustomHTTPProvider(make_config("custom"), transport=transport)

        with pytest.raises(ProviderCallFailedError):
            await provider.generate("hello")


class TestSelectionPolicy:
    """Tests for resolve_provider_config() and select_provider()."""

    def test_nothing_configured(self, test_settings):
        assert select_provider(test_settings) is None

    def test_first_configured_in_priority_order(self, make_settings):
        settings = make_settings(anthropic_api_key="ak", google_api_key="gk")
        provider = select_provider(settings)

        assert isinstance(provider, AnthropicProvider)
        assert provider.provider_id == "anthropic:claude-3-haiku-20240307"

    def test_custom_priority_order(self, make_settings):
        settings = make_settings(
            provider_priority="google, openai",
            openai_api_key="ok",
            google_api_key="gk",
        )
        assert isinstance(select_provider(settings), GoogleProvider)

    def test_blank_key_is_not_configured(self, make_settings):
        settings = make_settings(openai_api_key="   ", google_api_key="gk")
        assert isinstance(select_provider(settings), GoogleProvider)

    def test_ollama_needs_base_url(self, make_settings):
        settings = make_settings(ollama_base_url="http://localhost:11434")
        provider = select_provider(settings)

        assert isinstance(provider, OllamaProvider)
        assert provider.provider_id == "ollama:llama3.2:3b"

    def test_unknown_provider_name_skipped(self, make_settings):
        settings = make_settings(provider_priority="mystery,openai", openai_api_key="ok")
        assert isinstance(select_provider(settings), OpenAIProvider)

    def test_provider_not_in_priority_list_ignored(self, make_settings):
        settings = make_settings(provider_priority="anthropic", openai_api_key="ok")
        assert select_provider(settings) is None

    def test_per_provider_timeout(self, make_settings):
        settings = make_settings(
            openai_api_key="ok",
            openai_timeout_seconds=5.0,
            provider_timeout_seconds=45.0,
        )
        assert resolve_provider_config("openai", settings).timeout_seconds == 5.0

    def test_default_timeout(self, make_settings):
        settings = make_settings(google_api_key="gk", provider_timeout_seconds=45.0)
        assert resolve_provider_config("google", settings).timeout_seconds == 45.0

    def test_generation_parameters_from_settings(self, make_settings):
        settings = make_settings(
            openai_api_key="ok",
            provider_temperature=0.2,
            provider_max_tokens=1000,
        )
        config = resolve_provider_config("openai", settings)

        assert config.temperature == 0.2
        assert config.max_tokens == 1000
