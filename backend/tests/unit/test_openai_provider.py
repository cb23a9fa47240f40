"""
Unit tests for the OpenAI-compatible provider family.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError, RateLimitError

from aiproxy.core.exceptions import UpstreamError
from aiproxy.services.ai.providers import get_provider
from aiproxy.services.ai.providers.google import GoogleProvider
from aiproxy.services.ai.providers.openai import OpenAICompatibleProvider
from aiproxy.services.ai.types import (
    ExecutionTarget,
    ImageURL,
    ProviderCallSpec,
    ProviderFamily,
    TaskType,
    TextDelta,
)

TARGET = ExecutionTarget(
    provider_id="Groq",
    model="llama3-8b-8192",
    credential="groq-key",
    base_endpoint="https://api.groq.com/openai/v1",
)

REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def text_call(stream: bool, json_mode: bool = False) -> ProviderCallSpec:
    payload = {
        "model": TARGET.model,
        "messages": [{"role": "user", "content": "Hi"}],
        "stream": stream,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    return ProviderCallSpec(
        family=ProviderFamily.OPENAI_COMPATIBLE,
        target=TARGET,
        task=TaskType.GENERATE_TEXT,
        payload=payload,
        stream=stream,
        json_mode=json_mode,
    )


def chunk(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeStream:
    """Async iterable standing in for openai.AsyncStream."""

    def __init__(self, chunks, error: Exception | None = None):
        self.chunks = chunks
        self.error = error
        self.close = AsyncMock()

    async def __aiter__(self):
        for item in self.chunks:
            yield item
        if self.error is not None:
            raise self.error


def fake_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.images.generate = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.mark.asyncio
class TestStreamText:
    async def test_yields_deltas_and_closes_everything(self):
        client = fake_client()
        stream = FakeStream([chunk("Hel"), chunk(None), SimpleNamespace(choices=[]), chunk("lo")])
        client.chat.completions.create.return_value = stream
        provider = OpenAICompatibleProvider(text_call(stream=True))

        with patch.object(OpenAICompatibleProvider, "_get_client", return_value=client):
            events = [event async for event in provider.stream_text()]

        assert events == [TextDelta("Hel"), TextDelta("lo")]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["model"] == "llama3-8b-8192"
        stream.close.assert_awaited_once()
        client.close.assert_awaited_once()

    async def test_rate_limit_on_open_becomes_upstream_error(self):
        client = fake_client()
        client.chat.completions.create.side_effect = RateLimitError(
            "Rate limit reached",
            response=httpx.Response(429, request=REQUEST),
            body=None,
        )
        provider = OpenAICompatibleProvider(text_call(stream=True))

        with patch.object(OpenAICompatibleProvider, "_get_client", return_value=client):
            with pytest.raises(UpstreamError) as exc_info:
                async for _ in provider.stream_text():
                    pass

        assert exc_info.value.message == "Rate limit reached"
        assert exc_info.value.upstream_status == 429
        assert exc_info.value.provider == "Groq"
        client.close.assert_awaited_once()

    async def test_connection_drop_mid_stream_becomes_upstream_error(self):
        client = fake_client()
        client.chat.completions.create.return_value = FakeStream(
            [chunk("partial")], error=APIConnectionError(request=REQUEST)
        )
        provider = OpenAICompatibleProvider(text_call(stream=True))

        events = []
        with patch.object(OpenAICompatibleProvider, "_get_client", return_value=client):
            with pytest.raises(UpstreamError):
                async for event in provider.stream_text():
                    events.append(event)

        assert events == [TextDelta("partial")]


@pytest.mark.asyncio
class TestGenerateText:
    async def test_returns_message_content_with_json_mode(self):
        client = fake_client()
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))],
            usage=SimpleNamespace(prompt_tokens=1, completion_tokens=2, total_tokens=3),
        )
        provider = OpenAICompatibleProvider(text_call(stream=False, json_mode=True))

        with patch.object(OpenAICompatibleProvider, "_get_client", return_value=client):
            text = await provider.generate_text()

        assert text == '{"a": 1}'
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["stream"] is False

    async def test_empty_choices_return_empty_string(self):
        client = fake_client()
        client.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
        provider = OpenAICompatibleProvider(text_call(stream=False))

        with patch.object(OpenAICompatibleProvider, "_get_client", return_value=client):
            assert await provider.generate_text() == ""


@pytest.mark.asyncio
class TestGenerateImages:
    async def test_b64_and_url_results(self):
        client = fake_client()
        client.images.generate.return_value = SimpleNamespace(data=[
            SimpleNamespace(b64_json="aGVsbG8=", url=None),
            SimpleNamespace(b64_json=None, url="https://cdn.example/x.png"),
        ])
        call = ProviderCallSpec(
            family=ProviderFamily.OPENAI_COMPATIBLE,
            target=TARGET,
            task=TaskType.GENERATE_IMAGE,
            payload={"model": "dall-e-3", "prompt": "a fox", "n": 2, "response_format": "b64_json"},
        )

        with patch.object(OpenAICompatibleProvider, "_get_client", return_value=client):
            images = await OpenAICompatibleProvider(call).generate_images()

        assert images == ["aGVsbG8=", ImageURL("https://cdn.example/x.png")]
        client.images.generate.assert_awaited_once_with(**call.payload)


class TestClient:
    def test_client_uses_target_endpoint_and_no_retries(self):
        client = OpenAICompatibleProvider(text_call(stream=False), timeout=7)._get_client()
        assert str(client.base_url).rstrip("/") == "https://api.groq.com/openai/v1"
        assert client.max_retries == 0
        assert client.api_key == "groq-key"

    def test_client_uses_injected_connection_pool(self):
        pool = httpx.AsyncClient()
        provider = OpenAICompatibleProvider(text_call(stream=False), http_client=pool)
        assert provider._get_client()._client is pool


@pytest.mark.asyncio
class TestInjectedPool:
    async def test_injected_pool_is_left_open(self):
        client = fake_client()
        client.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
        provider = OpenAICompatibleProvider(text_call(stream=False), http_client=httpx.AsyncClient())

        with patch.object(OpenAICompatibleProvider, "_get_client", return_value=client):
            await provider.generate_text()

        client.close.assert_not_awaited()


class TestProviderFactory:
    def test_every_family_receives_the_shared_pool(self):
        pool = httpx.AsyncClient()
        native_call = ProviderCallSpec(
            family=ProviderFamily.NATIVE,
            target=ExecutionTarget(provider_id="Gemini", model="gemini-2.5-flash", credential="g"),
            task=TaskType.GENERATE_TEXT,
            payload={},
        )

        native = get_provider(native_call, timeout=3, http_client=pool)
        compatible = get_provider(text_call(stream=False), timeout=3, http_client=pool)

        assert isinstance(native, GoogleProvider)
        assert isinstance(compatible, OpenAICompatibleProvider)
        assert native.http_client is pool
        assert compatible.http_client is pool
        assert compatible.timeout == 3
