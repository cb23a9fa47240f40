"""
Unit tests for AIGateway orchestration.
"""

from unittest.mock import patch

import pytest

from aiproxy.core.exceptions import (
    CallerNotFoundError,
    MissingCredentialError,
    NoEligibleProviderError,
    UpstreamError,
    ValidationError,
)
from aiproxy.services.ai.gateway import AIGateway, TaskRequest
from aiproxy.services.ai.types import (
    CallerPreference,
    CatalogSnapshot,
    ChatMessage,
    GenerationParams,
    GlobalSettings,
    GroundingData,
    ProviderFamily,
    TextDelta,
)
from tests.fakes import CALLER_ID, InMemoryCatalog, ScriptedProvider

pytestmark = pytest.mark.asyncio

SOURCE = {"web": {"uri": "https://a.example", "title": "A"}}

PROVIDER_FACTORY = "aiproxy.services.ai.gateway.get_provider"


async def read_all(lines) -> str:
    return "".join([line async for line in lines])


class TestChat:
    # =========================================================================
    # Resolution
    # =========================================================================

    async def test_chat_uses_caller_pinned_model(self, catalog_snapshot):
        catalog = InMemoryCatalog(
            catalog_snapshot,
            {CALLER_ID: CallerPreference(assigned_text_model="llama3-70b-8192")},
        )
        scripted = ScriptedProvider(events=[TextDelta("ok")])

        with patch(PROVIDER_FACTORY, return_value=scripted) as factory:
            lines = await AIGateway(catalog).chat(CALLER_ID, [ChatMessage("user", "Hi")], "sys")
            body = await read_all(lines)

        call = factory.call_args.args[0]
        assert call.target.provider_id == "Groq"
        assert call.target.model == "llama3-70b-8192"
        assert call.family == ProviderFamily.OPENAI_COMPATIBLE
        assert body == '0:"ok"\n'

    async def test_chat_falls_back_to_global_default(self, catalog):
        with patch(PROVIDER_FACTORY, return_value=ScriptedProvider()) as factory:
            await AIGateway(catalog).chat(CALLER_ID, [ChatMessage("user", "Hi")], "sys")

        call = factory.call_args.args[0]
        assert call.target.provider_id == "Gemini"
        assert call.target.model == "gemini-2.5-flash"
        assert call.payload["systemInstruction"] == {"parts": [{"text": "sys"}]}

    async def test_unknown_caller(self, catalog):
        with pytest.raises(CallerNotFoundError):
            await AIGateway(catalog).chat("stranger", [ChatMessage("user", "Hi")], "sys")

    async def test_no_enabled_provider(self):
        catalog = InMemoryCatalog(
            CatalogSnapshot(providers=(), settings=GlobalSettings()),
            {CALLER_ID: CallerPreference()},
        )
        with pytest.raises(NoEligibleProviderError):
            await AIGateway(catalog).chat(CALLER_ID, [ChatMessage("user", "Hi")], "sys")

    # =========================================================================
    # Streaming
    # =========================================================================

    async def test_grounded_chat_emits_metadata_after_text(self, catalog):
        scripted = ScriptedProvider(
            events=[TextDelta("Hel"), GroundingData((SOURCE,)), TextDelta("lo")]
        )

        with patch(PROVIDER_FACTORY, return_value=scripted) as factory:
            lines = await AIGateway(catalog).chat(
                CALLER_ID, [ChatMessage("user", "News?")], "sys", grounding_enabled=True
            )
            body = await read_all(lines)

        assert factory.call_args.args[0].payload["tools"] == [{"google_search": {}}]
        assert body.splitlines() == [
            '0:"Hel"',
            '0:"lo"',
            '2:{"grounding_sources": [{"web": {"uri": "https://a.example", "title": "A"}}]}',
        ]

    async def test_error_before_first_token_raises(self, catalog):
        scripted = ScriptedProvider(error=UpstreamError("quota exceeded", upstream_status=429))

        with patch(PROVIDER_FACTORY, return_value=scripted):
            with pytest.raises(UpstreamError, match="quota exceeded"):
                await AIGateway(catalog).chat(CALLER_ID, [ChatMessage("user", "Hi")], "sys")

    async def test_error_after_first_token_ends_with_error_frame(self, catalog):
        scripted = ScriptedProvider(
            events=[TextDelta("Hel")], error=UpstreamError("connection reset")
        )

        with patch(PROVIDER_FACTORY, return_value=scripted):
            lines = await AIGateway(catalog).chat(CALLER_ID, [ChatMessage("user", "Hi")], "sys")
            body = await read_all(lines)

        assert body == '0:"Hel"\n3:"connection reset"\n'
        assert scripted.closed is True

    async def test_closing_frame_stream_closes_provider_stream(self, catalog):
        scripted = ScriptedProvider(events=[TextDelta("a"), TextDelta("b"), TextDelta("c")])

        with patch(PROVIDER_FACTORY, return_value=scripted):
            lines = await AIGateway(catalog).chat(CALLER_ID, [ChatMessage("user", "Hi")], "sys")
            assert await anext(lines) == '0:"a"\n'
            await lines.aclose()

        assert scripted.closed is True


class TestRunTask:
    @pytest.fixture
    def gateway(self, catalog) -> AIGateway:
        return AIGateway(catalog)

    # =========================================================================
    # Validation
    # =========================================================================

    async def test_unknown_task(self, gateway):
        with pytest.raises(ValidationError, match="Unknown task: summarize"):
            await gateway.run_task(TaskRequest(task="summarize", provider="OpenAI", model="m", api_key="k"))

    async def test_missing_api_key(self, gateway):
        with pytest.raises(MissingCredentialError, match="API Key for provider 'OpenAI' is missing."):
            await gateway.run_task(TaskRequest(task="generateText", provider="OpenAI", model="m"))

    async def test_text_requires_prompt(self, gateway):
        with pytest.raises(ValidationError, match="prompt"):
            await gateway.run_task(
                TaskRequest(task="generateText", provider="OpenAI", model="m", api_key="k")
            )

    # =========================================================================
    # Text
    # =========================================================================

    async def test_whole_text_answer(self, gateway):
        request = TaskRequest(
            task="generateText",
            provider="OpenAI",
            model="gpt-4o",
            api_key="sk-test",
            system="Answer in JSON.",
            params=GenerationParams(prompt="List two colors", json_mode=True),
        )

        with patch(PROVIDER_FACTORY, return_value=ScriptedProvider(text='["red", "blue"]')) as factory:
            result = await gateway.run_task(request)

        assert result == {"text": '["red", "blue"]'}
        call = factory.call_args.args[0]
        assert call.json_mode is True
        assert call.target.credential == "sk-test"
        assert call.payload["messages"][0] == {"role": "system", "content": "Answer in JSON."}

    async def test_streamed_text_answer(self, gateway):
        request = TaskRequest(
            task="generateText",
            provider="Groq",
            model="llama3-8b-8192",
            api_key="k",
            base_url="https://api.groq.com/openai/v1",
            stream=True,
            params=GenerationParams(prompt="Hi"),
        )

        with patch(PROVIDER_FACTORY, return_value=ScriptedProvider(events=[TextDelta("Yo")])):
            result = await gateway.run_task(request)
            body = await read_all(result)

        assert body == '0:"Yo"\n'

    # =========================================================================
    # Images
    # =========================================================================

    async def test_images_are_returned_as_base64(self, gateway):
        request = TaskRequest(
            task="generateImage",
            provider="Gemini",
            model="imagen-3.0-generate-002",
            api_key="k",
            params=GenerationParams(prompt="a fox", image_count=2, image_size="512x512"),
        )

        with patch(PROVIDER_FACTORY, return_value=ScriptedProvider(images=[b"\x01\x02", "AQI="])) as factory:
            result = await gateway.run_task(request)

        assert result == {"images": ["AQI=", "AQI="]}
        assert factory.call_args.args[0].payload["width"] == 512
