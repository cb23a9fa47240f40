"""
OpenAI-Compatible Provider

Default family for every provider that is not native Gemini. Works with any
API implementing the OpenAI chat completions and images formats:
- OpenAI itself
- Groq, Deepseek, OpenRouter, Mistral, Novita, Qwen, ...
- Self-hosted vLLM / Ollama endpoints
"""

from collections.abc import AsyncIterator

import structlog
from openai import APIError, APIStatusError, AsyncOpenAI

from aiproxy.core.config import settings
from aiproxy.core.exceptions import UpstreamError
from aiproxy.services.ai.interface import AIProviderInterface
from aiproxy.services.ai.types import (
    ImageURL,
    ProviderFamily,
    RawImageResult,
    StreamEvent,
    TextDelta,
)

logger = structlog.get_logger()


class OpenAICompatibleProvider(AIProviderInterface):
    """chat.completions / images.generate over AsyncOpenAI."""

    family = ProviderFamily.OPENAI_COMPATIBLE
    supports_grounding = False
    supports_json_mode = True

    def _get_client(self) -> AsyncOpenAI:
        """Create a client for this call only."""
        target = self.call.target
        return AsyncOpenAI(
            api_key=target.credential,
            base_url=target.base_endpoint or settings.openai_api_url,
            timeout=self.timeout,
            # Never retried here
            max_retries=0,
            http_client=self.http_client,
        )

    async def _release(self, client: AsyncOpenAI) -> None:
        # An injected pool belongs to the caller
        if self.http_client is None:
            await client.close()

    def _upstream_error(self, error: APIError) -> UpstreamError:
        status = error.status_code if isinstance(error, APIStatusError) else None
        logger.warning(
            "ai_upstream_error",
            provider=self.provider_name,
            model=self.model_name,
            status=status,
            error=error.message,
        )
        return UpstreamError(error.message, upstream_status=status, provider=self.provider_name)

    def _text_kwargs(self, stream: bool) -> dict:
        kwargs = dict(self.call.payload)
        kwargs["stream"] = stream
        if not self.supports_json_mode or stream:
            kwargs.pop("response_format", None)
        return kwargs

    async def stream_text(self) -> AsyncIterator[StreamEvent]:
        logger.info("ai_stream_start", provider=self.provider_name, model=self.model_name)

        client = self._get_client()
        try:
            try:
                stream = await client.chat.completions.create(**self._text_kwargs(stream=True))
            except APIError as e:
                raise self._upstream_error(e) from e

            try:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
                    if content:
                        yield TextDelta(content)
            except APIError as e:
                raise self._upstream_error(e) from e
            finally:
                await stream.close()
        finally:
            await self._release(client)

    async def generate_text(self) -> str:
        logger.info("ai_generate_text_start", provider=self.provider_name, model=self.model_name)

        client = self._get_client()
        try:
            response = await client.chat.completions.create(**self._text_kwargs(stream=False))
        except APIError as e:
            raise self._upstream_error(e) from e
        finally:
            await self._release(client)

        content = response.choices[0].message.content if response.choices else None

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        logger.info(
            "ai_generate_text_success",
            provider=self.provider_name,
            model=self.model_name,
            usage=usage,
        )
        return content or ""

    async def generate_images(self) -> list[RawImageResult]:
        logger.info("ai_generate_images_start", provider=self.provider_name, model=self.model_name)

        client = self._get_client()
        try:
            response = await client.images.generate(**self.call.payload)
        except APIError as e:
            raise self._upstream_error(e) from e
        finally:
            await self._release(client)

        results: list[RawImageResult] = []
        for image in response.data or []:
            if image.b64_json:
                results.append(image.b64_json)
            elif image.url:
                # Third parties sometimes ignore response_format
                results.append(ImageURL(image.url))

        logger.info(
            "ai_generate_images_success",
            provider=self.provider_name,
            model=self.model_name,
            count=len(results),
        )
        return results
