"""
AI Gateway

Main entry point for provider-agnostic AI requests:
- chat: resolves the provider from the catalog, streams framed text
- run_task: explicit provider/model/key, text (streamed or whole) or images

Everything that can fail before the first frame (resolution, adaptation, the
upstream opening the stream) raises, so the HTTP layer can still answer with
a JSON error. After that, failures end the stream with an error frame.
"""

from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog
from fastapi import Depends

from aiproxy.core.exceptions import MissingCredentialError, ValidationError
from aiproxy.core.logging import enrich_event
from aiproxy.services.ai.adapter import adapt
from aiproxy.services.ai.catalog import ProviderCatalogService, get_catalog_service
from aiproxy.services.ai.images import assemble_images
from aiproxy.services.ai.interface import AIProviderInterface
from aiproxy.services.ai.providers import get_provider
from aiproxy.services.ai.resolver import resolve
from aiproxy.services.ai.streaming import encode_stream, normalize_stream
from aiproxy.services.ai.types import (
    CallerPreference,
    CatalogSnapshot,
    ChatMessage,
    ExecutionTarget,
    GenerationParams,
    GenerationRequest,
    ModelKind,
    ProviderCallSpec,
    StreamEvent,
    TaskType,
)

logger = structlog.get_logger()


class CatalogReader(Protocol):
    """What the gateway needs from the catalog store."""

    async def load_snapshot(self) -> CatalogSnapshot: ...

    async def get_caller_preference(self, caller_id: str) -> CallerPreference: ...


@dataclass(frozen=True)
class TaskRequest:
    """Generic task call with an explicit execution target."""

    task: str
    provider: str
    model: str
    api_key: str | None = field(default=None, repr=False)
    base_url: str | None = None
    stream: bool = False
    system: str | None = None
    params: GenerationParams = field(default_factory=GenerationParams)


async def _start_stream(
    events: AsyncIterator[StreamEvent],
) -> AsyncGenerator[StreamEvent, None]:
    """Wait for the first upstream event, then replay the whole stream.

    Errors raised while the upstream opens the stream propagate from here.
    """
    iterator = aiter(events)
    try:
        first: StreamEvent | None = await anext(iterator)
    except StopAsyncIteration:
        first = None

    async def replay() -> AsyncGenerator[StreamEvent, None]:
        try:
            if first is not None:
                yield first
            async for event in iterator:
                yield event
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    return replay()


class AIGateway:
    """Provider-agnostic AI gateway.

    Holds no state across requests; one instance serves one request.
    """

    def __init__(
        self,
        catalog: CatalogReader,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize gateway.

        Args:
            catalog: Read access to providers, settings and caller profiles
            http_client: Shared client for native-family calls and image
                fetches; each call creates its own when omitted
        """
        self.catalog = catalog
        self.http_client = http_client

    def _provider(self, call: ProviderCallSpec) -> AIProviderInterface:
        enrich_event(
            ai={
                "provider": call.target.provider_id,
                "model": call.target.model,
                "family": call.family.value,
                "task": call.task.value,
                "stream": call.stream,
                "grounding": call.grounding_enabled,
            }
        )
        return get_provider(call, http_client=self.http_client)

    async def _stream_frames(self, call: ProviderCallSpec) -> AsyncIterator[str]:
        provider = self._provider(call)
        events = await _start_stream(provider.stream_text())
        logger.info(
            "ai_stream_started",
            provider=call.target.provider_id,
            model=call.target.model,
        )
        return encode_stream(normalize_stream(events, call.grounding_enabled))

    async def chat(
        self,
        caller_id: str,
        messages: Sequence[ChatMessage],
        system_prompt: str,
        grounding_enabled: bool = False,
    ) -> AsyncIterator[str]:
        """Stream a chat answer as encoded frame lines.

        The provider is resolved from the caller's preference and the catalog.

        Raises:
            CallerNotFoundError: Caller has no profile
            NoEligibleProviderError: Nothing in the catalog can answer
            MissingCredentialError: Selected provider has no key
            UnsupportedParameterError: Target cannot be called as configured
            UpstreamError: Provider refused to open the stream
        """
        preference = await self.catalog.get_caller_preference(caller_id)
        snapshot = await self.catalog.load_snapshot()

        target = resolve(preference, snapshot.settings, snapshot.providers, ModelKind.CHAT)

        request = GenerationRequest(
            task=TaskType.GENERATE_TEXT,
            messages=tuple(messages),
            system_instruction=system_prompt,
            stream=True,
            grounding_enabled=grounding_enabled,
        )
        return await self._stream_frames(adapt(request, target))

    async def run_task(self, task_request: TaskRequest) -> dict[str, Any] | AsyncIterator[str]:
        """Run a generic task against the target named in the request.

        Returns:
            {"text": ...} or {"images": [...]}, or encoded frame lines for a
            streamed text task

        Raises:
            ValidationError: Unknown task or missing field
            MissingCredentialError: No API key supplied
            UnsupportedParameterError: Target cannot be called as requested
            UpstreamError: Provider failure before any output
        """
        try:
            task = TaskType(task_request.task)
        except ValueError as e:
            raise ValidationError(f"Unknown task: {task_request.task}") from e

        if not task_request.provider:
            raise ValidationError("Missing required parameter: provider")
        if not task_request.model:
            raise ValidationError("Missing required parameter: model")
        if not task_request.api_key:
            raise MissingCredentialError(
                f"API Key for provider '{task_request.provider}' is missing."
            )

        target = ExecutionTarget(
            provider_id=task_request.provider,
            model=task_request.model,
            credential=task_request.api_key,
            base_endpoint=task_request.base_url or None,
        )

        params = task_request.params
        if task == TaskType.GENERATE_IMAGE:
            request = GenerationRequest(task=task, params=params)
            call = adapt(request, target)
            raw_images = await self._provider(call).generate_images()
            images = await assemble_images(raw_images, http_client=self.http_client)
            logger.info("ai_images_generated", provider=target.provider_id, count=len(images))
            return {"images": images}

        if not params.prompt:
            raise ValidationError("Missing required parameter: prompt")

        request = GenerationRequest(
            task=task,
            messages=(ChatMessage(role="user", content=params.prompt),),
            system_instruction=task_request.system,
            stream=task_request.stream,
            params=params,
        )
        call = adapt(request, target)

        if call.stream:
            return await self._stream_frames(call)

        text = await self._provider(call).generate_text()
        return {"text": text}


async def get_ai_gateway(
    catalog: ProviderCatalogService = Depends(get_catalog_service),
) -> AIGateway:
    """FastAPI dependency for the request's gateway."""
    return AIGateway(catalog)
