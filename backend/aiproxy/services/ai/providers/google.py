"""
Google Gemini Provider

Native family. Talks to the Generative Language REST API directly:
- models/{model}:streamGenerateContent?alt=sse for streamed text
- models/{model}:generateContent for complete answers
- models/{model}:predict for Imagen image generation

Grounding (google_search tool) metadata arrives on the candidates of the
streamed chunks and is surfaced as GroundingData events.
"""

import base64
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from math import gcd
from typing import Any

import httpx
import structlog

from aiproxy.core.config import settings
from aiproxy.core.exceptions import UpstreamError
from aiproxy.services.ai.interface import AIProviderInterface
from aiproxy.services.ai.types import (
    GroundingData,
    ProviderFamily,
    RawImageResult,
    StreamEvent,
    TextDelta,
)

logger = structlog.get_logger()

# Aspect ratios accepted by Imagen
IMAGEN_ASPECT_RATIOS = {
    (1, 1): "1:1",
    (3, 4): "3:4",
    (4, 3): "4:3",
    (9, 16): "9:16",
    (16, 9): "16:9",
}


def aspect_ratio_for(width: int, height: int) -> str | None:
    divisor = gcd(width, height)
    return IMAGEN_ASPECT_RATIOS.get((width // divisor, height // divisor))


class GoogleProvider(AIProviderInterface):
    """Gemini / Imagen over plain HTTPS with an API key."""

    family = ProviderFamily.NATIVE
    supports_grounding = True
    supports_json_mode = True

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Injected client, or one scoped to this call."""
        if self.http_client is not None:
            yield self.http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    def _url(self, method: str) -> str:
        base_url = (self.call.target.base_endpoint or settings.gemini_api_url).rstrip("/")
        return f"{base_url}/models/{self.model_name}:{method}"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.call.target.credential,
        }

    def _status_error(self, status_code: int, body: str) -> UpstreamError:
        """Build an UpstreamError keeping Google's own message."""
        message = body[:500]
        try:
            error = json.loads(body).get("error", {})
            if error.get("message"):
                message = error["message"]
        except (json.JSONDecodeError, AttributeError):
            pass

        logger.error(
            "google_api_error",
            model=self.model_name,
            status=status_code,
            error=message,
        )
        return UpstreamError(message, upstream_status=status_code, provider=self.provider_name)

    def _transport_error(self, error: httpx.HTTPError) -> UpstreamError:
        logger.error("google_transport_error", model=self.model_name, error=str(error))
        return UpstreamError(
            f"Gemini API request failed: {error}",
            provider=self.provider_name,
        )

    @staticmethod
    def _candidate_text(candidate: dict[str, Any]) -> str:
        """Concatenate answer parts, skipping thought parts."""
        parts = candidate.get("content", {}).get("parts", [])
        return "".join(
            part.get("text", "") for part in parts if "text" in part and not part.get("thought")
        )

    def _events_from_chunk(self, chunk: dict[str, Any]) -> list[StreamEvent]:
        if "error" in chunk:
            error = chunk["error"]
            raise UpstreamError(
                error.get("message", "Gemini stream error"),
                upstream_status=error.get("code"),
                provider=self.provider_name,
            )

        candidates = chunk.get("candidates") or []
        if not candidates:
            return []

        candidate = candidates[0]
        events: list[StreamEvent] = []

        text = self._candidate_text(candidate)
        if text:
            events.append(TextDelta(text))

        grounding_chunks = candidate.get("groundingMetadata", {}).get("groundingChunks")
        if grounding_chunks:
            events.append(GroundingData(tuple(grounding_chunks)))

        return events

    async def stream_text(self) -> AsyncIterator[StreamEvent]:
        logger.info(
            "google_stream_start",
            model=self.model_name,
            grounding=self.call.grounding_enabled,
        )

        async with self._client() as client:
            try:
                async with client.stream(
                    "POST",
                    self._url("streamGenerateContent"),
                    params={"alt": "sse"},
                    json=self.call.payload,
                    headers=self._headers(),
                ) as response:
                    if response.status_code != 200:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise self._status_error(response.status_code, body)

                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if not data:
                            continue
                        try:
                            chunk = json.loads(data)
                        except json.JSONDecodeError as e:
                            raise UpstreamError(
                                "Malformed Gemini stream chunk", provider=self.provider_name
                            ) from e
                        for event in self._events_from_chunk(chunk):
                            yield event
            except httpx.HTTPError as e:
                raise self._transport_error(e) from e

    async def generate_text(self) -> str:
        logger.info(
            "google_generate_text_start",
            model=self.model_name,
            json_mode=self.call.json_mode,
        )

        async with self._client() as client:
            try:
                response = await client.post(
                    self._url("generateContent"),
                    json=self.call.payload,
                    headers=self._headers(),
                )
            except httpx.HTTPError as e:
                raise self._transport_error(e) from e

        if response.status_code != 200:
            raise self._status_error(response.status_code, response.text)

        result = response.json()
        candidates = result.get("candidates") or []
        text = self._candidate_text(candidates[0]) if candidates else ""

        if not text:
            finish_reason = candidates[0].get("finishReason") if candidates else None
            logger.warning(
                "google_empty_response",
                model=self.model_name,
                finish_reason=finish_reason,
            )

        usage = None
        if "usageMetadata" in result:
            metadata = result["usageMetadata"]
            usage = {
                "prompt_tokens": metadata.get("promptTokenCount", 0),
                "completion_tokens": metadata.get("candidatesTokenCount", 0),
                "total_tokens": metadata.get("totalTokenCount", 0),
            }

        logger.info("google_generate_text_success", model=self.model_name, usage=usage)
        return text

    def _predict_body(self) -> dict[str, Any]:
        payload = self.call.payload
        parameters: dict[str, Any] = {
            "sampleCount": payload.get("numberOfImages", 1),
            "outputOptions": {"mimeType": "image/jpeg"},
        }
        if payload.get("width") and payload.get("height"):
            ratio = aspect_ratio_for(payload["width"], payload["height"])
            if ratio:
                parameters["aspectRatio"] = ratio
        return {"instances": [{"prompt": payload["prompt"]}], "parameters": parameters}

    async def generate_images(self) -> list[RawImageResult]:
        logger.info("google_generate_images_start", model=self.model_name)

        async with self._client() as client:
            try:
                response = await client.post(
                    self._url("predict"),
                    json=self._predict_body(),
                    headers=self._headers(),
                )
            except httpx.HTTPError as e:
                raise self._transport_error(e) from e

        if response.status_code != 200:
            raise self._status_error(response.status_code, response.text)

        predictions = response.json().get("predictions") or []
        images: list[RawImageResult] = [
            base64.b64decode(prediction["bytesBase64Encoded"])
            for prediction in predictions
            if prediction.get("bytesBase64Encoded")
        ]

        logger.info("google_generate_images_success", model=self.model_name, count=len(images))
        return images
