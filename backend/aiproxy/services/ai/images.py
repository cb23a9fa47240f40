"""
Image Response Assembler

Normalizes the encodings providers return for generated images into one list
of base64 strings:
- str: already base64, returned unchanged
- bytes: base64-encoded
- ImageURL: fetched, then base64-encoded

Remote fetches run concurrently in one task group; the output keeps the input
order, and the first failure cancels the remaining fetches and fails the
whole assembly.
"""

import asyncio
import base64
from collections.abc import Sequence

import httpx
import structlog

from aiproxy.core.config import settings
from aiproxy.core.exceptions import UpstreamError
from aiproxy.services.ai.types import ImageURL, RawImageResult

logger = structlog.get_logger()


async def _fetch_image(client: httpx.AsyncClient, url: str) -> str:
    try:
        response = await client.get(url, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.warning("ai_image_fetch_failed", url=url, error=str(e))
        raise UpstreamError(f"Failed to fetch generated image: {e}") from e

    if response.status_code >= 400:
        logger.warning("ai_image_fetch_failed", url=url, status=response.status_code)
        raise UpstreamError(
            f"Failed to fetch generated image: HTTP {response.status_code}",
            upstream_status=response.status_code,
        )

    return base64.b64encode(response.content).decode("ascii")


async def _encode(client: httpx.AsyncClient | None, result: RawImageResult) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, bytes):
        return base64.b64encode(result).decode("ascii")
    if isinstance(result, ImageURL) and client is not None:
        return await _fetch_image(client, result.url)
    raise UpstreamError(f"Unsupported image result type: {type(result).__name__}")


async def assemble_images(
    results: Sequence[RawImageResult],
    http_client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> list[str]:
    """Convert raw provider image results into base64 strings.

    Args:
        results: Provider output, in provider order
        http_client: Client for remote fetches; one is created if omitted
        timeout: Fetch timeout when creating the client

    Raises:
        UpstreamError: Any remote fetch failed
    """
    async def _assemble(client: httpx.AsyncClient | None) -> list[str]:
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(_encode(client, result)) for result in results]
        except ExceptionGroup as eg:
            raise eg.exceptions[0]
        return [task.result() for task in tasks]

    needs_fetch = any(isinstance(result, ImageURL) for result in results)
    if http_client is not None or not needs_fetch:
        return await _assemble(http_client)

    async with httpx.AsyncClient(
        timeout=timeout or settings.image_fetch_timeout_seconds,
    ) as client:
        return await _assemble(client)
