"""
AI Provider Interface

Abstract base class defining the contract that every provider family must
implement. One instance serves exactly one ProviderCallSpec.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import httpx

from aiproxy.services.ai.types import (
    ProviderCallSpec,
    ProviderFamily,
    RawImageResult,
    StreamEvent,
)


class AIProviderInterface(ABC):
    """Abstract interface for provider families.

    Implementations (native Gemini REST, OpenAI-compatible) receive an
    already adapted call and only speak the wire protocol. They never retry.
    """

    family: ProviderFamily
    supports_grounding: bool = False
    supports_json_mode: bool = False

    def __init__(
        self,
        call: ProviderCallSpec,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize provider for one call.

        Args:
            call: Adapted provider call
            timeout: Boundary timeout for the upstream connection, in seconds
            http_client: Shared connection pool owned by the caller; the
                provider never closes it
        """
        self.call = call
        self.timeout = timeout
        self.http_client = http_client

    @property
    def provider_name(self) -> str:
        """Get the provider name for logging."""
        return self.call.target.provider_id

    @property
    def model_name(self) -> str:
        """Get the model name being used."""
        return self.call.target.model

    @abstractmethod
    def stream_text(self) -> AsyncIterator[StreamEvent]:
        """Stream text generation events as the provider produces them.

        Yields:
            TextDelta per upstream token chunk, GroundingData when the
            provider attaches citation metadata

        Raises:
            UpstreamError: Transport failure or non-success status
        """

    @abstractmethod
    async def generate_text(self) -> str:
        """Wait for and return the complete answer.

        Raises:
            UpstreamError: Transport failure or non-success status
        """

    @abstractmethod
    async def generate_images(self) -> list[RawImageResult]:
        """Generate images, returning whatever encodings the provider sends.

        Raises:
            UpstreamError: Transport failure or non-success status
        """
