"""
Provider Families

One implementation per wire contract. The adapter decides the family for a
target; the registry maps it to the class that speaks it.
"""

import httpx

from aiproxy.core.config import settings
from aiproxy.services.ai.interface import AIProviderInterface
from aiproxy.services.ai.providers.google import GoogleProvider
from aiproxy.services.ai.providers.openai import OpenAICompatibleProvider
from aiproxy.services.ai.types import ProviderCallSpec, ProviderFamily

PROVIDER_REGISTRY: dict[ProviderFamily, type[AIProviderInterface]] = {
    ProviderFamily.NATIVE: GoogleProvider,
    ProviderFamily.OPENAI_COMPATIBLE: OpenAICompatibleProvider,
}


def get_provider(
    call: ProviderCallSpec,
    timeout: float | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AIProviderInterface:
    """Instantiate the provider that serves a call."""
    provider_cls = PROVIDER_REGISTRY[call.family]
    return provider_cls(
        call,
        timeout=timeout or settings.upstream_timeout_seconds,
        http_client=http_client,
    )


__all__ = [
    "PROVIDER_REGISTRY",
    "GoogleProvider",
    "OpenAICompatibleProvider",
    "get_provider",
]
