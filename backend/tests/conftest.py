"""
Pytest configuration and fixtures for AI proxy tests.

No database or network is needed: API tests swap the catalog dependency for
an in-memory catalog and patch the provider factory.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from aiproxy.api.main import app
from aiproxy.services.ai.catalog import get_catalog_service
from aiproxy.services.ai.types import (
    CallerPreference,
    CatalogSnapshot,
    GlobalSettings,
    ProviderConfig,
    ProviderModels,
)
from tests.fakes import CALLER_ID, InMemoryCatalog


@pytest.fixture
def gemini_provider() -> ProviderConfig:
    return ProviderConfig(
        id="Gemini",
        name="Google Gemini",
        credential="gemini-key",
        enabled=True,
        models=ProviderModels(
            text=("gemini-2.5-flash",),
            chat=("gemini-2.5-flash",),
            image=("imagen-3.0-generate-002",),
        ),
    )


@pytest.fixture
def groq_provider() -> ProviderConfig:
    return ProviderConfig(
        id="Groq",
        name="Groq",
        credential="groq-key",
        enabled=True,
        models=ProviderModels(
            text=("llama3-8b-8192", "llama3-70b-8192"),
            chat=("llama3-8b-8192", "llama3-70b-8192"),
        ),
        base_endpoint="https://api.groq.com/openai/v1",
    )


@pytest.fixture
def catalog_snapshot(gemini_provider, groq_provider) -> CatalogSnapshot:
    return CatalogSnapshot(
        providers=(gemini_provider, groq_provider),
        settings=GlobalSettings(
            active_provider_id="Gemini",
            default_text_model="gemini-2.5-flash",
        ),
    )


@pytest.fixture
def catalog(catalog_snapshot) -> InMemoryCatalog:
    return InMemoryCatalog(catalog_snapshot, {CALLER_ID: CallerPreference()})


@pytest.fixture
def caller_headers() -> dict[str, str]:
    return {"x-user-id": CALLER_ID}


@pytest_asyncio.fixture(scope="function")
async def client(catalog: InMemoryCatalog) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app with the in-memory catalog."""
    app.dependency_overrides[get_catalog_service] = lambda: catalog

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
