"""
Provider Catalog Service

Read-only access to the provider catalog, the global settings row and caller
profiles. Every read returns immutable domain objects with credentials
already decrypted; nothing is cached between requests.
"""

from collections.abc import Sequence

import structlog
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aiproxy.core.exceptions import CallerNotFoundError
from aiproxy.db import get_db
from aiproxy.db.models import GlobalSettingsModel, ProfileModel, ProviderConfigModel
from aiproxy.services.ai.encryption import decrypt_secret
from aiproxy.services.ai.types import (
    CallerPreference,
    CatalogSnapshot,
    GlobalSettings,
    ProviderConfig,
    ProviderModels,
)

logger = structlog.get_logger()

GLOBAL_SETTINGS_ROW_ID = 1


def provider_from_model(row: ProviderConfigModel) -> ProviderConfig:
    return ProviderConfig(
        id=row.id,
        name=row.name,
        credential=decrypt_secret(row.api_key_encrypted),
        enabled=bool(row.is_enabled),
        models=ProviderModels.from_dict(row.models),
        base_endpoint=row.base_url or None,
    )


def settings_from_model(row: GlobalSettingsModel | None) -> GlobalSettings:
    if row is None:
        return GlobalSettings()
    return GlobalSettings(
        active_provider_id=row.active_ai_provider or GlobalSettings.active_provider_id,
        default_text_model=row.global_default_text_model,
        default_image_model=row.global_default_image_model,
        default_chat_model=row.global_default_chat_model,
        default_embedding_model=row.global_default_embedding_model,
    )


class ProviderCatalogService:
    """Reads the catalog collaborators for one request."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_providers(self) -> Sequence[ProviderConfig]:
        """All providers, enabled or not, ordered by id."""
        result = await self.db.execute(
            select(ProviderConfigModel).order_by(ProviderConfigModel.id)
        )
        return tuple(provider_from_model(row) for row in result.scalars().all())

    async def load_global_settings(self) -> GlobalSettings:
        """The singleton settings row, or defaults when it is missing."""
        row = await self.db.get(GlobalSettingsModel, GLOBAL_SETTINGS_ROW_ID)
        if row is None:
            logger.warning("ai_global_settings_missing")
        return settings_from_model(row)

    async def load_snapshot(self) -> CatalogSnapshot:
        providers = await self.load_providers()
        global_settings = await self.load_global_settings()
        logger.debug(
            "ai_catalog_loaded",
            providers=len(providers),
            enabled=sum(1 for p in providers if p.enabled),
            active_provider=global_settings.active_provider_id,
        )
        return CatalogSnapshot(providers=tuple(providers), settings=global_settings)

    async def get_caller_preference(self, caller_id: str) -> CallerPreference:
        """Model overrides from the caller's profile.

        Raises:
            CallerNotFoundError: The caller has no profile
        """
        profile = await self.db.get(ProfileModel, caller_id)
        if profile is None:
            raise CallerNotFoundError("User profile not found.")
        return CallerPreference(
            assigned_text_model=profile.assigned_ai_model_text or None,
            assigned_image_model=profile.assigned_ai_model_image or None,
        )


async def get_catalog_service(db: AsyncSession = Depends(get_db)) -> ProviderCatalogService:
    """FastAPI dependency for catalog reads on the request's session."""
    return ProviderCatalogService(db)
