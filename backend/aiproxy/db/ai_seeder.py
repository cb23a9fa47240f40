"""
Seeder for the provider catalog.

Inserts the provider templates and the global settings row when they are
missing. Existing rows are never touched, so operator edits survive restarts.
"""

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aiproxy.db.models import GlobalSettingsModel, ProviderConfigModel
from aiproxy.services.ai.resolver import CANONICAL_DEFAULT_MODELS
from aiproxy.services.ai.types import ModelKind, ProviderId

logger = structlog.get_logger()

GEMINI_DEFAULTS = CANONICAL_DEFAULT_MODELS[ProviderId.GEMINI.value]

OPENROUTER_MODELS = [
    "google/gemma-3-27b-it:free",
    "mistralai/mistral-7b-instruct",
    "google/gemini-pro",
    "openai/gpt-4o",
    "nvidia/llama-3.3-nemotron-super-49b-v1:free",
    "qwen/qwen3-235b-a22b:free",
    "google/gemini-2.0-flash-exp:free",
]

PROVIDER_TEMPLATES: list[dict[str, Any]] = [
    {
        "id": ProviderId.GEMINI.value,
        "name": "Google Gemini",
        "is_enabled": True,
        "models": {
            "text": [GEMINI_DEFAULTS[ModelKind.TEXT]],
            "image": [GEMINI_DEFAULTS[ModelKind.IMAGE]],
            "chat": [GEMINI_DEFAULTS[ModelKind.CHAT]],
        },
        "notes": "Global key for all callers. Managed by the operator.",
    },
    {
        "id": ProviderId.OPENAI.value,
        "name": "OpenAI (GPT)",
        "models": {
            "text": ["gpt-4-turbo", "gpt-3.5-turbo"],
            "image": ["dall-e-3"],
            "chat": ["gpt-4-turbo", "gpt-3.5-turbo"],
        },
        "notes": "Uses the OpenAI API.",
        "base_url": "https://api.openai.com/v1",
    },
    {
        "id": ProviderId.GROQ.value,
        "name": "Groq",
        "models": {
            "text": ["llama3-8b-8192", "llama3-70b-8192", "mixtral-8x7b-32768"],
            "chat": ["llama3-8b-8192", "llama3-70b-8192", "mixtral-8x7b-32768"],
        },
        "notes": "GroqCloud API (OpenAI compatible).",
        "base_url": "https://api.groq.com/openai/v1",
    },
    {
        "id": ProviderId.DEEPSEEK.value,
        "name": "Deepseek",
        "models": {
            "text": ["deepseek-chat", "deepseek-coder"],
            "chat": ["deepseek-chat", "deepseek-coder"],
        },
        "notes": "Deepseek API (OpenAI compatible).",
        "base_url": "https://api.deepseek.com/v1",
    },
    {
        "id": ProviderId.OPENROUTER.value,
        "name": "OpenRouter.ai",
        "models": {"text": OPENROUTER_MODELS, "chat": OPENROUTER_MODELS},
        "notes": "Routes to many models with one OpenRouter key.",
        "base_url": "https://openrouter.ai/api/v1",
    },
    {
        "id": ProviderId.MISTRAL.value,
        "name": "Mistral AI",
        "models": {
            "text": ["open-mistral-7b", "open-mixtral-8x7b", "mistral-large-latest"],
            "chat": ["open-mistral-7b", "open-mixtral-8x7b", "mistral-large-latest"],
        },
        "notes": "Official Mistral AI API (OpenAI compatible).",
        "base_url": "https://api.mistral.ai/v1",
    },
    {
        "id": ProviderId.ANTHROPIC.value,
        "name": "Anthropic (Claude)",
        "models": {"text": [], "chat": []},
        "notes": "Placeholder. Needs an OpenAI-compatible base URL to be usable.",
    },
    {
        "id": ProviderId.QWEN.value,
        "name": "Qwen (Alibaba)",
        "models": {"text": [], "chat": []},
        "notes": "Placeholder. Needs an OpenAI-compatible base URL to be usable.",
    },
]


async def seed_provider_templates(db: AsyncSession) -> int:
    """Insert missing provider templates and the settings row.

    Returns:
        Number of rows created
    """
    result = await db.execute(select(ProviderConfigModel.id))
    existing_ids = set(result.scalars().all())

    created = 0
    for template in PROVIDER_TEMPLATES:
        if template["id"] in existing_ids:
            continue
        db.add(
            ProviderConfigModel(
                id=template["id"],
                name=template["name"],
                is_enabled=template.get("is_enabled", False),
                models=template["models"],
                base_url=template.get("base_url"),
                notes=template.get("notes"),
            )
        )
        created += 1

    if await db.get(GlobalSettingsModel, 1) is None:
        db.add(
            GlobalSettingsModel(
                id=1,
                active_ai_provider=ProviderId.GEMINI.value,
                global_default_text_model=GEMINI_DEFAULTS[ModelKind.TEXT],
                global_default_image_model=GEMINI_DEFAULTS[ModelKind.IMAGE],
            )
        )
        created += 1

    if created:
        await db.commit()
        logger.info("ai_catalog_seeded", created=created)
    else:
        logger.debug("ai_catalog_seed_skipped")

    return created
