"""
Model Resolver

Decides which enabled provider, model and credential answer a request.

Resolution cascade (first success wins):
1. Caller's pinned model, matched against every enabled provider
2. Global default model for the kind, matched the same way
3. The globally active provider, with its canonical or first listed model

A caller pin beats the operator defaults, but a pin that matches nothing
degrades to some enabled provider instead of failing.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

import structlog

from aiproxy.core.exceptions import MissingCredentialError, NoEligibleProviderError
from aiproxy.services.ai.types import (
    CallerPreference,
    ExecutionTarget,
    GlobalSettings,
    ModelKind,
    ProviderConfig,
    ProviderId,
    TaskType,
)

logger = structlog.get_logger()

# Last-resort model per provider and kind
CANONICAL_DEFAULT_MODELS: dict[str, dict[ModelKind, str]] = {
    ProviderId.GEMINI.value: {
        ModelKind.TEXT: "gemini-2.5-flash",
        ModelKind.CHAT: "gemini-2.5-flash",
        ModelKind.IMAGE: "imagen-3.0-generate-002",
    },
}


@dataclass(frozen=True)
class Selection:
    """Provider picked by one cascade step; model may still be open."""

    provider: ProviderConfig
    model: str | None
    step: str


ResolutionStep = Callable[
    [CallerPreference | None, GlobalSettings, Sequence[ProviderConfig], ModelKind],
    Selection | None,
]


def kind_for_task(task: TaskType) -> ModelKind:
    return ModelKind.IMAGE if task == TaskType.GENERATE_IMAGE else ModelKind.TEXT


def find_provider_for_model(
    model: str,
    providers: Sequence[ProviderConfig],
) -> ProviderConfig | None:
    """First enabled provider listing the model in any of its sub-lists."""
    for provider in providers:
        if provider.enabled and provider.models.contains(model):
            return provider
    return None


def caller_pinned_model(
    preference: CallerPreference | None, kind: ModelKind
) -> str | None:
    if preference is None:
        return None
    if kind in (ModelKind.TEXT, ModelKind.CHAT):
        return preference.assigned_text_model or None
    if kind == ModelKind.IMAGE:
        return preference.assigned_image_model or None
    return None


def global_default_model(settings: GlobalSettings, kind: ModelKind) -> str | None:
    if kind == ModelKind.TEXT:
        return settings.default_text_model or None
    if kind == ModelKind.CHAT:
        return settings.default_chat_model or settings.default_text_model or None
    if kind == ModelKind.IMAGE:
        return settings.default_image_model or None
    return settings.default_embedding_model or None


def default_model_for(provider: ProviderConfig, kind: ModelKind) -> str | None:
    """Canonical default if the provider has one, else its first listed model."""
    canonical = CANONICAL_DEFAULT_MODELS.get(provider.id, {}).get(kind)
    if canonical:
        return canonical
    return provider.models.first_for(kind)


# =============================================================================
# Cascade steps
# =============================================================================


def _from_caller_preference(
    preference: CallerPreference | None,
    settings: GlobalSettings,
    providers: Sequence[ProviderConfig],
    kind: ModelKind,
) -> Selection | None:
    model = caller_pinned_model(preference, kind)
    if not model:
        return None
    provider = find_provider_for_model(model, providers)
    if provider is None:
        logger.info("ai_caller_model_unavailable", model=model, kind=kind.value)
        return None
    return Selection(provider=provider, model=model, step="caller_preference")


def _from_global_default(
    preference: CallerPreference | None,
    settings: GlobalSettings,
    providers: Sequence[ProviderConfig],
    kind: ModelKind,
) -> Selection | None:
    model = global_default_model(settings, kind)
    if not model:
        return None
    provider = find_provider_for_model(model, providers)
    if provider is None:
        return None
    return Selection(provider=provider, model=model, step="global_default")


def _from_active_provider(
    preference: CallerPreference | None,
    settings: GlobalSettings,
    providers: Sequence[ProviderConfig],
    kind: ModelKind,
) -> Selection | None:
    for provider in providers:
        if provider.id == settings.active_provider_id and provider.enabled:
            return Selection(provider=provider, model=None, step="active_provider")
    return None


RESOLUTION_STEPS: tuple[ResolutionStep, ...] = (
    _from_caller_preference,
    _from_global_default,
    _from_active_provider,
)


def resolve(
    caller_preference: CallerPreference | None,
    global_settings: GlobalSettings,
    provider_catalog: Sequence[ProviderConfig],
    kind: ModelKind | TaskType,
) -> ExecutionTarget:
    """Resolve the execution target for one request.

    Args:
        caller_preference: Per-caller model override, if any
        global_settings: Settings snapshot for this request
        provider_catalog: All providers, enabled or not, in catalog order
        kind: Model kind, or a task which maps to TEXT / IMAGE

    Returns:
        Immutable ExecutionTarget

    Raises:
        NoEligibleProviderError: No step selected a provider with a usable model
        MissingCredentialError: The selected provider has no credential
    """
    if isinstance(kind, TaskType):
        kind = kind_for_task(kind)

    selection: Selection | None = None
    for step in RESOLUTION_STEPS:
        selection = step(caller_preference, global_settings, provider_catalog, kind)
        if selection is not None:
            break

    if selection is None:
        raise NoEligibleProviderError("Could not determine a valid, enabled AI provider.")

    provider = selection.provider
    model = selection.model or default_model_for(provider, kind)
    if not model:
        raise NoEligibleProviderError(
            f"No suitable {kind.value} model found for provider '{provider.name}'."
        )

    if not provider.credential:
        raise MissingCredentialError(f"API Key for provider '{provider.id}' is missing.")

    logger.info(
        "ai_model_resolved",
        provider=provider.id,
        model=model,
        kind=kind.value,
        step=selection.step,
    )

    return ExecutionTarget(
        provider_id=provider.id,
        model=model,
        credential=provider.credential,
        base_endpoint=provider.base_endpoint,
    )
