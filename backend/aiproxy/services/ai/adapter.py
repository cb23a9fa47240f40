"""
Request Adapter

Translates a provider-agnostic GenerationRequest into the call shape of the
target's provider family. Pure: no I/O, no clients.

Native family (Gemini REST):
- contents/parts messages, systemInstruction, generationConfig
- google_search tool when grounding is enabled
- images as {numberOfImages, width, height}; bytes come back raw

OpenAI-compatible family (everyone else):
- chat.completions messages with a leading system message
- grounding is silently ignored
- images as {n, size} with response_format forced to b64_json
"""

from typing import Any

import structlog

from aiproxy.core.exceptions import UnsupportedParameterError, ValidationError
from aiproxy.services.ai.types import (
    ChatMessage,
    ExecutionTarget,
    GenerationRequest,
    ProviderCallSpec,
    ProviderFamily,
    ProviderId,
    TaskType,
)

logger = structlog.get_logger()

NATIVE_PROVIDERS = frozenset({ProviderId.GEMINI.value})

# Providers with a well-known endpoint; all others need base_endpoint
FIRST_CLASS_PROVIDERS = frozenset({ProviderId.GEMINI.value, ProviderId.OPENAI.value})

# Families able to run tool-augmented (web grounded) generation
GROUNDING_FAMILIES = frozenset({ProviderFamily.NATIVE})


def family_for(provider_id: str) -> ProviderFamily:
    if provider_id in NATIVE_PROVIDERS:
        return ProviderFamily.NATIVE
    return ProviderFamily.OPENAI_COMPATIBLE


def parse_image_size(size: str) -> tuple[int, int]:
    """Split a "WxH" size string into (width, height)."""
    parts = size.split("x")
    if len(parts) != 2:
        raise UnsupportedParameterError(f"Invalid image size '{size}', expected 'WIDTHxHEIGHT'.")
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise UnsupportedParameterError(
            f"Invalid image size '{size}', expected 'WIDTHxHEIGHT'."
        ) from e
    if width <= 0 or height <= 0:
        raise UnsupportedParameterError(f"Invalid image size '{size}', dimensions must be positive.")
    return width, height


def _image_prompt(request: GenerationRequest) -> str:
    if request.params.prompt:
        return request.params.prompt
    for message in reversed(request.messages):
        if message.role == "user" and message.content:
            return message.content
    raise ValidationError("Missing required parameter: prompt")


def _split_system(request: GenerationRequest) -> tuple[str | None, list[ChatMessage]]:
    """Fold system-role messages into the system instruction."""
    system_parts = [request.system_instruction] if request.system_instruction else []
    conversation = []
    for message in request.messages:
        if message.role == "system":
            system_parts.append(message.content)
        else:
            conversation.append(message)
    return ("\n\n".join(system_parts) or None), conversation


# =============================================================================
# Native family
# =============================================================================


def _native_text_payload(request: GenerationRequest, json_mode: bool) -> dict[str, Any]:
    system_instruction, conversation = _split_system(request)

    payload: dict[str, Any] = {
        "contents": [
            {
                "role": "model" if message.role == "assistant" else "user",
                "parts": [{"text": message.content}],
            }
            for message in conversation
        ],
    }

    if system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

    params = request.params
    generation_config: dict[str, Any] = {}
    if params.temperature is not None:
        generation_config["temperature"] = params.temperature
    if params.top_p is not None:
        generation_config["topP"] = params.top_p
    if params.top_k is not None:
        generation_config["topK"] = params.top_k
    if params.max_tokens is not None:
        generation_config["maxOutputTokens"] = params.max_tokens
    if json_mode:
        generation_config["responseMimeType"] = "application/json"
    if generation_config:
        payload["generationConfig"] = generation_config

    if request.grounding_enabled:
        payload["tools"] = [{"google_search": {}}]

    return payload


def _native_image_payload(request: GenerationRequest) -> dict[str, Any]:
    params = request.params
    payload: dict[str, Any] = {
        "prompt": _image_prompt(request),
        "numberOfImages": params.image_count,
    }
    if params.image_size:
        payload["width"], payload["height"] = parse_image_size(params.image_size)
    return payload


# =============================================================================
# OpenAI-compatible family
# =============================================================================


def _openai_text_payload(
    request: GenerationRequest, target: ExecutionTarget, json_mode: bool
) -> dict[str, Any]:
    system_instruction, conversation = _split_system(request)

    messages: list[dict[str, str]] = []
    if system_instruction:
        messages.append({"role": "system", "content": system_instruction})
    messages.extend({"role": m.role, "content": m.content} for m in conversation)

    payload: dict[str, Any] = {
        "model": target.model,
        "messages": messages,
        "stream": request.stream,
    }

    params = request.params
    if params.temperature is not None:
        payload["temperature"] = params.temperature
    if params.top_p is not None:
        payload["top_p"] = params.top_p
    if params.max_tokens is not None:
        payload["max_tokens"] = params.max_tokens
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    return payload


def _openai_image_payload(
    request: GenerationRequest, target: ExecutionTarget
) -> dict[str, Any]:
    params = request.params
    payload: dict[str, Any] = {
        "model": target.model,
        "prompt": _image_prompt(request),
        "n": params.image_count,
        "response_format": "b64_json",
    }
    if params.image_size:
        payload["size"] = params.image_size
    return payload


# =============================================================================
# Entry point
# =============================================================================


def adapt(request: GenerationRequest, target: ExecutionTarget) -> ProviderCallSpec:
    """Build the provider-specific call for a resolved target.

    Raises:
        UnsupportedParameterError: A provider without a well-known endpoint
            has no base endpoint, or a parameter cannot be translated
        ValidationError: An image request carries no prompt
    """
    if target.provider_id not in FIRST_CLASS_PROVIDERS and not target.base_endpoint:
        raise UnsupportedParameterError(
            f"Provider '{target.provider_id}' requires a 'baseUrl'."
        )

    family = family_for(target.provider_id)
    grounding = request.grounding_enabled and family in GROUNDING_FAMILIES
    if request.grounding_enabled and not grounding:
        logger.debug("ai_grounding_ignored", provider=target.provider_id)

    # Strict JSON only applies to complete answers
    json_mode = request.params.json_mode and not request.stream

    if request.task == TaskType.GENERATE_IMAGE:
        if family == ProviderFamily.NATIVE:
            payload = _native_image_payload(request)
        else:
            payload = _openai_image_payload(request, target)
        return ProviderCallSpec(
            family=family,
            target=target,
            task=request.task,
            payload=payload,
        )

    if family == ProviderFamily.NATIVE:
        payload = _native_text_payload(request, json_mode)
    else:
        payload = _openai_text_payload(request, target, json_mode)

    return ProviderCallSpec(
        family=family,
        target=target,
        task=request.task,
        payload=payload,
        stream=request.stream,
        grounding_enabled=grounding,
        json_mode=json_mode,
    )
