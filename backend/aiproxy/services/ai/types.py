"""
Domain types for provider resolution, adaptation and invocation.

Everything here is immutable and request-scoped: a catalog snapshot is read
once per request and never shared.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ProviderId(str, Enum):
    """Known upstream vendors."""

    GEMINI = "Gemini"
    OPENAI = "OpenAI"
    ANTHROPIC = "Anthropic"
    GROQ = "Groq"
    DEEPSEEK = "Deepseek"
    QWEN = "Qwen"
    OPENROUTER = "Openrouter"
    MISTRAL = "MistralAI"
    NOVITA = "NovitaAI"


class ProviderFamily(str, Enum):
    """Wire contract spoken by a provider."""

    NATIVE = "native"
    OPENAI_COMPATIBLE = "openai_compatible"


class TaskType(str, Enum):
    GENERATE_TEXT = "generateText"
    GENERATE_IMAGE = "generateImage"


class ModelKind(str, Enum):
    """Model list a resolution draws from."""

    TEXT = "text"
    CHAT = "chat"
    IMAGE = "image"
    EMBEDDING = "embedding"


# =============================================================================
# Catalog (read-only collaborator data)
# =============================================================================


@dataclass(frozen=True)
class ProviderModels:
    text: tuple[str, ...] = ()
    chat: tuple[str, ...] = ()
    image: tuple[str, ...] = ()
    embedding: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProviderModels":
        data = data or {}
        return cls(
            text=tuple(data.get("text") or ()),
            chat=tuple(data.get("chat") or ()),
            image=tuple(data.get("image") or ()),
            embedding=tuple(data.get("embedding") or ()),
        )

    def contains(self, model: str) -> bool:
        """True if any sub-list names the model."""
        return (
            model in self.text
            or model in self.image
            or model in self.chat
            or model in self.embedding
        )

    def first_for(self, kind: ModelKind) -> str | None:
        if kind == ModelKind.CHAT:
            candidates = self.chat or self.text
        else:
            candidates = getattr(self, kind.value)
        return candidates[0] if candidates else None


@dataclass(frozen=True)
class ProviderConfig:
    id: str
    name: str
    credential: str | None = field(default=None, repr=False)
    enabled: bool = False
    models: ProviderModels = field(default_factory=ProviderModels)
    base_endpoint: str | None = None


@dataclass(frozen=True)
class GlobalSettings:
    active_provider_id: str = ProviderId.GEMINI.value
    default_text_model: str | None = None
    default_image_model: str | None = None
    default_chat_model: str | None = None
    default_embedding_model: str | None = None


@dataclass(frozen=True)
class CallerPreference:
    assigned_text_model: str | None = None
    assigned_image_model: str | None = None


@dataclass(frozen=True)
class CatalogSnapshot:
    providers: tuple[ProviderConfig, ...]
    settings: GlobalSettings


# =============================================================================
# Resolution result
# =============================================================================


@dataclass(frozen=True)
class ExecutionTarget:
    provider_id: str
    model: str
    credential: str = field(repr=False)
    base_endpoint: str | None = None

    def __repr__(self) -> str:
        return (
            f"ExecutionTarget(provider_id={self.provider_id!r}, model={self.model!r}, "
            f"credential='***', base_endpoint={self.base_endpoint!r})"
        )


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str


@dataclass(frozen=True)
class GenerationParams:
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_tokens: int | None = None
    json_mode: bool = False
    prompt: str | None = None
    image_count: int = 1
    image_size: str | None = None


@dataclass(frozen=True)
class GenerationRequest:
    task: TaskType
    messages: tuple[ChatMessage, ...] = ()
    system_instruction: str | None = None
    stream: bool = False
    grounding_enabled: bool = False
    params: GenerationParams = field(default_factory=GenerationParams)


@dataclass(frozen=True)
class ProviderCallSpec:
    """A fully translated provider call.

    ``payload`` is already in the provider family's own shape.
    """

    family: ProviderFamily
    target: ExecutionTarget
    task: TaskType
    payload: dict[str, Any]
    stream: bool = False
    grounding_enabled: bool = False
    json_mode: bool = False


# =============================================================================
# Raw provider output
# =============================================================================


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class GroundingData:
    sources: tuple[dict[str, Any], ...]


StreamEvent = Union[TextDelta, GroundingData]


@dataclass(frozen=True)
class ImageURL:
    url: str


# base64 string, raw bytes, or a remote locator
RawImageResult = Union[str, bytes, ImageURL]
