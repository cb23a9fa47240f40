"""
AI Gateway API Routes

Provider-agnostic AI endpoints. The caller id is forwarded by the upstream
auth boundary.

Routes:
- POST   /chat       - Chat answer as a framed text stream (catalog resolved)
- POST   /proxy      - Generic task with an explicit provider/model/key
- GET    /settings   - Global AI settings snapshot
"""

from typing import Annotated, Literal

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from aiproxy.core.auth import get_caller_id
from aiproxy.core.logging import enrich_event
from aiproxy.services.ai.catalog import ProviderCatalogService, get_catalog_service
from aiproxy.services.ai.gateway import AIGateway, TaskRequest, get_ai_gateway
from aiproxy.services.ai.types import ChatMessage, GenerationParams

logger = structlog.get_logger()

router = APIRouter()

FRAME_MEDIA_TYPE = "text/plain; charset=utf-8"

# Intermediaries must not buffer the frame stream
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


# ============================================================================
# Request Models
# ============================================================================

class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatData(BaseModel):
    system_prompt: str
    is_google_search_enabled: bool = False


class ChatRequest(BaseModel):
    """Chat request; the provider is resolved from the catalog."""
    messages: list[ChatMessageIn]
    data: ChatData


class TaskParams(BaseModel):
    """Generation parameters of a generic task."""
    prompt: str | None = None
    system: str | None = None
    mode: Literal["json", "text"] | None = None
    temperature: float | None = Field(default=None, ge=0)
    top_p: float | None = Field(default=None, ge=0, le=1)
    top_k: int | None = Field(default=None, ge=1)
    max_tokens: int | None = Field(default=None, ge=1)
    n: int = Field(default=1, ge=1)
    size: str | None = None


class ProxyRequest(BaseModel):
    """Generic task request with an explicit execution target."""
    model_config = ConfigDict(populate_by_name=True)

    task: str
    provider: str
    model: str
    api_key: str | None = Field(default=None, alias="apiKey")
    base_url: str | None = Field(default=None, alias="baseUrl")
    stream: bool = False
    params: TaskParams

    def to_task_request(self) -> TaskRequest:
        params = self.params
        return TaskRequest(
            task=self.task,
            provider=self.provider,
            model=self.model,
            api_key=self.api_key,
            base_url=self.base_url,
            stream=self.stream,
            system=params.system,
            params=GenerationParams(
                temperature=params.temperature,
                top_p=params.top_p,
                top_k=params.top_k,
                max_tokens=params.max_tokens,
                json_mode=params.mode == "json",
                prompt=params.prompt,
                image_count=params.n,
                image_size=params.size,
            ),
        )


# ============================================================================
# Response Models
# ============================================================================

class GlobalSettingsResponse(BaseModel):
    active_ai_provider: str
    global_default_text_model: str | None = None
    global_default_image_model: str | None = None
    global_default_chat_model: str | None = None
    global_default_embedding_model: str | None = None


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/chat")
async def chat(
    request: ChatRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    gateway: Annotated[AIGateway, Depends(get_ai_gateway)],
) -> StreamingResponse:
    """Stream a chat answer as newline-delimited frames."""
    enrich_event(**{
        "chat.message_count": len(request.messages),
        "chat.grounding_requested": request.data.is_google_search_enabled,
    })

    frames = await gateway.chat(
        caller_id=caller_id,
        messages=[ChatMessage(role=m.role, content=m.content) for m in request.messages],
        system_prompt=request.data.system_prompt,
        grounding_enabled=request.data.is_google_search_enabled,
    )
    return StreamingResponse(frames, media_type=FRAME_MEDIA_TYPE, headers=STREAM_HEADERS)


@router.post("/proxy", response_model=None)
async def proxy(
    request: ProxyRequest,
    caller_id: Annotated[str, Depends(get_caller_id)],
    gateway: Annotated[AIGateway, Depends(get_ai_gateway)],
) -> dict | StreamingResponse:
    """Run a generic text or image task."""
    enrich_event(**{"task.name": request.task, "task.stream": request.stream})

    result = await gateway.run_task(request.to_task_request())
    if isinstance(result, dict):
        return result
    return StreamingResponse(result, media_type=FRAME_MEDIA_TYPE, headers=STREAM_HEADERS)


@router.get("/settings", response_model=GlobalSettingsResponse)
async def get_global_settings(
    caller_id: Annotated[str, Depends(get_caller_id)],
    catalog: Annotated[ProviderCatalogService, Depends(get_catalog_service)],
) -> GlobalSettingsResponse:
    """Return the operator's global AI settings."""
    global_settings = await catalog.load_global_settings()
    return GlobalSettingsResponse(
        active_ai_provider=global_settings.active_provider_id,
        global_default_text_model=global_settings.default_text_model,
        global_default_image_model=global_settings.default_image_model,
        global_default_chat_model=global_settings.default_chat_model,
        global_default_embedding_model=global_settings.default_embedding_model,
    )
