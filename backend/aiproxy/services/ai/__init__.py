"""
AI Service Package

Provider-agnostic AI gateway:
- Model resolution from the provider catalog (caller pin, global default,
  active provider)
- Request adaptation per provider family (native Gemini, OpenAI-compatible)
- Framed streaming output with grounding metadata
- Image result normalization to base64
"""

from aiproxy.services.ai.gateway import AIGateway, TaskRequest, get_ai_gateway
from aiproxy.services.ai.interface import AIProviderInterface
from aiproxy.services.ai.resolver import resolve

__all__ = [
    "AIGateway",
    "AIProviderInterface",
    "TaskRequest",
    "get_ai_gateway",
    "resolve",
]
