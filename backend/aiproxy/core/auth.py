"""
Caller identity dependency for FastAPI.

Authentication happens upstream of the gateway (API gateway / edge proxy),
which forwards the validated caller id in a header. This module only reads it.
"""

from fastapi import Request

from aiproxy.core.config import settings
from aiproxy.core.exceptions import AuthenticationError
from aiproxy.core.logging import enrich_event


async def get_caller_id(request: Request) -> str:
    """Pre-validated caller id from the configured header.

    Raises:
        AuthenticationError: Header missing or empty
    """
    caller_id = request.headers.get(settings.caller_id_header, "").strip()
    if not caller_id:
        raise AuthenticationError("User not authenticated.")

    enrich_event(caller={"id": caller_id})
    return caller_id
