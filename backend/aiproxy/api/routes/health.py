"""
Health check endpoints.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from aiproxy.db import check_database_health

router = APIRouter()


@router.get("/api/health")
async def health_check() -> dict:
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/api/ready")
async def readiness_check() -> JSONResponse:
    """Readiness check, including database connectivity."""
    if await check_database_health():
        return JSONResponse({"status": "ready", "database": "connected"})
    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "database": "unavailable"},
    )
