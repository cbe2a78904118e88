from __future__ import annotations

import os

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from paperchat.config import settings

router = APIRouter()


@router.get("/")
async def health_check():
    """Health check endpoint."""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "healthy",
            "service": "paperchat-api",
            "version": "0.1.0"
        }
    )


@router.get("/ready")
async def readiness_check():
    """Readiness check endpoint."""
    has_key = bool(settings.openai_api_key or os.environ.get("OPENAI_API_KEY"))
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "ready",
            "ai_service": "configured" if has_key else "missing api key",
            "chat_model": settings.chat_model,
            "cors_origins": settings.cors_origins,
            "api_prefix": settings.api_prefix
        }
    )
