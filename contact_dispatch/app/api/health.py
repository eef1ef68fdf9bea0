"""
FastAPI route: liveness.

    GET /        — same as /health
    GET /health  — process is up; providers are not contacted
"""

from __future__ import annotations

from fastapi import APIRouter

from contact_dispatch.app.api.schemas import HealthResponse
from contact_dispatch.app.notify import formatter

router = APIRouter(tags=["health"])


@router.get("/", response_model=HealthResponse)
@router.get("/health", response_model=HealthResponse)
async def health():
    return formatter.health_body()
