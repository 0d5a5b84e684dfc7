"""Top-level API router composition."""

from __future__ import annotations

from fastapi import APIRouter

from .features.health.router import router as health_router
from .features.ingestion.router import router as ingestion_router

api_router = APIRouter(prefix="/v1")
api_router.include_router(health_router)
api_router.include_router(ingestion_router)

__all__ = ["api_router"]
