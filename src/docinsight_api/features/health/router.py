"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_endpoint() -> dict[str, str]:
    return {"status": "ok"}


__all__ = ["router"]
