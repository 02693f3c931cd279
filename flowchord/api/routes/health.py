"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    settings = request.app.state.settings
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": settings.app_version,
        "scheduler": bool(scheduler and scheduler.is_running),
    }
