"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...config import settings
from ...engine import Engine
from ...errors import StoreUnavailable
from ...persistence.documents import EVENTS
from ..dependencies import get_engine

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/store", status_code=status.HTTP_200_OK)
def health_store(engine: Engine = Depends(get_engine)) -> dict:
    """Check that the document store answers within its timeout."""
    backend = "supabase" if settings.supabase_url and settings.supabase_key else "memory"
    try:
        engine.documents.get(EVENTS, "__health__")
    except StoreUnavailable as exc:
        return {"backend": backend, "healthy": False, "error": str(exc)}
    return {
        "backend": backend,
        "healthy": True,
        "scheduledEvents": len(engine.scheduler.timers()),
    }
