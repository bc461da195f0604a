"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from services.feedback_store import FeedbackStore, get_feedback_store

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(store: FeedbackStore = Depends(get_feedback_store)):
    store_ok = await store.ping()
    return {
        "status": "healthy" if store_ok else "degraded",
        "store": "ok" if store_ok else "unreachable",
    }
