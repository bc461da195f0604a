"""Writing feedback API: SSE feedback stream and overall score."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette.responses import StreamingResponse

from config.settings import get_settings
from models.feedback import Source
from models.request import FeedbackStreamRequest
from models.score import ScoreType
from services.event_stream import FeedbackEventStream
from services.feed_resolver import FeedResolver, JsonFeedSource
from services.feedback_store import FeedbackStore, get_feedback_store
from services.generation import FeedbackGenerator, LiteLLMFeedbackGenerator
from services.orchestrator import FeedbackOrchestrator
from services.writing_score import WritingScore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/writing", tags=["writing"])

PROJECT_ROOT = Path(__file__).parent.parent


# ── Dependencies ────────────────────────────────────────────


@lru_cache
def get_feed_resolver() -> FeedResolver:
    settings = get_settings()
    feeds_dir = Path(settings.feeds_dir)
    if not feeds_dir.is_absolute():
        feeds_dir = PROJECT_ROOT / feeds_dir
    return FeedResolver(JsonFeedSource(feeds_dir), max_feeds=settings.max_feeds_per_session)


@lru_cache
def get_generator() -> FeedbackGenerator:
    return LiteLLMFeedbackGenerator()


def get_orchestrator(
    store: FeedbackStore = Depends(get_feedback_store),
    resolver: FeedResolver = Depends(get_feed_resolver),
    generator: FeedbackGenerator = Depends(get_generator),
) -> FeedbackOrchestrator:
    return FeedbackOrchestrator(store, resolver, generator)


# ── SSE feedback stream ─────────────────────────────────────


@router.get("/feedback")
async def feedback_stream(
    request: Request,
    uuid: str = Query(..., min_length=1),
    segment_order: int | None = Query(default=None, ge=1),
    language: str | None = Query(default=None),
    feedback_style: str = Query(default=""),
    feed_id: int | None = Query(default=None),
    guide_score: str = Query(default=""),
    guide_feedback: str = Query(default=""),
    orchestrator: FeedbackOrchestrator = Depends(get_orchestrator),
):
    """Stream feedback for one essay as ``feedback_step`` events.

    A completed session ends with ``event: END`` / ``data: [DONE]``.  A failing
    session ends with a single ``feedback_error`` event and no ``END``.
    """
    req = FeedbackStreamRequest(
        uuid=uuid,
        segment_order=segment_order,
        language=language or get_settings().default_language,
        feedback_style=feedback_style,
        feed_id=feed_id,
        guide_score=guide_score,
        guide_feedback=guide_feedback,
    )
    logger.info("[Feedback] Stream opened for %s (segment_order=%s)", uuid, segment_order)

    return StreamingResponse(
        _feedback_stream_generator(orchestrator, req, request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",
        },
    )


async def _feedback_stream_generator(
    orchestrator: FeedbackOrchestrator,
    req: FeedbackStreamRequest,
    request: Request,
) -> AsyncGenerator[str, None]:
    events = FeedbackEventStream()
    async for result in orchestrator.stream(req, is_disconnected=request.is_disconnected):
        yield events.encode(result)

    if events.failed:
        return
    if await request.is_disconnected():
        logger.info("[Feedback] Client gone for %s, not sending END", req.uuid)
        return
    yield events.finish()


# ── Overall score ───────────────────────────────────────────


@router.get("/score")
async def overall_score(
    uuid: str = Query(..., min_length=1),
    score_type: ScoreType = Query(default=ScoreType.FINAL),
    store: FeedbackStore = Depends(get_feedback_store),
):
    """Overall band score; ``score`` and ``source`` are null until complete."""
    submission = await store.find_submission_by_uuid(uuid)
    if submission is None:
        raise HTTPException(status_code=404, detail=f"Submission '{uuid}' not found")

    result = await WritingScore(store).get_overall_score(submission, score_type)
    if result is None:
        return {"score": None, "source": None}
    return {"score": result.score, "source": Source(result.source).value}
