"""FastAPI entry point for the writing feedback service."""

import logging
from contextlib import asynccontextmanager

import litellm
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from services.feedback_store import RedisFeedbackStore, get_feedback_store

logger = logging.getLogger(__name__)

settings = get_settings()

# ── Global LiteLLM settings ──────────────────────────────────
litellm.request_timeout = settings.llm_timeout


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle: open/close the feedback store."""
    store = get_feedback_store()

    if isinstance(store, RedisFeedbackStore):
        if await store.ping():
            logger.info("Redis connection verified")
        else:
            logger.warning("Redis connection failed, feedback will not persist")

    yield

    await store.close()


app = FastAPI(
    title="Writing Feedback Service",
    description="Streams rubric-based essay feedback over Server-Sent Events",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Register routers ────────────────────────────────────────
from api.health import router as health_router  # noqa: E402
from api.feedback import router as feedback_router  # noqa: E402

app.include_router(health_router)
app.include_router(feedback_router)


if __name__ == "__main__":
    if settings.debug:
        # Development: single worker with reload
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            reload=True,
        )
    else:
        # Production: gunicorn main:app -c deploy/gunicorn.conf.py
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            workers=4,
            timeout_keep_alive=120,
        )
