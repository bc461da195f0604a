"""SSE framing for the feedback stream.

Wire format, one frame per event::

    event: feedback_step
    data: {"data": {...}}

    event: feedback_error
    data: {"error": {"title": ..., "message": ..., "ctaTitle": ..., "ctaLink": ...}}

    event: END
    data: [DONE]

Frames are produced in order and never retracted; the HTTP layer yields
each one as its own chunk.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from models.errors import ErrorDetails
from models.sse_events import StepErr, StepOk, StepResult

logger = logging.getLogger(__name__)

STEP_EVENT = "feedback_step"
ERROR_EVENT = "feedback_error"
DONE_EVENT = "END"
DONE_MARKER = "[DONE]"


class EventStreamEncoder:
    """Encode payloads as SSE frames.

    Every public method returns a ready-to-yield SSE string.
    """

    @staticmethod
    def _sse(event: str, data: str) -> str:
        return f"event: {event}\ndata: {data}\n\n"

    @staticmethod
    def _json(payload: Any) -> str:
        return json.dumps(payload, ensure_ascii=False, default=str)

    def message(self, event: str, data: Any) -> str:
        return self._sse(event, self._json({"data": data}))

    def error(self, event: str, details: ErrorDetails) -> str:
        return self._sse(event, self._json({"error": details.model_dump(by_alias=True)}))

    def done(self, event: str = DONE_EVENT) -> str:
        return self._sse(event, DONE_MARKER)


class FeedbackEventStream:
    """Session-scoped transport handle: step results in, SSE frames out."""

    def __init__(self, encoder: EventStreamEncoder | None = None):
        self._enc = encoder or EventStreamEncoder()
        self._sent = 0
        self._failed = False
        self._finished = False

    @property
    def sent(self) -> int:
        return self._sent

    @property
    def failed(self) -> bool:
        """True once an error frame went out; such a session gets no END."""
        return self._failed

    def encode(self, result: StepResult) -> str:
        if self._finished:
            raise RuntimeError("Event stream already finished")
        self._sent += 1
        if isinstance(result, StepOk):
            return self._enc.message(STEP_EVENT, result.payload.model_dump(mode="json"))
        if isinstance(result, StepErr):
            logger.debug("[Stream] Error event %s", result.code)
            self._failed = True
            return self._enc.error(ERROR_EVENT, result.error)
        raise TypeError(f"Unknown step result: {type(result).__name__}")

    def finish(self) -> str:
        self._finished = True
        return self._enc.done()
