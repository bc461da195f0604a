"""Step results and their SSE payloads.

Each unit of pipeline work produces one ``StepResult``:

- ``StepOk``:  the step's content (fresh, cached, or taken over from a
  concurrent writer), wrapped as a ``feedback_step`` event.
- ``StepErr``: a session-ending failure, wrapped as an error event.

The orchestrator only produces these values; ``services.event_stream``
decides how they look on the wire.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel

from models.errors import ErrorCode, ErrorDetails
from models.feedback import Source


class FeedbackStepPayload(BaseModel):
    """``data`` of a ``feedback_step`` event (snake_case on the wire)."""

    id: int
    process_order: int
    title: str
    criteria: str
    apply_to: str
    step: str
    content: str
    source: Source = Source.AI
    reused: bool = False
    segment_order: int | None = None
    segment_count: int | None = None


class StepOk(BaseModel):
    kind: Literal["ok"] = "ok"
    payload: FeedbackStepPayload


class StepErr(BaseModel):
    kind: Literal["error"] = "error"
    code: ErrorCode
    error: ErrorDetails


StepResult = Union[StepOk, StepErr]
