"""Overall band score models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from models.feedback import Source


class ScoreType(str, Enum):
    """Which score per sub-criterion the aggregation picks."""

    FINAL = "final"  # most recent
    INITIAL = "initial"  # earliest


class OverallScore(BaseModel):
    score: float
    source: Source
