"""Writing band descriptors: rubric labels to IELTS band scores.

The descriptor table lives in ``data/band_descriptors/writing.json``:
criteria (``TR``, ``CC``, ``LR``, ``GRA``, ``AE``, ``TA``) → sub-criteria
→ descriptor label → ``{"score", "color"}``.  Some labels carry open-ended
scores such as ``"6+"`` or ``"7 or less"``; those never count towards a band.
"""

from __future__ import annotations

import json
import logging
import math
from functools import lru_cache
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DESCRIPTOR_FILE = Path(__file__).parent.parent / "data" / "band_descriptors" / "writing.json"

DEFAULT_COLOR = "info"

CRITERIA_ALIASES = {
    "taskResponse": "TR",
    "coherenceCohesion": "CC",
    "lexicalResource": "LR",
    "gra": "GRA",
    "taskAchievement": "TA",
}


@lru_cache(maxsize=1)
def load_band_descriptors(path: str = str(DESCRIPTOR_FILE)) -> dict[str, Any]:
    """Load the descriptor table; an unreadable file yields an empty table."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Failed to load band descriptors %s: %s", path, e)
        return {}


def to_number(value: Any) -> float | None:
    """``7`` / ``"6.5"`` → float; open-ended labels like ``"6+"`` → None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class BandDescriptor:
    def __init__(self, table: dict[str, Any] | None = None):
        self._table = table if table is not None else load_band_descriptors()

    @staticmethod
    def standard_criteria(criteria: str) -> str:
        return CRITERIA_ALIASES.get(criteria, criteria)

    def get_band_descriptor_mapping(
        self, criteria: str, sub_criteria: str | None = None
    ) -> dict[str, Any]:
        """Descriptors for *criteria* (optionally one sub-criteria); ``{}`` if unknown."""
        mapping = self._table.get(self.standard_criteria(criteria), {})
        if sub_criteria:
            return mapping.get(sub_criteria, {})
        return mapping

    def get_score(
        self, criteria: str, option: str, sub_criteria: str | None = None
    ) -> dict[str, Any]:
        """``{"score", "color"}`` for a descriptor label.

        Without *sub_criteria* every sub-criteria of *criteria* is searched
        and the first match wins.  An unknown label has ``score`` None.
        """
        mapping = self.get_band_descriptor_mapping(criteria, sub_criteria)
        if sub_criteria:
            descriptor = mapping.get(option)
        else:
            descriptor = next(
                (descriptors[option] for descriptors in mapping.values() if option in descriptors),
                None,
            )
        if not descriptor:
            return {"score": None, "color": DEFAULT_COLOR}
        return {"score": descriptor["score"], "color": descriptor.get("color", DEFAULT_COLOR)}

    def get_band_score(self, criteria: str, values: list[str]) -> float | None:
        """Lowest numeric score among *values*, or None if none is numeric.

        A value is either a score already (``"7"``, ``"6.5"``) or a descriptor
        label of *criteria*.
        """
        band: float | None = None
        for value in values:
            score = to_number(value)
            if score is None:
                score = to_number(self.get_score(criteria, str(value).strip())["score"])
            if score is None:
                logger.debug("Ignoring non-numeric %s score %r", criteria, value)
                continue
            if band is None or score < band:
                band = score
        return band
