"""Generation parameters shared by every feedback step.

Priority chain (low → high):
    .env global defaults  →  feed ``meta`` overrides  →  per-call overrides
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LiteLLM call parameters.  ``None`` means "use the model's default"."""

    model: str | None = Field(default=None, description="LiteLLM model identifier")
    max_tokens: int | None = Field(default=None, description="Max tokens to generate")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    timeout: int | None = Field(default=None, description="Request timeout in seconds")
    stop: list[str] | None = Field(default=None, description="Stop sequences")

    def merge(self, overrides: LLMConfig) -> LLMConfig:
        """Return a new LLMConfig: *self* as base, *overrides* wins on non-None fields."""
        base = self.model_dump(exclude_none=True)
        base.update(overrides.model_dump(exclude_none=True))
        return LLMConfig(**base)

    @classmethod
    def from_feed_meta(cls, meta: dict[str, Any]) -> LLMConfig:
        """Pick the generation overrides a feed may carry in its ``meta``.

        Accepts both the snake_case keys of the JSON feed files and the
        camelCase keys used by the admin settings export (``maxToken``).
        """
        return cls(
            model=meta.get("model"),
            max_tokens=meta.get("max_tokens", meta.get("maxToken")),
            temperature=meta.get("temperature"),
        )

    def to_litellm_kwargs(self) -> dict:
        """Convert to ``litellm.acompletion()``-compatible keyword arguments."""
        kw: dict = {}
        for field in ("max_tokens", "temperature", "top_p", "timeout", "stop"):
            val = getattr(self, field)
            if val is not None:
                kw[field] = val
        return kw
