"""Unified LLM service powered by LiteLLM.

Supports any provider LiteLLM supports via model name prefix:
    - gemini/gemini-2.0-flash-lite
    - openai/gpt-4o-mini
    - anthropic/claude-sonnet-4-20250514
"""

from __future__ import annotations

import logging

import litellm

from config.llm_config import LLMConfig
from config.settings import get_settings

logger = logging.getLogger(__name__)


class LLMService:
    """Thin wrapper around litellm.acompletion() for multi-provider LLM access.

    Accepts an optional :class:`LLMConfig` that is merged on top of the
    global defaults from Settings.  Individual calls can still override
    any parameter via ``**overrides``.

    Priority chain (low → high):
        .env global defaults  →  feed-level LLMConfig  →  per-call overrides

    When the primary model raises and ``generation_model_fallback`` is set,
    the call is retried once on the fallback model.
    """

    def __init__(self, config: LLMConfig | None = None, model: str | None = None):
        settings = get_settings()
        self._config = settings.get_default_llm_config()
        self._fallback_model = settings.generation_model_fallback or None

        if config:
            self._config = self._config.merge(config)

        if model:
            self._config = self._config.merge(LLMConfig(model=model))

    @property
    def model(self) -> str | None:
        return self._config.model

    async def complete(
        self,
        prompt: str,
        system: str = "",
        **overrides,
    ) -> str:
        """Send a single-turn prompt and return the generated text.

        Args:
            prompt:   The rendered user prompt.
            system:   Optional system prompt (prepended as system message).
            **overrides: Per-call parameter overrides (e.g. ``temperature=0.2``).

        Raises:
            Exception: whatever LiteLLM raised for the last model tried.
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            **self._config.to_litellm_kwargs(),
        }
        kwargs.update(overrides)

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            if not self._fallback_model or self._fallback_model == kwargs["model"]:
                raise
            logger.warning(
                "Model %s failed (%s), retrying with %s",
                kwargs["model"],
                e,
                self._fallback_model,
            )
            kwargs["model"] = self._fallback_model
            response = await litellm.acompletion(**kwargs)

        return self._parse_response(response)

    def _parse_response(self, response) -> str:
        """Pull the text out of a LiteLLM ModelResponse."""
        choice = response.choices[0]
        content = choice.message.content or ""
        if response.usage:
            logger.debug(
                "LLM usage: model=%s input=%s output=%s finish=%s",
                self._config.model,
                response.usage.prompt_tokens,
                response.usage.completion_tokens,
                choice.finish_reason,
            )
        return content.strip()
