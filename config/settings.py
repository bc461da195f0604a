"""Pydantic Settings: typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from config.llm_config import LLMConfig


class Settings(BaseSettings):
    """Application configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    service_port: int = 5000
    cors_origins: list[str] = ["*"]
    debug: bool = False

    # ── Generation (LiteLLM) ─────────────────────────────────
    generation_model: str = "gemini/gemini-2.0-flash-lite"
    # Tried once when the primary model raises
    generation_model_fallback: str = ""
    max_tokens: int = 2048
    temperature: float | None = 0.7
    llm_timeout: int = 120  # seconds per generation call

    # Provider API keys (read by LiteLLM automatically via env)
    gemini_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # ── Feedback Store ───────────────────────────────────────
    feedback_store_type: str = "memory"  # "memory" or "redis"
    redis_url: str = ""  # e.g. redis://:password@host:6379/0

    # ── Feeds ────────────────────────────────────────────────
    feeds_dir: str = "data/feeds"
    max_feeds_per_session: int = 50
    default_language: str = "en"

    # ── Helpers ───────────────────────────────────────────────

    def get_default_llm_config(self) -> LLMConfig:
        """Build an :class:`LLMConfig` from global .env defaults."""
        return LLMConfig(
            model=self.generation_model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.llm_timeout,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
