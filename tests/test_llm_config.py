"""Tests for config.llm_config: LLMConfig model, merge, feed overrides."""

import pytest

from config.llm_config import LLMConfig
from config.settings import Settings


# ── Construction & defaults ───────────────────────────────────


def test_default_all_none():
    cfg = LLMConfig()
    assert cfg.model is None
    assert cfg.temperature is None
    assert cfg.max_tokens is None


def test_validation_temperature_range():
    with pytest.raises(ValueError):
        LLMConfig(temperature=3.0)  # max 2.0


def test_validation_top_p_range():
    with pytest.raises(ValueError):
        LLMConfig(top_p=-0.1)


# ── merge ─────────────────────────────────────────────────────


def test_merge_override_non_none():
    base = LLMConfig(model="gemini/gemini-2.0-flash-lite", temperature=0.7, max_tokens=2048)
    merged = base.merge(LLMConfig(temperature=0.2))

    assert merged.model == "gemini/gemini-2.0-flash-lite"  # kept from base
    assert merged.temperature == 0.2                         # overridden
    assert merged.max_tokens == 2048                         # kept from base
    assert merged.top_p is None                              # neither set


def test_merge_does_not_mutate():
    base = LLMConfig(temperature=0.7)
    override = LLMConfig(temperature=0.2)
    base.merge(override)

    assert base.temperature == 0.7
    assert override.temperature == 0.2


# ── Feed meta overrides ──────────────────────────────────────


def test_from_feed_meta():
    cfg = LLMConfig.from_feed_meta({"model": "openai/gpt-4o-mini", "temperature": 0.1, "max_tokens": 500})
    assert cfg.model == "openai/gpt-4o-mini"
    assert cfg.temperature == 0.1
    assert cfg.max_tokens == 500


def test_from_feed_meta_camel_case_max_token():
    assert LLMConfig.from_feed_meta({"maxToken": 800}).max_tokens == 800


def test_from_feed_meta_ignores_unrelated_keys():
    cfg = LLMConfig.from_feed_meta({"english_prompt": "Rate it", "score_regex": r"\d+"})
    assert cfg.model_dump(exclude_none=True) == {}


# ── to_litellm_kwargs ────────────────────────────────────────


def test_to_litellm_kwargs_skips_none_and_model():
    cfg = LLMConfig(model="x", temperature=0.3, timeout=60)
    assert cfg.to_litellm_kwargs() == {"temperature": 0.3, "timeout": 60}


def test_settings_default_llm_config():
    settings = Settings(generation_model="openai/gpt-4o-mini", max_tokens=1000, temperature=0.5, llm_timeout=30)
    cfg = settings.get_default_llm_config()
    assert cfg.model == "openai/gpt-4o-mini"
    assert cfg.to_litellm_kwargs() == {"max_tokens": 1000, "temperature": 0.5, "timeout": 30}
