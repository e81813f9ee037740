"""Tests for settings defaults and production validation."""

import pytest

from cfp_engine.core import config
from cfp_engine.core.config import Settings, validate_settings_for_production
from cfp_engine.gateway.types import LlmConfig


def test_cache_defaults_follow_environment():
    assert Settings(app_env="development", llm_cache_enabled=None).cache_enabled is True
    assert Settings(app_env="production", llm_cache_enabled=None).cache_enabled is False
    assert Settings(app_env="development", llm_cache_enabled=False).cache_enabled is False


def test_model_list_parsing():
    s = Settings(llm_models=" openai/gpt-4o , anthropic/claude-3-haiku,, ")
    assert s.llm_model_list == ["openai/gpt-4o", "anthropic/claude-3-haiku"]


def test_llm_config_from_settings():
    s = Settings(processor_batch_size=6, processor_max_concurrency=2, llm_models="a/b")
    cfg = LlmConfig.from_settings(s)
    assert cfg.models == ["a/b"]
    assert cfg.batch_size == 6
    assert cfg.max_concurrency == 2


def test_production_rejects_cache_and_missing_key(monkeypatch):
    monkeypatch.setattr(
        config,
        "settings",
        Settings(app_env="production", app_debug=False, llm_cache_enabled=True, openrouter_api_key=""),
    )
    with pytest.raises(SystemExit) as exc_info:
        validate_settings_for_production()
    message = str(exc_info.value)
    assert "LLM_CACHE_ENABLED" in message
    assert "OPENROUTER_API_KEY" in message


def test_timeout_above_cap_rejected(monkeypatch):
    monkeypatch.setattr(config, "settings", Settings(cfp_timeout_seconds=300))
    with pytest.raises(SystemExit):
        validate_settings_for_production()


def test_valid_production_settings(monkeypatch):
    monkeypatch.setattr(
        config,
        "settings",
        Settings(app_env="production", app_debug=False, llm_cache_enabled=None, openrouter_api_key="k"),
    )
    validate_settings_for_production()
