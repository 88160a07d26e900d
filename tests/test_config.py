"""Tests for environment-based configuration."""

import pytest

from agentic_api_testgen import config as config_module
from agentic_api_testgen.config import ConfigError, load_config

ENV_VARS = (
    "OPENROUTER_API_KEY", "TESTGEN_MODEL", "TESTGEN_FALLBACK_MODELS",
    "LOCAL_LLM_BASE_URL", "LOCAL_LLM_MODEL", "LLM_TIMEOUT_S", "LLM_CACHE_ENABLED",
    "TESTGEN_MAX_ITERATIONS", "TESTGEN_BUILD_COMMAND", "TESTGEN_MAX_CONCURRENT_RUNS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Never pick up a developer's .env during tests
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)


class TestLoadConfig:
    """Tests for load_config."""

    def test_requires_a_provider(self):
        with pytest.raises(ConfigError, match="No generation provider"):
            load_config(require_llm=True)

    def test_provider_optional_when_not_required(self):
        config = load_config(require_llm=False)
        assert config.has_generation_provider is False
        assert config.max_iterations == 3
        assert config.build_command == "mvn test -B"

    def test_openrouter_settings(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
        monkeypatch.setenv("TESTGEN_FALLBACK_MODELS", "a/b, c/d ,")
        config = load_config()
        assert config.openrouter_api_key == "sk-test"
        assert config.fallback_models == ["a/b", "c/d"]

    def test_local_provider_is_enough(self, monkeypatch):
        monkeypatch.setenv("LOCAL_LLM_BASE_URL", "http://localhost:11434/v1")
        assert load_config().local_llm_base_url == "http://localhost:11434/v1"

    def test_numbers_and_flags(self, monkeypatch):
        monkeypatch.setenv("LOCAL_LLM_BASE_URL", "http://localhost:11434/v1")
        monkeypatch.setenv("TESTGEN_MAX_ITERATIONS", "5")
        monkeypatch.setenv("LLM_TIMEOUT_S", "30.5")
        monkeypatch.setenv("LLM_CACHE_ENABLED", "false")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        config = load_config()
        assert config.max_iterations == 5
        assert config.llm_timeout_s == 30.5
        assert config.llm_cache_enabled is False
        assert config.log_level == "DEBUG"

    def test_malformed_number(self, monkeypatch):
        monkeypatch.setenv("TESTGEN_MAX_CONCURRENT_RUNS", "many")
        with pytest.raises(ConfigError, match="TESTGEN_MAX_CONCURRENT_RUNS"):
            load_config(require_llm=False)
