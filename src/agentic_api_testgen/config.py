"""Configuration loading for the test generation pipeline."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from agentic_api_testgen.constants import (
    DEFAULT_BASE_DIRECTORY,
    DEFAULT_BUILD_COMMAND,
    DEFAULT_BUILD_TIMEOUT_S,
    DEFAULT_LLM_TIMEOUT_S,
    DEFAULT_LOCAL_MODEL,
    DEFAULT_MAX_CONCURRENT_RUNS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_MAX_RETAINED_RUNS,
    DEFAULT_MODEL,
    DEFAULT_RUN_TTL_S,
)


@dataclass
class Config:
    """Application configuration loaded from environment."""

    openrouter_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    fallback_models: List[str] = field(default_factory=list)
    local_llm_base_url: Optional[str] = None
    local_llm_model: str = DEFAULT_LOCAL_MODEL
    llm_timeout_s: float = DEFAULT_LLM_TIMEOUT_S
    llm_cache_enabled: bool = True
    llm_cache_dir: str = ".cache/llm"

    output_dir: str = DEFAULT_BASE_DIRECTORY
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    build_command: str = DEFAULT_BUILD_COMMAND
    build_timeout_s: float = DEFAULT_BUILD_TIMEOUT_S
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES

    max_concurrent_runs: int = DEFAULT_MAX_CONCURRENT_RUNS
    max_retained_runs: int = DEFAULT_MAX_RETAINED_RUNS
    run_ttl_s: float = DEFAULT_RUN_TTL_S

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def has_generation_provider(self) -> bool:
        return bool(self.openrouter_api_key or self.local_llm_base_url)


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""
    pass


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def _env_number(name: str, default, cast):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return cast(value)
    except ValueError:
        raise ConfigError(f"Environment variable {name} must be a number, got: {value!r}")


def load_config(require_llm: bool = True) -> Config:
    """
    Load configuration from environment variables (and a .env file if present).

    Args:
        require_llm: If True, raises ConfigError when no generation provider
                     is configured (neither OPENROUTER_API_KEY nor LOCAL_LLM_BASE_URL).

    Returns:
        Config object.

    Raises:
        ConfigError: If a numeric variable is malformed, or require_llm=True
                     and no provider is configured.
    """
    load_dotenv()

    fallback_csv = os.environ.get("TESTGEN_FALLBACK_MODELS", "")
    fallback_models = [m.strip() for m in fallback_csv.split(",") if m.strip()]

    config = Config(
        openrouter_api_key=os.environ.get("OPENROUTER_API_KEY") or None,
        model=os.environ.get("TESTGEN_MODEL") or DEFAULT_MODEL,
        fallback_models=fallback_models,
        local_llm_base_url=os.environ.get("LOCAL_LLM_BASE_URL") or None,
        local_llm_model=os.environ.get("LOCAL_LLM_MODEL") or DEFAULT_LOCAL_MODEL,
        llm_timeout_s=_env_number("LLM_TIMEOUT_S", DEFAULT_LLM_TIMEOUT_S, float),
        llm_cache_enabled=_env_bool("LLM_CACHE_ENABLED", True),
        llm_cache_dir=os.environ.get("LLM_CACHE_DIR") or ".cache/llm",
        output_dir=os.environ.get("TESTGEN_OUTPUT_DIR") or DEFAULT_BASE_DIRECTORY,
        max_iterations=_env_number("TESTGEN_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS, int),
        build_command=os.environ.get("TESTGEN_BUILD_COMMAND") or DEFAULT_BUILD_COMMAND,
        build_timeout_s=_env_number("TESTGEN_BUILD_TIMEOUT_S", DEFAULT_BUILD_TIMEOUT_S, float),
        max_output_bytes=_env_number("TESTGEN_MAX_OUTPUT_BYTES", DEFAULT_MAX_OUTPUT_BYTES, int),
        max_concurrent_runs=_env_number(
            "TESTGEN_MAX_CONCURRENT_RUNS", DEFAULT_MAX_CONCURRENT_RUNS, int
        ),
        max_retained_runs=_env_number("TESTGEN_MAX_RETAINED_RUNS", DEFAULT_MAX_RETAINED_RUNS, int),
        run_ttl_s=_env_number("TESTGEN_RUN_TTL_S", DEFAULT_RUN_TTL_S, float),
        log_level=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
        log_file=os.environ.get("LOG_FILE") or None,
    )

    if require_llm and not config.has_generation_provider:
        raise ConfigError(
            "No generation provider configured.\n"
            "Set OPENROUTER_API_KEY, or LOCAL_LLM_BASE_URL for an OpenAI-compatible endpoint,\n"
            "in your environment or in a .env file."
        )

    return config
