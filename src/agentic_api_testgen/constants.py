"""Constants for the test generation pipeline."""

import os

# Default generation models, tried in order by the router
DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_LOCAL_MODEL = "llama3.1"

# Per-call deadline for the generation capability
DEFAULT_LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", "120"))

# Run defaults
DEFAULT_MAX_ITERATIONS = 3
DEFAULT_BASE_DIRECTORY = "./generated-tests"
DEFAULT_NAMESPACE = "com.api.tests"
DEFAULT_BASE_URL = "https://example.com"

# Build/test tool
DEFAULT_BUILD_COMMAND = "mvn test -B"
DEFAULT_REPORT_COMMAND = "mvn allure:report -q"
DEFAULT_BUILD_TIMEOUT_S = 120.0
DEFAULT_REPORT_TIMEOUT_S = 60.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
RAW_OUTPUT_TAIL_CHARS = 5000

# Registry retention
DEFAULT_MAX_CONCURRENT_RUNS = 4
DEFAULT_MAX_RETAINED_RUNS = 200
DEFAULT_RUN_TTL_S = 24 * 60 * 60

# Sampling temperature per stage
TEMPERATURE_BY_STAGE = {
    "plan": 0.2,
    "write": 0.15,
    "reflect": 0.1,
}

# Reflection asks for complete files, so it needs the most headroom
MAX_TOKENS_BY_STAGE = {
    "plan": 6000,
    "write": 6000,
    "reflect": 16000,
}

# Hard clamp on requested output tokens
MAX_OUTPUT_TOKENS = 32000
