"""Model client interface with OpenRouter and OpenAI-compatible implementations."""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from agentic_api_testgen.constants import MAX_OUTPUT_TOKENS, MAX_TOKENS_BY_STAGE

logger = logging.getLogger(__name__)


# =============================================================================
# TOKEN BUDGET POLICY
# =============================================================================

def compute_token_budget(stage: str, requested: Optional[int] = None) -> int:
    """
    Compute max_tokens for a generation call.

    Args:
        stage: Pipeline stage (plan, write, reflect)
        requested: Explicit budget from the caller, if any

    Returns:
        Token budget, clamped to MAX_OUTPUT_TOKENS
    """
    budget = requested if requested is not None else MAX_TOKENS_BY_STAGE.get(stage, 4000)
    return max(1, min(budget, MAX_OUTPUT_TOKENS))


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class Message:
    """A chat message."""
    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class CompletionResult:
    """Result from a model completion call."""
    content: str
    model: str
    usage: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None


class ModelClient(ABC):
    """Abstract interface for model clients."""

    name: str = "model"

    @abstractmethod
    def complete(
        self,
        messages: List[Message],
        model: str,
        timeout: float = 30.0,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> CompletionResult:
        """
        Execute a chat completion.

        Args:
            messages: List of chat messages
            model: Model identifier
            timeout: Request timeout in seconds
            max_tokens: Maximum output tokens (if None, use model default)
            temperature: Sampling temperature (if None, use model default)

        Returns:
            CompletionResult with content and metadata

        Raises:
            ModelClientError: On API or network errors
        """
        pass

    def is_available(self) -> bool:
        return True


class ModelClientError(Exception):
    """Error from model client operations."""
    pass


class _ChatCompletionsClient(ModelClient):
    """Shared request/response handling for /chat/completions style APIs."""

    BASE_URL = ""

    def _headers(self) -> dict:
        return {"Content-Type": "application/json"}

    def _make_request(
        self,
        payload: dict,
        headers: dict,
        timeout: float,
    ) -> dict:
        """Make HTTP request to the completions endpoint."""
        with httpx.Client(timeout=timeout) as client:
            response = client.post(
                self.BASE_URL,
                headers=headers,
                json=payload,
            )
            response.raise_for_status()
            try:
                return response.json()
            except ValueError as e:
                raise ModelClientError(f"Invalid JSON in API response: {e}")

    def complete(
        self,
        messages: List[Message],
        model: str,
        timeout: float = 30.0,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> CompletionResult:
        payload = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature

        # Debug logging (env-gated)
        if os.environ.get("TESTGEN_DEBUG_TOKENS"):
            logger.debug("model=%s, max_tokens=%s, temperature=%s", model, max_tokens, temperature)

        try:
            data = self._make_request(payload, self._headers(), timeout)
        except httpx.HTTPStatusError as e:
            # Extract error message from response if available
            try:
                error_data = e.response.json()
                error_msg = error_data.get("error", {}).get("message", str(e))
            except (ValueError, AttributeError):
                error_msg = str(e)
            raise ModelClientError(f"API error ({e.response.status_code}): {error_msg}")
        except httpx.TimeoutException:
            raise ModelClientError(
                f"Request timed out after {timeout}s. "
                "Try again or use a faster model."
            )
        except httpx.RequestError as e:
            raise ModelClientError(f"Network error: {e}")

        if not isinstance(data, dict):
            raise ModelClientError("Unexpected API response shape")

        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise ModelClientError("No choices in API response")

        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not content or not isinstance(content, str):
            raise ModelClientError("Empty content in API response")

        return CompletionResult(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
            finish_reason=choices[0].get("finish_reason"),
        )


class OpenRouterClient(_ChatCompletionsClient):
    """OpenRouter API client.

    Uses the OpenRouter chat completions endpoint.
    API docs: https://openrouter.ai/docs
    """

    BASE_URL = "https://openrouter.ai/api/v1/chat/completions"
    name = "openrouter"

    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key. If not provided, reads from
                     OPENROUTER_API_KEY environment variable.
        """
        self.api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
        if not self.api_key:
            raise ModelClientError(
                "OPENROUTER_API_KEY environment variable is required."
            )

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "https://github.com/agentic-api-testgen",
            "X-Title": "Agentic API Testgen",
        }


class OpenAICompatibleClient(_ChatCompletionsClient):
    """Client for self-hosted OpenAI-compatible servers (Ollama, vLLM, LM Studio)."""

    name = "local"

    def __init__(self, base_url: str, api_key: Optional[str] = None):
        if not base_url:
            raise ModelClientError("A base URL is required for an OpenAI-compatible endpoint.")
        self.BASE_URL = base_url.rstrip("/") + "/chat/completions"
        self.api_key = api_key

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers
