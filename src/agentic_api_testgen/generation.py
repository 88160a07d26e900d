"""Generation capability: ordered provider fallback with a response cache.

Every agent talks to the model through GenerationRouter.generate(). The
router checks the file cache, then tries each configured provider in
order. The first success is cached and returned along with the id of the
provider that produced it. When every provider fails the router raises
GenerationError listing each provider's error.
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from agentic_api_testgen.config import Config
from agentic_api_testgen.constants import TEMPERATURE_BY_STAGE
from agentic_api_testgen.model_client import (
    Message,
    ModelClient,
    ModelClientError,
    OpenAICompatibleClient,
    OpenRouterClient,
    compute_token_budget,
)

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Raised when no provider could serve a generation request."""
    pass


@dataclass
class GenerationResult:
    content: str
    provider_id: str
    cached: bool = False


@dataclass
class GenerationProvider:
    """One (client, model) pair the router can try."""
    client: ModelClient
    model: str

    @property
    def provider_id(self) -> str:
        return f"{self.client.name}:{self.model}"


# =============================================================================
# CACHE
# =============================================================================

class GenerationCache:
    """File-based response cache keyed by the md5 of the request."""

    def __init__(self, cache_dir: str = ".cache/llm", enabled: bool = True):
        self.cache_dir = Path(cache_dir)
        self.enabled = enabled

    @staticmethod
    def cache_key(
        prompt: str,
        system_prompt: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> str:
        key = json.dumps(
            {
                "prompt": prompt,
                "systemPrompt": system_prompt,
                "temperature": temperature,
                "maxTokens": max_tokens,
            },
            sort_keys=True,
        )
        return hashlib.md5(key.encode("utf-8")).hexdigest()

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None
        path = self._path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Error reading cache entry %s: %s", key, e)
            return None
        logger.debug("Cache hit for key: %s", key)
        return data

    def set(self, key: str, content: str, provider_id: str) -> None:
        if not self.enabled:
            return
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self._path(key).write_text(
                json.dumps({"content": content, "provider": provider_id}, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning("Error writing cache entry %s: %s", key, e)

    def clear(self) -> int:
        if not self.cache_dir.exists():
            return 0
        removed = 0
        for entry in self.cache_dir.glob("*.json"):
            entry.unlink()
            removed += 1
        logger.info("Cleared %d cached responses", removed)
        return removed


# =============================================================================
# ROUTER
# =============================================================================

def _traced_complete(
    provider: GenerationProvider,
    messages: List[Message],
    stage: str,
    timeout: float,
    max_tokens: int,
    temperature: Optional[float],
) -> str:
    """Call one provider inside a LangSmith span named <stage>_<provider>."""
    from langsmith import traceable

    trace_name = f"{stage}_{provider.provider_id.replace('/', '_')}"
    messages_dict = [{"role": m.role, "content": m.content} for m in messages]

    @traceable(
        name=trace_name,
        run_type="llm",
        metadata={
            "stage": stage,
            "provider": provider.client.name,
            "model": provider.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        },
    )
    def _traced_call(messages_input: List[dict], model_name: str) -> dict:
        msg_objects = [Message(role=m["role"], content=m["content"]) for m in messages_input]
        result = provider.client.complete(
            messages=msg_objects,
            model=model_name,
            timeout=timeout,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return {
            "content": result.content,
            "model": result.model,
            "usage": result.usage,
            "finish_reason": result.finish_reason,
        }

    output = _traced_call(messages_dict, provider.model)
    if output.get("finish_reason") == "length":
        logger.warning("%s response hit the token limit (%d); output may be truncated",
                       provider.provider_id, max_tokens)
    return output["content"]


class GenerationRouter:
    """Routes generation requests across providers with fallback and caching."""

    def __init__(
        self,
        providers: List[GenerationProvider],
        cache: Optional[GenerationCache] = None,
        timeout: float = 120.0,
    ):
        self.providers = providers
        self.cache = cache or GenerationCache(enabled=False)
        self.timeout = timeout

    def available_providers(self) -> List[str]:
        return [p.provider_id for p in self.providers if p.client.is_available()]

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        stage: str = "generate",
    ) -> GenerationResult:
        """
        Generate text for a prompt.

        Args:
            prompt: User prompt
            system_prompt: Optional system prompt
            temperature: Sampling temperature (default: per-stage)
            max_tokens: Output token budget (default: per-stage)
            stage: Pipeline stage, used for defaults and trace names

        Returns:
            GenerationResult with the text and the serving provider id

        Raises:
            GenerationError: If every provider failed or none is available
        """
        if temperature is None:
            temperature = TEMPERATURE_BY_STAGE.get(stage)
        budget = compute_token_budget(stage, max_tokens)

        key = GenerationCache.cache_key(prompt, system_prompt, temperature, budget)
        cached = self.cache.get(key)
        if cached and cached.get("content"):
            provider_id = f"{cached.get('provider', 'unknown')} (cached)"
            return GenerationResult(content=cached["content"], provider_id=provider_id, cached=True)

        messages = []
        if system_prompt:
            messages.append(Message(role="system", content=system_prompt))
        messages.append(Message(role="user", content=prompt))

        errors: List[str] = []
        start = time.monotonic()
        for provider in self.providers:
            if not provider.client.is_available():
                logger.debug("Provider %s not available, skipping", provider.provider_id)
                continue

            logger.info("[%s] Trying provider: %s", stage, provider.provider_id)
            call_start = time.monotonic()
            try:
                content = _traced_complete(
                    provider, messages, stage, self.timeout, budget, temperature
                )
            except ModelClientError as e:
                logger.warning("Provider %s FAILED: %s", provider.provider_id, str(e)[:200])
                errors.append(f"{provider.provider_id}: {e}")
                continue

            latency_ms = int((time.monotonic() - call_start) * 1000)
            logger.info("[%s] %s succeeded in %dms", stage, provider.provider_id, latency_ms)
            self.cache.set(key, content, provider.provider_id)
            return GenerationResult(content=content, provider_id=provider.provider_id)

        total_ms = int((time.monotonic() - start) * 1000)
        if not errors:
            raise GenerationError("No generation provider is available")
        logger.error("All generation providers failed after %dms", total_ms)
        raise GenerationError(f"All generation providers failed. Errors: {'; '.join(errors)}")


def build_router(config: Config) -> GenerationRouter:
    """Build a router from configuration: OpenRouter models first, then the local endpoint."""
    providers: List[GenerationProvider] = []

    if config.openrouter_api_key:
        client = OpenRouterClient(api_key=config.openrouter_api_key)
        for model in [config.model] + config.fallback_models:
            providers.append(GenerationProvider(client=client, model=model))

    if config.local_llm_base_url:
        local = OpenAICompatibleClient(base_url=config.local_llm_base_url)
        providers.append(GenerationProvider(client=local, model=config.local_llm_model))

    cache = GenerationCache(cache_dir=config.llm_cache_dir, enabled=config.llm_cache_enabled)
    return GenerationRouter(providers, cache=cache, timeout=config.llm_timeout_s)
