"""Tests for the generation router and model clients (no network calls)."""

from typing import List, Optional

import httpx
import pytest

from agentic_api_testgen.config import Config
from agentic_api_testgen.generation import (
    GenerationCache,
    GenerationError,
    GenerationProvider,
    GenerationRouter,
    build_router,
)
from agentic_api_testgen.model_client import (
    CompletionResult,
    Message,
    ModelClient,
    ModelClientError,
    OpenAICompatibleClient,
    OpenRouterClient,
    compute_token_budget,
)


class ScriptedClient(ModelClient):
    """ModelClient that answers from a script and records calls."""

    def __init__(self, name: str, reply: Optional[str] = None, error: Optional[str] = None,
                 available: bool = True):
        self.name = name
        self.reply = reply
        self.error = error
        self.available = available
        self.calls: List[dict] = []

    def complete(self, messages, model, timeout=30.0, max_tokens=None, temperature=None):
        self.calls.append({
            "messages": messages,
            "model": model,
            "timeout": timeout,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if self.error:
            raise ModelClientError(self.error)
        return CompletionResult(content=self.reply, model=model, finish_reason="stop")

    def is_available(self) -> bool:
        return self.available


class TestTokenBudget:
    """Tests for per-stage token budgets."""

    def test_stage_defaults(self):
        assert compute_token_budget("plan") == 6000
        assert compute_token_budget("reflect") == 16000
        assert compute_token_budget("other") == 4000

    def test_clamped(self):
        assert compute_token_budget("reflect", 10_000_000) == 32000
        assert compute_token_budget("plan", 0) == 1


class TestRouter:
    """Tests for ordered fallback."""

    def test_first_provider_wins(self):
        first = ScriptedClient("openrouter", reply="hello")
        second = ScriptedClient("local", reply="unused")
        router = GenerationRouter([
            GenerationProvider(first, "m1"),
            GenerationProvider(second, "m2"),
        ])

        result = router.generate("prompt", system_prompt="sys", stage="plan")

        assert result.content == "hello"
        assert result.provider_id == "openrouter:m1"
        assert second.calls == []
        call = first.calls[0]
        assert [m.role for m in call["messages"]] == ["system", "user"]
        assert call["temperature"] == 0.2
        assert call["max_tokens"] == 6000

    def test_falls_back_on_error(self):
        failing = ScriptedClient("openrouter", error="API error (429): rate limited")
        backup = ScriptedClient("local", reply="from backup")
        router = GenerationRouter([
            GenerationProvider(failing, "m1"),
            GenerationProvider(backup, "llama"),
        ])

        result = router.generate("prompt", stage="write")

        assert result.content == "from backup"
        assert result.provider_id == "local:llama"

    def test_skips_unavailable(self):
        offline = ScriptedClient("openrouter", reply="x", available=False)
        online = ScriptedClient("local", reply="y")
        router = GenerationRouter([GenerationProvider(offline, "m"), GenerationProvider(online, "m")])
        assert router.generate("p").content == "y"
        assert offline.calls == []
        assert router.available_providers() == ["local:m"]

    def test_all_fail(self):
        router = GenerationRouter([
            GenerationProvider(ScriptedClient("openrouter", error="boom"), "m1"),
            GenerationProvider(ScriptedClient("local", error="down"), "m2"),
        ])
        with pytest.raises(GenerationError) as exc_info:
            router.generate("p")
        assert "openrouter:m1: boom" in str(exc_info.value)
        assert "local:m2: down" in str(exc_info.value)

    def test_no_provider_available(self):
        router = GenerationRouter([GenerationProvider(ScriptedClient("local", available=False), "m")])
        with pytest.raises(GenerationError, match="No generation provider"):
            router.generate("p")


class TestCache:
    """Tests for the file-based response cache."""

    def test_cache_hit_skips_provider(self, tmp_path):
        client = ScriptedClient("openrouter", reply="fresh")
        cache = GenerationCache(cache_dir=str(tmp_path), enabled=True)
        router = GenerationRouter([GenerationProvider(client, "m")], cache=cache)

        first = router.generate("same prompt", stage="plan")
        second = router.generate("same prompt", stage="plan")

        assert first.cached is False
        assert second.cached is True
        assert second.content == "fresh"
        assert second.provider_id == "openrouter:m (cached)"
        assert len(client.calls) == 1

    def test_key_depends_on_request(self):
        base = GenerationCache.cache_key("p", "s", 0.2, 100)
        assert base == GenerationCache.cache_key("p", "s", 0.2, 100)
        assert base != GenerationCache.cache_key("p", "s", 0.3, 100)
        assert base != GenerationCache.cache_key("p", None, 0.2, 100)

    def test_disabled_cache(self, tmp_path):
        cache = GenerationCache(cache_dir=str(tmp_path), enabled=False)
        cache.set("k", "v", "p")
        assert cache.get("k") is None
        assert list(tmp_path.iterdir()) == []

    def test_clear(self, tmp_path):
        cache = GenerationCache(cache_dir=str(tmp_path))
        cache.set("a", "1", "p")
        cache.set("b", "2", "p")
        assert cache.clear() == 2
        assert cache.get("a") is None


class TestBuildRouter:
    """Tests for building providers from configuration."""

    def test_provider_order(self, tmp_path):
        config = Config(
            openrouter_api_key="sk-test",
            model="openai/gpt-4o-mini",
            fallback_models=["google/gemini-2.5-flash"],
            local_llm_base_url="http://localhost:11434/v1",
            llm_cache_dir=str(tmp_path),
        )
        router = build_router(config)
        assert [p.provider_id for p in router.providers] == [
            "openrouter:openai/gpt-4o-mini",
            "openrouter:google/gemini-2.5-flash",
            "local:llama3.1",
        ]


class TestChatCompletionsClient:
    """Tests for HTTP error mapping (httpx transport is faked)."""

    def _patch_post(self, monkeypatch, handler):
        original_client = httpx.Client

        def client_factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return original_client(*args, **kwargs)

        monkeypatch.setattr(httpx, "Client", client_factory)

    def test_successful_completion(self, monkeypatch):
        def handler(request):
            assert request.url.path == "/v1/chat/completions"
            return httpx.Response(200, json={
                "model": "llama",
                "choices": [{"message": {"content": "hi"}, "finish_reason": "stop"}],
                "usage": {"total_tokens": 3},
            })

        self._patch_post(monkeypatch, handler)
        client = OpenAICompatibleClient("http://localhost:11434/v1/")
        result = client.complete([Message("user", "hello")], model="llama")
        assert result.content == "hi"
        assert result.usage == {"total_tokens": 3}

    def test_http_error_is_mapped(self, monkeypatch):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "rate limited"}})

        self._patch_post(monkeypatch, handler)
        client = OpenRouterClient(api_key="sk-test")
        with pytest.raises(ModelClientError, match=r"API error \(429\): rate limited"):
            client.complete([Message("user", "hello")], model="m")

    def test_empty_choices(self, monkeypatch):
        self._patch_post(monkeypatch, lambda request: httpx.Response(200, json={"choices": []}))
        client = OpenRouterClient(api_key="sk-test")
        with pytest.raises(ModelClientError, match="No choices"):
            client.complete([Message("user", "hello")], model="m")

    def test_openrouter_requires_key(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(ModelClientError):
            OpenRouterClient()

    def test_non_json_body_falls_back_to_next_provider(self, monkeypatch):
        def handler(request):
            if request.url.host == "bad":
                return httpx.Response(200, text="<html>gateway</html>")
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        self._patch_post(monkeypatch, handler)
        router = GenerationRouter([
            GenerationProvider(OpenAICompatibleClient("http://bad/v1"), "m"),
            GenerationProvider(OpenAICompatibleClient("http://good/v1"), "m"),
        ])

        result = router.generate("prompt", stage="write")

        assert result.content == "ok"
        assert result.provider_id == "local:m"

    def test_null_message_is_client_error(self, monkeypatch):
        self._patch_post(monkeypatch, lambda request: httpx.Response(200, json={"choices": [{"message": None}]}))
        client = OpenRouterClient(api_key="sk-test")
        with pytest.raises(ModelClientError, match="Empty content"):
            client.complete([Message("user", "hello")], model="m")
