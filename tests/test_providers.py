"""Tests for provider adapters and the local model catalog."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from mdscribe.exceptions import (
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
    ProviderProtocolError,
    ProviderStatusError,
    ServiceUnreachableError,
)
from mdscribe.models import ProviderKind
from mdscribe.providers import ADAPTERS, ValidatedRequest, build_prompt, get_adapter
from mdscribe.providers.anthropic import ANTHROPIC_VERSION, AnthropicAdapter
from mdscribe.providers.base import SYSTEM_MESSAGE
from mdscribe.providers.custom import CustomAdapter
from mdscribe.providers.local import (
    PULL_VERIFY_ATTEMPTS,
    PULL_VERIFY_DELAY_SECONDS,
    LocalModelCatalog,
    OllamaAdapter,
)
from mdscribe.providers.openai import OpenAIAdapter


def _request(
    kind: ProviderKind = ProviderKind.OPENAI,
    secret: str | None = "sk-test",
    endpoint: str = "https://api.example.com/v1",
    model: str = "m1",
) -> ValidatedRequest:
    return ValidatedRequest(
        provider_name="work",
        kind=kind,
        model=model,
        endpoint=endpoint,
        secret=secret,
        prompt=build_prompt("hello there"),
    )


def _json_response(body: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=body)


# ---------------------------------------------------------------------------
# Registry of adapters
# ---------------------------------------------------------------------------


class TestAdapterTable:
    def test_every_kind_has_adapter(self) -> None:
        assert set(ADAPTERS) == set(ProviderKind)

    @pytest.mark.parametrize("kind", list(ProviderKind))
    def test_adapter_kind_matches_key(self, kind: ProviderKind) -> None:
        assert get_adapter(kind).kind is kind

    def test_default_endpoints(self) -> None:
        assert get_adapter(ProviderKind.OPENAI).resolve_endpoint(None) == "https://api.openai.com/v1"
        assert get_adapter(ProviderKind.DEEPSEEK).resolve_endpoint(None) == "https://api.deepseek.com/v1"
        assert get_adapter(ProviderKind.ANTHROPIC).resolve_endpoint(None) == "https://api.anthropic.com/v1"
        assert get_adapter(ProviderKind.LOCAL).resolve_endpoint(None) == "http://localhost:11434"
        assert get_adapter(ProviderKind.CUSTOM).resolve_endpoint(None) == ""

    def test_configured_endpoint_wins_and_loses_trailing_slash(self) -> None:
        adapter = get_adapter(ProviderKind.OPENAI)
        assert adapter.resolve_endpoint("https://proxy.local/v1/") == "https://proxy.local/v1"


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------


class TestValidatedRequest:
    def test_prompt_contains_transcript(self) -> None:
        prompt = build_prompt("the words")
        assert prompt.endswith("Transcript:\n\nthe words")
        assert "well-structured markdown" in prompt

    def test_empty_model(self) -> None:
        with pytest.raises(ConfigurationError, match="No model configured"):
            _request(model="  ")

    def test_custom_without_endpoint(self) -> None:
        with pytest.raises(ConfigurationError, match="--endpoint"):
            _request(kind=ProviderKind.CUSTOM, endpoint="", secret=None)

    def test_empty_endpoint_other_kind(self) -> None:
        with pytest.raises(ConfigurationError, match="No endpoint"):
            _request(endpoint="")

    @pytest.mark.parametrize(
        "kind", [ProviderKind.OPENAI, ProviderKind.ANTHROPIC, ProviderKind.DEEPSEEK]
    )
    def test_hosted_requires_secret(self, kind: ProviderKind) -> None:
        with pytest.raises(ConfigurationError, match="mdscribe auth set-key work"):
            _request(kind=kind, secret=None)

    @pytest.mark.parametrize("kind", [ProviderKind.LOCAL, ProviderKind.CUSTOM])
    def test_secret_optional(self, kind: ProviderKind) -> None:
        assert _request(kind=kind, secret=None).secret is None


# ---------------------------------------------------------------------------
# Wire shapes
# ---------------------------------------------------------------------------


class TestChatCompletions:
    def test_build_call(self) -> None:
        call = OpenAIAdapter().build_call(_request())
        assert call.method == "POST"
        assert call.url == "https://api.example.com/v1/chat/completions"
        assert call.headers["Authorization"] == "Bearer sk-test"
        assert call.json is not None
        assert call.json["model"] == "m1"
        assert [m["role"] for m in call.json["messages"]] == ["system", "user"]
        assert call.json["messages"][0]["content"] == SYSTEM_MESSAGE
        assert "hello there" in call.json["messages"][1]["content"]

    def test_custom_without_secret_omits_authorization(self) -> None:
        call = CustomAdapter().build_call(_request(kind=ProviderKind.CUSTOM, secret=None))
        assert "Authorization" not in call.headers

    def test_parse_trims(self) -> None:
        response = _json_response({"choices": [{"message": {"content": "  # Title\n\n"}}]})
        assert OpenAIAdapter().parse_response(response) == "# Title"

    @pytest.mark.parametrize(
        "body",
        [{}, {"choices": []}, {"choices": [{"message": {}}]}, [1, 2], {"choices": [{"message": {"content": 5}}]}],
    )
    def test_malformed(self, body: Any) -> None:
        with pytest.raises(MalformedResponseError, match="OpenAI"):
            OpenAIAdapter().parse_response(_json_response(body))

    def test_not_json(self) -> None:
        with pytest.raises(MalformedResponseError, match="Failed to parse"):
            OpenAIAdapter().parse_response(httpx.Response(200, text="<html>"))

    def test_whitespace_only_is_empty(self) -> None:
        response = _json_response({"choices": [{"message": {"content": " \n\t"}}]})
        with pytest.raises(EmptyResponseError, match="OpenAI returned empty response"):
            OpenAIAdapter().parse_response(response)


class TestAnthropic:
    def test_build_call(self) -> None:
        call = AnthropicAdapter().build_call(_request(kind=ProviderKind.ANTHROPIC))
        assert call.url == "https://api.example.com/v1/messages"
        assert call.headers["x-api-key"] == "sk-test"
        assert call.headers["anthropic-version"] == ANTHROPIC_VERSION
        assert "Authorization" not in call.headers
        assert call.json is not None
        assert call.json["max_tokens"] == 4096
        assert call.json["system"] == SYSTEM_MESSAGE
        assert [m["role"] for m in call.json["messages"]] == ["user"]

    def test_parse(self) -> None:
        response = _json_response({"content": [{"type": "text", "text": "Formatted\n"}]})
        assert AnthropicAdapter().parse_response(response) == "Formatted"

    def test_malformed(self) -> None:
        with pytest.raises(MalformedResponseError, match="Anthropic"):
            AnthropicAdapter().parse_response(_json_response({"content": []}))


class TestOllama:
    def test_build_call(self) -> None:
        call = OllamaAdapter().build_call(
            _request(kind=ProviderKind.LOCAL, secret=None, endpoint="http://localhost:11434")
        )
        assert call.url == "http://localhost:11434/api/generate"
        assert call.json is not None
        assert call.json["stream"] is False
        assert call.json["prompt"].endswith("Formatted markdown:")
        assert "Authorization" not in call.headers

    def test_parse(self) -> None:
        assert OllamaAdapter().parse_response(_json_response({"response": " ok "})) == "ok"

    def test_missing_field(self) -> None:
        with pytest.raises(MalformedResponseError, match="Ollama"):
            OllamaAdapter().parse_response(_json_response({"done": True}))


# ---------------------------------------------------------------------------
# Local model catalog
# ---------------------------------------------------------------------------


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _ollama_client(
    models: list[str],
    calls: list[str],
    pull_lines: list[dict[str, Any]] | None = None,
    install_on_pull: str | None = None,
) -> httpx.AsyncClient:
    installed = list(models)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(f"{request.method} {request.url.path}")
        if request.url.path == "/api/tags":
            return _json_response({"models": [{"name": n} for n in installed]})
        if request.url.path == "/api/pull":
            if install_on_pull:
                installed.append(install_on_pull)
            body = "\n".join(json.dumps(line) for line in pull_lines or []) + "\n"
            return httpx.Response(200, content=body.encode())
        if request.url.path == "/api/delete":
            name = json.loads(request.content)["name"]
            installed[:] = [n for n in installed if n != name]
            return httpx.Response(200)
        return httpx.Response(404)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestLocalModelCatalog:
    @pytest.mark.asyncio
    async def test_list_models(self) -> None:
        calls: list[str] = []
        async with _ollama_client(["llama3:8b", "mistral-nemo:12b"], calls) as client:
            catalog = LocalModelCatalog(client=client)
            assert await catalog.list_models() == ["llama3:8b", "mistral-nemo:12b"]

    @pytest.mark.asyncio
    async def test_cache_within_ttl(self) -> None:
        calls: list[str] = []
        clock = _FakeClock()
        async with _ollama_client(["llama3"], calls) as client:
            catalog = LocalModelCatalog(client=client, clock=clock)
            await catalog.list_models()
            clock.now += 29
            await catalog.list_models()
            assert calls == ["GET /api/tags"]

            clock.now += 2
            await catalog.list_models()
            assert calls == ["GET /api/tags", "GET /api/tags"]

    @pytest.mark.asyncio
    async def test_probe_is_never_cached(self) -> None:
        calls: list[str] = []
        async with _ollama_client([], calls) as client:
            catalog = LocalModelCatalog(client=client)
            assert await catalog.is_available()
            assert await catalog.is_available()
            assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_probe_connection_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            catalog = LocalModelCatalog(client=client)
            assert not await catalog.is_available()
            with pytest.raises(ServiceUnreachableError, match="ollama serve"):
                await catalog.ensure_available()
            with pytest.raises(ServiceUnreachableError):
                await catalog.list_models()

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom"))
        ) as client:
            with pytest.raises(ProviderStatusError, match="boom"):
                await LocalModelCatalog(client=client).list_models()

    @pytest.mark.asyncio
    async def test_malformed_list(self) -> None:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: _json_response({"items": []}))
        ) as client:
            with pytest.raises(MalformedResponseError):
                await LocalModelCatalog(client=client).list_models()

    @pytest.mark.asyncio
    async def test_substring_match(self) -> None:
        async with _ollama_client(["mistral-nemo:12b-instruct-2407-q5_0"], []) as client:
            catalog = LocalModelCatalog(client=client)
            assert await catalog.is_model_available("mistral-nemo")
            assert not await catalog.is_model_available("llama3")

    @pytest.mark.asyncio
    async def test_ensure_model_lists_installed(self) -> None:
        async with _ollama_client(["llama3:8b"], []) as client:
            catalog = LocalModelCatalog(client=client)
            with pytest.raises(ConfigurationError, match="llama3:8b") as exc_info:
                await catalog.ensure_model("qwen2")
            assert "mdscribe models pull qwen2" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_ensure_model_none_installed(self) -> None:
        async with _ollama_client([], []) as client:
            with pytest.raises(ConfigurationError, match="Available models: none"):
                await LocalModelCatalog(client=client).ensure_model("qwen2")

    @pytest.mark.asyncio
    async def test_pull_reports_status_and_refreshes_cache(self) -> None:
        calls: list[str] = []
        statuses: list[str] = []
        lines = [{"status": "pulling manifest"}, {"status": "downloading"}, {"status": "success"}]
        async with _ollama_client([], calls, pull_lines=lines, install_on_pull="qwen2:7b") as client:
            catalog = LocalModelCatalog(client=client)
            assert await catalog.list_models() == []
            await catalog.pull_model("qwen2", on_status=statuses.append)
            assert await catalog.list_models() == ["qwen2:7b"]

        assert statuses == ["pulling manifest", "downloading", "success"]
        assert calls == ["GET /api/tags", "POST /api/pull", "GET /api/tags"]

    @pytest.mark.asyncio
    async def test_pull_error_line(self) -> None:
        lines = [{"status": "pulling manifest"}, {"error": "pull model manifest: file does not exist"}]
        async with _ollama_client([], [], pull_lines=lines) as client:
            with pytest.raises(ProviderProtocolError, match="file does not exist"):
                await LocalModelCatalog(client=client).pull_model("nope")

    @pytest.mark.asyncio
    async def test_pull_not_installed_afterwards(self) -> None:
        calls: list[str] = []
        sleep = _FakeSleep()
        async with _ollama_client([], calls, pull_lines=[{"status": "success"}]) as client:
            with pytest.raises(ConfigurationError, match="not installed"):
                await LocalModelCatalog(client=client, sleep=sleep).pull_model("ghost")

        assert calls.count("GET /api/tags") == PULL_VERIFY_ATTEMPTS
        assert sleep.delays == [PULL_VERIFY_DELAY_SECONDS] * (PULL_VERIFY_ATTEMPTS - 1)

    @pytest.mark.asyncio
    async def test_pull_waits_for_late_registration(self) -> None:
        tag_requests = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal tag_requests
            if request.url.path == "/api/pull":
                return httpx.Response(200, content=b'{"status": "success"}\n')
            tag_requests += 1
            names = ["qwen2:7b"] if tag_requests >= 3 else []
            return _json_response({"models": [{"name": n} for n in names]})

        sleep = _FakeSleep()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            catalog = LocalModelCatalog(client=client, sleep=sleep)
            await catalog.pull_model("qwen2")

        assert tag_requests == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_remove_invalidates_cache(self) -> None:
        calls: list[str] = []
        async with _ollama_client(["llama3:8b", "qwen2:7b"], calls) as client:
            catalog = LocalModelCatalog(client=client)
            await catalog.list_models()
            await catalog.remove_model("llama3:8b")
            assert await catalog.list_models() == ["qwen2:7b"]
        assert calls == ["GET /api/tags", "DELETE /api/delete", "GET /api/tags"]

    @pytest.mark.asyncio
    async def test_remove_error_status(self) -> None:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(404, text="model not found"))
        ) as client:
            with pytest.raises(ProviderStatusError, match="model not found"):
                await LocalModelCatalog(client=client).remove_model("ghost")

    @pytest.mark.asyncio
    async def test_owned_client_closed(self) -> None:
        catalog = LocalModelCatalog()
        await catalog.aclose()
        assert catalog._client.is_closed

    @pytest.mark.asyncio
    async def test_borrowed_client_left_open(self) -> None:
        async with _ollama_client([], []) as client:
            async with LocalModelCatalog(client=client):
                pass
            assert not client.is_closed
