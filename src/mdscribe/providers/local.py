"""Local model server (Ollama) adapter and model catalog.

:class:`OllamaAdapter` speaks the single-turn ``/api/generate`` completion
shape. :class:`LocalModelCatalog` covers the rest of the server's surface
that mdscribe uses: the liveness probe, the installed-model list, and model
pulls and removals.

The model list is cached for :data:`MODEL_CACHE_TTL_SECONDS`. The cache is
guarded by an :class:`asyncio.Lock` held only while reading or updating it,
never across a network call.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from mdscribe.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    ProviderProtocolError,
    ProviderStatusError,
    ServiceUnreachableError,
)
from mdscribe.models import ProviderKind
from mdscribe.providers.base import ProviderAdapter, ProviderCall, ValidatedRequest

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_ENDPOINT = "http://localhost:11434"
MODEL_CACHE_TTL_SECONDS = 30
_PROBE_TIMEOUT = 5.0
_PULL_TIMEOUT = httpx.Timeout(30.0, read=None)
PULL_VERIFY_ATTEMPTS = 5
PULL_VERIFY_DELAY_SECONDS = 2.0


class OllamaAdapter(ProviderAdapter):
    """``POST {endpoint}/api/generate`` with a non-streamed prompt."""

    kind = ProviderKind.LOCAL
    default_endpoint = DEFAULT_LOCAL_ENDPOINT

    def build_call(self, request: ValidatedRequest) -> ProviderCall:
        return ProviderCall(
            method="POST",
            url=f"{request.endpoint}/api/generate",
            headers={"Content-Type": "application/json"},
            json={
                "model": request.model,
                "prompt": f"{request.prompt}\n\nFormatted markdown:",
                "stream": False,
            },
        )

    def extract_text(self, payload: Any) -> str:
        if not isinstance(payload, dict) or "response" not in payload:
            raise self._malformed()
        return payload["response"]


StatusCallback = Callable[[str], None]
Sleep = Callable[[float], Awaitable[Any]]


class LocalModelCatalog:
    """Query and manage the models installed on a local Ollama server.

    Args:
        endpoint: Server base URL. Defaults to ``http://localhost:11434``.
        client: Async HTTP client to use. When ``None`` the catalog opens its
            own and :meth:`aclose` closes it.
        ttl: Seconds a fetched model list stays fresh.
        clock: Monotonic time source, injectable for tests.
        sleep: Awaitable used between post-pull install checks.

    Example::

        async with LocalModelCatalog() as catalog:
            if await catalog.is_model_available("mistral-nemo"):
                ...
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        ttl: float = MODEL_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._endpoint = (endpoint or DEFAULT_LOCAL_ENDPOINT).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._ttl = ttl
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._models: list[str] = []
        self._fetched_at: Optional[float] = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def __aenter__(self) -> LocalModelCatalog:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    async def is_available(self) -> bool:
        """Probe ``GET /api/tags``. Never cached."""
        try:
            response = await self._client.get(
                f"{self._endpoint}/api/tags", timeout=_PROBE_TIMEOUT
            )
        except httpx.HTTPError as exc:
            logger.debug("Ollama probe at %s failed: %s", self._endpoint, exc)
            return False
        return response.is_success

    async def list_models(self) -> list[str]:
        """Return installed model names, served from cache while fresh.

        Raises:
            ServiceUnreachableError: If the server cannot be reached.
            ProviderStatusError: If the server answers with an error status.
            MalformedResponseError: If the model list cannot be parsed.
        """
        async with self._lock:
            if self._fetched_at is not None and self._clock() - self._fetched_at < self._ttl:
                return list(self._models)

        models = await self._fetch_models()

        async with self._lock:
            self._models = models
            self._fetched_at = self._clock()
        return list(models)

    async def is_model_available(self, name: str) -> bool:
        """Whether any installed model name contains *name*.

        ``"mistral-nemo"`` matches ``"mistral-nemo:12b-instruct-2407-q5_0"``.
        """
        return any(name in model for model in await self.list_models())

    async def _fetch_models(self) -> list[str]:
        try:
            response = await self._client.get(f"{self._endpoint}/api/tags")
        except httpx.HTTPError as exc:
            raise ServiceUnreachableError(self._unreachable_message()) from exc
        if not response.is_success:
            raise ProviderStatusError("Ollama", response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Failed to parse Ollama models: {exc}") from exc
        models = payload.get("models") if isinstance(payload, dict) else None
        if not isinstance(models, list):
            raise MalformedResponseError("Invalid response format from Ollama models endpoint")
        names = [m["name"] for m in models if isinstance(m, dict) and isinstance(m.get("name"), str)]
        logger.debug("Fetched %d models from %s", len(names), self._endpoint)
        return names

    def _unreachable_message(self) -> str:
        return (
            f"Ollama service not available at {self._endpoint}. "
            f"Make sure Ollama is running: ollama serve"
        )

    async def ensure_available(self) -> None:
        """Raise :class:`~mdscribe.exceptions.ServiceUnreachableError` if the probe fails."""
        if not await self.is_available():
            raise ServiceUnreachableError(self._unreachable_message())

    async def ensure_model(self, name: str) -> None:
        """Raise :class:`~mdscribe.exceptions.ConfigurationError` unless *name* is installed."""
        models = await self.list_models()
        if not any(name in model for model in models):
            available = ", ".join(models) if models else "none"
            raise ConfigurationError(
                f"Model '{name}' not found in Ollama. Available models: {available}. "
                f"Install it with: mdscribe models pull {name}"
            )

    # ------------------------------------------------------------------ #
    # Management
    # ------------------------------------------------------------------ #

    def invalidate(self) -> None:
        """Drop the cached model list so the next query refetches it."""
        self._fetched_at = None

    async def pull_model(self, name: str, on_status: Optional[StatusCallback] = None) -> None:
        """Download *name*, reporting each streamed status line to *on_status*.

        Raises:
            ServiceUnreachableError: If the server cannot be reached.
            ProviderStatusError: If the server rejects the pull.
            ProviderProtocolError: If the stream reports an error.
            ConfigurationError: If the model is still missing after
                :data:`PULL_VERIFY_ATTEMPTS` checks.
        """
        url = f"{self._endpoint}/api/pull"
        try:
            async with self._client.stream(
                "POST", url, json={"name": name, "stream": True}, timeout=_PULL_TIMEOUT
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ProviderStatusError("Ollama", response.status_code, body)
                async for line in response.aiter_lines():
                    self._handle_pull_line(line, on_status)
        except httpx.HTTPError as exc:
            raise ServiceUnreachableError(self._unreachable_message()) from exc
        finally:
            self.invalidate()

        # The server can register the model shortly after the stream closes.
        for attempt in range(1, PULL_VERIFY_ATTEMPTS + 1):
            if await self.is_model_available(name):
                return
            logger.debug("'%s' not listed yet (check %d/%d)", name, attempt, PULL_VERIFY_ATTEMPTS)
            if attempt < PULL_VERIFY_ATTEMPTS:
                self.invalidate()
                await self._sleep(PULL_VERIFY_DELAY_SECONDS)

        raise ConfigurationError(
            f"Model '{name}' was not installed after download. "
            f"Check the model name and try again."
        )

    def _handle_pull_line(self, line: str, on_status: Optional[StatusCallback]) -> None:
        line = line.strip()
        if not line:
            return
        try:
            event = json.loads(line)
        except ValueError:
            logger.debug("Ignoring non-JSON pull line: %s", line)
            return
        if not isinstance(event, dict):
            return
        if event.get("error"):
            raise ProviderProtocolError(f"Model download failed: {event['error']}")
        status = event.get("status")
        if isinstance(status, str) and on_status is not None:
            on_status(status)

    async def remove_model(self, name: str) -> None:
        """Delete *name* from the server.

        Raises:
            ServiceUnreachableError: If the server cannot be reached.
            ProviderStatusError: If the server rejects the removal.
        """
        try:
            response = await self._client.request(
                "DELETE", f"{self._endpoint}/api/delete", json={"name": name}
            )
        except httpx.HTTPError as exc:
            raise ServiceUnreachableError(self._unreachable_message()) from exc
        finally:
            self.invalidate()
        if not response.is_success:
            raise ProviderStatusError("Ollama", response.status_code, response.text)
