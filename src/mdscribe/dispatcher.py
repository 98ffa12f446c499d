"""Provider selection, request validation, and invocation.

:class:`ProviderDispatcher` is what ``mdscribe format`` calls. One call to
:meth:`~ProviderDispatcher.format`:

1. Resolves which provider to use (override, active registry entry, or the
   single ``llm.provider`` setting).
2. Resolves the secret through
   :meth:`~mdscribe.auth.credentials.CredentialManager.get_valid_token`.
3. Builds a :class:`~mdscribe.providers.base.ValidatedRequest`, which fails
   before any network I/O if a required field is missing.
4. For the local kind, probes the server and checks the model is installed
   through the endpoint's :class:`~mdscribe.providers.local.LocalModelCatalog`,
   whose model-list cache lives as long as the dispatcher.
5. Sends exactly one generation request and normalises the answer.

Every failure surfaces as a :class:`~mdscribe.exceptions.MdscribeError`
subclass. Nothing is retried and no other provider is tried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from mdscribe.auth.credentials import CredentialManager
from mdscribe.exceptions import (
    ConfigurationError,
    NetworkError,
    ProviderStatusError,
    RequestTimeoutError,
)
from mdscribe.models import AppConfig, ProviderKind
from mdscribe.providers import LocalModelCatalog, get_adapter
from mdscribe.providers.base import (
    ProviderAdapter,
    ProviderCall,
    ValidatedRequest,
    build_prompt,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


@dataclass(frozen=True)
class ResolvedProvider:
    """The provider a request will go to, before validation."""

    name: str
    kind: ProviderKind
    model: str
    endpoint: Optional[str]


class ProviderDispatcher:
    """Pick a provider, validate the request, and call it.

    Args:
        config: Loaded application configuration.
        credentials: Resolves API keys and OAuth tokens.
        client: Async HTTP client to reuse. When ``None`` a client is opened
            for each :meth:`format` call.
        catalog: A shared :class:`LocalModelCatalog` to consult for its
            endpoint. Catalogs for other endpoints are created on first use
            and kept for the dispatcher's lifetime, so the model-list cache
            spans :meth:`format` calls.
        timeout: Generation request timeout in seconds.

    Example::

        async with ProviderDispatcher(resolve_config(), CredentialManager(store)) as dispatcher:
            markdown = await dispatcher.format(transcript)
    """

    def __init__(
        self,
        config: AppConfig,
        credentials: CredentialManager,
        client: Optional[httpx.AsyncClient] = None,
        catalog: Optional[LocalModelCatalog] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._client = client
        self._timeout = httpx.Timeout(timeout)
        self._catalogs: dict[str, LocalModelCatalog] = {}
        self._owned_catalogs: list[LocalModelCatalog] = []
        if catalog is not None:
            self._catalogs[catalog.endpoint] = catalog

    async def __aenter__(self) -> ProviderDispatcher:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the catalogs this dispatcher created. A passed-in catalog is left open."""
        owned, self._owned_catalogs = self._owned_catalogs, []
        for catalog in owned:
            await catalog.aclose()
        self._catalogs = {
            endpoint: catalog
            for endpoint, catalog in self._catalogs.items()
            if catalog not in owned
        }

    def catalog_for(self, endpoint: str) -> LocalModelCatalog:
        """Return the catalog for *endpoint*, creating it on first use."""
        catalog = self._catalogs.get(endpoint)
        if catalog is None:
            catalog = LocalModelCatalog(endpoint, client=self._client)
            self._catalogs[endpoint] = catalog
            self._owned_catalogs.append(catalog)
        return catalog

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #

    def resolve(self, provider_override: Optional[str] = None) -> ResolvedProvider:
        """Decide which provider a request goes to.

        Precedence:
            1. *provider_override* naming a registry entry.
            2. *provider_override* naming a provider kind (single setting).
            3. The active registry entry.
            4. The single ``llm.provider`` setting.

        Raises:
            ConfigurationError: If *provider_override* matches neither a
                registry entry nor a kind.
        """
        registry = self._config.registry

        if provider_override is not None:
            if provider_override in registry:
                return self._from_entry(provider_override)
            try:
                kind = ProviderKind(provider_override.lower())
            except ValueError:
                registered = ", ".join(sorted(registry.providers)) or "none"
                kinds = ", ".join(k.value for k in ProviderKind)
                raise ConfigurationError(
                    f"Unknown provider '{provider_override}'. "
                    f"Registered providers: {registered}. Provider kinds: {kinds}"
                ) from None
            return self._from_settings(kind)

        if registry.active_provider is not None:
            return self._from_entry(registry.active_provider)
        return self._from_settings(self._config.llm.provider)

    def _from_entry(self, name: str) -> ResolvedProvider:
        entry = self._config.registry.get(name)
        return ResolvedProvider(
            name=entry.name,
            kind=entry.provider_type,
            model=entry.model,
            endpoint=entry.endpoint,
        )

    def _from_settings(self, kind: ProviderKind) -> ResolvedProvider:
        settings = self._config.llm.for_kind(kind)
        return ResolvedProvider(
            name=kind.value,
            kind=kind,
            model=settings.model,
            endpoint=settings.endpoint,
        )

    async def prepare(
        self, text: str, provider_override: Optional[str] = None
    ) -> ValidatedRequest:
        """Resolve and validate without sending anything.

        Raises:
            ConfigurationError: On an unknown override or a missing model,
                endpoint, or secret.
            SecretStoreError: If the secret backend fails.
        """
        resolved = self.resolve(provider_override)
        adapter = get_adapter(resolved.kind)

        secret = None
        if resolved.kind is not ProviderKind.LOCAL:
            secret = await self._credentials.get_valid_token(resolved.name, resolved.kind)

        return ValidatedRequest(
            provider_name=resolved.name,
            kind=resolved.kind,
            model=resolved.model,
            endpoint=adapter.resolve_endpoint(resolved.endpoint),
            secret=secret,
            prompt=build_prompt(text),
        )

    # ------------------------------------------------------------------ #
    # Invocation
    # ------------------------------------------------------------------ #

    async def format(self, text: str, provider_override: Optional[str] = None) -> str:
        """Format *text* with the resolved provider and return the markdown.

        Raises:
            ConfigurationError: If the provider is unknown or misconfigured,
                or the local model is not installed.
            SecretStoreError: If the secret backend fails.
            ServiceUnreachableError: If the local server fails its probe.
            RequestTimeoutError: If the request exceeds the timeout.
            NetworkError: On any other transport failure.
            ProviderStatusError: On a non-success HTTP status.
            MalformedResponseError: If the answer lacks the expected field.
            EmptyResponseError: If the answer is blank.
        """
        request = await self.prepare(text, provider_override)
        adapter = get_adapter(request.kind)
        logger.debug(
            "Dispatching to '%s' (%s, model %s)",
            request.provider_name,
            request.kind.value,
            request.model,
        )

        if self._client is not None:
            return await self._send(self._client, adapter, request)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._send(client, adapter, request)

    async def _send(
        self,
        client: httpx.AsyncClient,
        adapter: ProviderAdapter,
        request: ValidatedRequest,
    ) -> str:
        if request.kind is ProviderKind.LOCAL:
            catalog = self.catalog_for(request.endpoint)
            await catalog.ensure_available()
            await catalog.ensure_model(request.model)

        call = adapter.build_call(request)
        response = await self._execute(client, adapter, call)
        if not response.is_success:
            raise ProviderStatusError(adapter.display_name, response.status_code, response.text)
        return adapter.parse_response(response)

    async def _execute(
        self, client: httpx.AsyncClient, adapter: ProviderAdapter, call: ProviderCall
    ) -> httpx.Response:
        try:
            return await client.request(
                call.method,
                call.url,
                headers=call.headers,
                json=call.json,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"{adapter.display_name} request timed out after "
                f"{self._timeout.read:.0f} seconds"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"Failed to connect to {adapter.display_name} at {call.url}: {exc}"
            ) from exc
