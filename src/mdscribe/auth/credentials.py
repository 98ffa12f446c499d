"""Credential resolution for named providers.

:class:`CredentialManager` is the single place that decides which secret a
provider uses. Every call site (dispatch, ``auth status``, ``provider test``)
goes through :meth:`CredentialManager.get_valid_token` so they all observe
the same precedence:

1. A valid (possibly just refreshed) OAuth access token.
2. An API key, where ``MDSCRIBE_<NAME>_API_KEY`` in the environment beats
   the stored key without modifying it.
3. Nothing.

API keys are stored under account ``<name>`` and OAuth tokens under
``<name>_oauth_token``, both in the ``mdscribe`` service, so a provider can
keep an API key as a fallback while a token is being obtained.

The secret store is passed in explicitly; tests use
:class:`~mdscribe.auth.secret_store.MemorySecretStore`.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Awaitable, Callable, Mapping, Optional

from pydantic import ValidationError

from mdscribe import APP_NAME
from mdscribe.auth.secret_store import SecretStore
from mdscribe.auth.token import REFRESH_THRESHOLD_SECONDS, OAuthToken
from mdscribe.exceptions import ConfigurationError, SecretStoreError
from mdscribe.models import ProviderKind

logger = logging.getLogger(__name__)

ENV_PREFIX = "MDSCRIBE"
OAUTH_ACCOUNT_SUFFIX = "_oauth_token"

TokenRefresher = Callable[[str, OAuthToken], Awaitable[OAuthToken]]
"""Async callable ``(provider_name, token) -> refreshed token``."""


def _unsupported_refresher(kind: ProviderKind) -> TokenRefresher:
    async def _refresh(provider_name: str, token: OAuthToken) -> OAuthToken:
        raise ConfigurationError(
            f"{kind.display_name} OAuth refresh is not supported. "
            f"Log in again: mdscribe auth login {provider_name}"
        )

    return _refresh


DEFAULT_REFRESHERS: dict[ProviderKind, TokenRefresher] = {
    ProviderKind.OPENAI: _unsupported_refresher(ProviderKind.OPENAI),
    ProviderKind.ANTHROPIC: _unsupported_refresher(ProviderKind.ANTHROPIC),
}


class CredentialManager:
    """Resolve, store, and delete provider secrets.

    Args:
        store: Backend that holds API keys and serialised OAuth tokens.
        service: Service name used for every store entry.
        environ: Environment mapping consulted for API key overrides.
            Defaults to :data:`os.environ`.
        refreshers: Refresh routine per provider kind. Kinds without one
            cannot refresh OAuth tokens.
        refresh_threshold: Seconds before expiry at which a token is refreshed.

    Example::

        creds = CredentialManager(KeyringSecretStore())
        creds.set_api_key("work", "sk-...")
        secret = await creds.get_valid_token("work", ProviderKind.OPENAI)
    """

    def __init__(
        self,
        store: SecretStore,
        service: str = APP_NAME,
        environ: Optional[Mapping[str, str]] = None,
        refreshers: Optional[Mapping[ProviderKind, TokenRefresher]] = None,
        refresh_threshold: int = REFRESH_THRESHOLD_SECONDS,
    ) -> None:
        self._store = store
        self._service = service
        self._environ = environ if environ is not None else os.environ
        self._refreshers = dict(DEFAULT_REFRESHERS if refreshers is None else refreshers)
        self._refresh_threshold = refresh_threshold

    @property
    def store(self) -> SecretStore:
        return self._store

    # ------------------------------------------------------------------ #
    # API keys
    # ------------------------------------------------------------------ #

    @staticmethod
    def env_var_name(provider_name: str) -> str:
        """Return the environment variable that overrides *provider_name*'s key.

        ``"work"`` maps to ``MDSCRIBE_WORK_API_KEY``; characters that are not
        valid in a variable name become underscores.
        """
        slug = re.sub(r"[^A-Z0-9]", "_", provider_name.upper())
        return f"{ENV_PREFIX}_{slug}_API_KEY"

    def get_api_key(self, provider_name: str) -> Optional[str]:
        """Return the API key for *provider_name*, or ``None``.

        The environment variable wins over the stored key. The store is
        never written here.

        Raises:
            SecretStoreError: If the store cannot be read.
        """
        env_value = self._environ.get(self.env_var_name(provider_name))
        if env_value:
            logger.debug("Using API key for '%s' from the environment", provider_name)
            return env_value
        return self._store.get(self._service, provider_name)

    def set_api_key(self, provider_name: str, api_key: str) -> None:
        """Store *api_key* for *provider_name*.

        Raises:
            ConfigurationError: If *api_key* is blank.
            SecretStoreError: If the store cannot be written.
        """
        api_key = api_key.strip()
        if not api_key:
            raise ConfigurationError("API key cannot be empty")
        self._store.set(self._service, provider_name, api_key)
        logger.debug("Stored API key for '%s'", provider_name)

    def delete_api_key(self, provider_name: str) -> None:
        """Delete the stored API key. Succeeds when no key is stored."""
        self._store.delete(self._service, provider_name)

    def has_api_key(self, provider_name: str) -> bool:
        return self.get_api_key(provider_name) is not None

    def api_key_source(self, provider_name: str) -> Optional[str]:
        """Where the effective API key comes from: ``"env"``, ``"stored"``, or ``None``."""
        if self._environ.get(self.env_var_name(provider_name)):
            return "env"
        if self._store.get(self._service, provider_name) is not None:
            return "stored"
        return None

    # ------------------------------------------------------------------ #
    # OAuth tokens
    # ------------------------------------------------------------------ #

    def _token_account(self, provider_name: str) -> str:
        return f"{provider_name}{OAUTH_ACCOUNT_SUFFIX}"

    def get_oauth_token(self, provider_name: str) -> Optional[OAuthToken]:
        """Return the stored OAuth token, or ``None`` when none is stored.

        Raises:
            SecretStoreError: If the stored value is not a valid token.
        """
        raw = self._store.get(self._service, self._token_account(provider_name))
        if raw is None:
            return None
        try:
            return OAuthToken.model_validate_json(raw)
        except ValidationError as exc:
            raise SecretStoreError(
                f"Stored OAuth token for '{provider_name}' is corrupt. "
                f"Remove it with: mdscribe auth logout {provider_name}"
            ) from exc

    def set_oauth_token(self, provider_name: str, token: OAuthToken) -> None:
        self._store.set(
            self._service,
            self._token_account(provider_name),
            token.model_dump_json(),
        )
        logger.debug("Stored OAuth token for '%s'", provider_name)

    def delete_oauth_token(self, provider_name: str) -> None:
        self._store.delete(self._service, self._token_account(provider_name))

    def has_oauth_token(self, provider_name: str) -> bool:
        return self.get_oauth_token(provider_name) is not None

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #

    async def get_valid_token(
        self, provider_name: str, provider_type: ProviderKind
    ) -> Optional[str]:
        """Return the effective secret for *provider_name*, or ``None``.

        A stored OAuth token that is close to expiry and carries a refresh
        token is refreshed and persisted first. A non-expired token wins;
        otherwise the API key (environment, then store) is returned.

        Raises:
            ConfigurationError: If a refresh was required but the provider
                kind has no working refresh routine.
            SecretStoreError: If the store fails or holds a corrupt token.
        """
        token = self.get_oauth_token(provider_name)
        if token is not None:
            if token.refresh_token and token.needs_refresh(self._refresh_threshold):
                token = await self._refresh(provider_name, provider_type, token)
                self.set_oauth_token(provider_name, token)

            if not token.is_expired():
                return token.access_token
            logger.debug("OAuth token for '%s' has expired", provider_name)

        return self.get_api_key(provider_name)

    async def _refresh(
        self, provider_name: str, provider_type: ProviderKind, token: OAuthToken
    ) -> OAuthToken:
        refresher = self._refreshers.get(provider_type)
        if refresher is None:
            raise ConfigurationError(
                f"OAuth not supported for provider type: {provider_type.value}"
            )
        logger.debug("Refreshing OAuth token for '%s'", provider_name)
        refreshed = await refresher(provider_name, token)
        if refreshed.refresh_token is None:
            refreshed = refreshed.model_copy(update={"refresh_token": token.refresh_token})
        return refreshed
