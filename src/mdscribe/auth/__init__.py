"""Secret storage, credential resolution, and OAuth device login.

The main entry points are:

- :class:`SecretStore` -- abstract ``(service, account)`` secret backend, with
  :class:`KeyringSecretStore`, :class:`FileSecretStore`, and
  :class:`MemorySecretStore` implementations.
- :class:`CredentialManager` -- decides which secret a named provider uses
  (OAuth token, environment API key, stored API key).
- :class:`OAuthManager` -- runs the :rfc:`8628` device authorization flow.
- :class:`OAuthToken` -- the persisted bearer token.

Typical usage::

    from mdscribe.auth import CredentialManager, KeyringSecretStore

    creds = CredentialManager(KeyringSecretStore())
    secret = await creds.get_valid_token("work", ProviderKind.OPENAI)
"""

from mdscribe.auth.credentials import CredentialManager
from mdscribe.auth.oauth import (
    DeviceAuthorization,
    OAuthManager,
    PollResult,
    PollStatus,
    classify_poll_response,
)
from mdscribe.auth.secret_store import (
    FileSecretStore,
    KeyringSecretStore,
    MemorySecretStore,
    SecretStore,
)
from mdscribe.auth.token import OAuthToken

__all__ = [
    "CredentialManager",
    "DeviceAuthorization",
    "FileSecretStore",
    "KeyringSecretStore",
    "MemorySecretStore",
    "OAuthManager",
    "OAuthToken",
    "PollResult",
    "PollStatus",
    "SecretStore",
    "classify_poll_response",
]
