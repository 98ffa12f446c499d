"""Secret storage backends keyed by ``(service, account)``.

Every backend implements the three-operation :class:`SecretStore` contract:

- :meth:`~SecretStore.get` returns the secret or ``None`` when the entry
  does not exist.
- :meth:`~SecretStore.set` creates or replaces an entry.
- :meth:`~SecretStore.delete` removes an entry; deleting an absent entry is
  not an error.

Any fault in the storage layer itself (locked keychain, missing Secret
Service daemon, unreadable file) is raised as
:class:`~mdscribe.exceptions.SecretStoreError` so callers can tell
"not configured" apart from "storage unavailable".

Backends:

- :class:`KeyringSecretStore` -- the OS keychain via :mod:`keyring`
  (macOS Keychain, Windows Credential Locker, Secret Service, KWallet).
- :class:`FileSecretStore` -- a single ``0o600`` JSON file written
  atomically, for headless hosts without a keyring daemon.
- :class:`MemorySecretStore` -- a process-local dict, used in tests and by
  embedders that manage secrets themselves.

See Also:
    :class:`~mdscribe.auth.credentials.CredentialManager` -- the only
    caller in the core.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import keyring
import keyring.errors

from mdscribe.config import _atomic_write
from mdscribe.exceptions import SecretStoreError

logger = logging.getLogger(__name__)


class SecretStore(ABC):
    """Abstract create/read/delete interface over a secret backend."""

    @abstractmethod
    def get(self, service: str, account: str) -> Optional[str]:
        """Return the secret for ``(service, account)`` or ``None`` if absent.

        Raises:
            SecretStoreError: If the backend cannot be read.
        """
        ...

    @abstractmethod
    def set(self, service: str, account: str, secret: str) -> None:
        """Create or replace the secret for ``(service, account)``.

        Raises:
            SecretStoreError: If the backend cannot be written.
        """
        ...

    @abstractmethod
    def delete(self, service: str, account: str) -> None:
        """Remove the secret for ``(service, account)``. Absent entries are ignored.

        Raises:
            SecretStoreError: If the backend cannot be written.
        """
        ...


class KeyringSecretStore(SecretStore):
    """Secret store backed by the operating system keychain.

    Thin wrapper over :func:`keyring.get_password`,
    :func:`keyring.set_password`, and :func:`keyring.delete_password` that
    translates :class:`keyring.errors.KeyringError` into
    :class:`~mdscribe.exceptions.SecretStoreError`.
    """

    def get(self, service: str, account: str) -> Optional[str]:
        try:
            return keyring.get_password(service, account)
        except keyring.errors.KeyringError as exc:
            raise SecretStoreError(
                f"Failed to read '{account}' from the system keyring: {exc}"
            ) from exc

    def set(self, service: str, account: str, secret: str) -> None:
        try:
            keyring.set_password(service, account, secret)
        except keyring.errors.KeyringError as exc:
            raise SecretStoreError(
                f"Failed to store '{account}' in the system keyring: {exc}"
            ) from exc

    def delete(self, service: str, account: str) -> None:
        try:
            keyring.delete_password(service, account)
        except keyring.errors.PasswordDeleteError:
            # Raised when the entry does not exist.
            logger.debug("No keyring entry %s/%s to delete", service, account)
        except keyring.errors.KeyringError as exc:
            raise SecretStoreError(
                f"Failed to delete '{account}' from the system keyring: {exc}"
            ) from exc


class FileSecretStore(SecretStore):
    """Secret store backed by one JSON file with ``0o600`` permissions.

    The file maps ``service -> account -> secret``. Every write rewrites the
    whole document atomically via a temp file and ``os.replace`` with
    restrictive permissions applied before any content is written, so
    secrets are never world-readable, even momentarily.

    Args:
        path: Location of the JSON document. Created on first write.

    Example::

        store = FileSecretStore(Path("~/.local/share/mdscribe/secrets.json"))
        store.set("mdscribe", "openai", "sk-...")
        assert store.get("mdscribe", "openai") == "sk-..."
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """The filesystem path of the secrets document."""
        return self._path

    def get(self, service: str, account: str) -> Optional[str]:
        return self._read().get(service, {}).get(account)

    def set(self, service: str, account: str, secret: str) -> None:
        data = self._read()
        data.setdefault(service, {})[account] = secret
        self._write(data)

    def delete(self, service: str, account: str) -> None:
        data = self._read()
        accounts = data.get(service)
        if not accounts or account not in accounts:
            return
        del accounts[account]
        if not accounts:
            del data[service]
        self._write(data)

    def _read(self) -> dict[str, dict[str, str]]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SecretStoreError(
                f"Cannot read secrets file {self._path}: {exc}"
            ) from exc
        if not isinstance(data, dict) or not all(
            isinstance(v, dict) for v in data.values()
        ):
            raise SecretStoreError(f"Secrets file {self._path} is corrupt")
        return data

    def _write(self, data: dict[str, dict[str, str]]) -> None:
        try:
            _atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)
        except OSError as exc:
            raise SecretStoreError(
                f"Cannot write secrets file {self._path}: {exc}"
            ) from exc


class MemorySecretStore(SecretStore):
    """Secret store held in a process-local dict. Nothing is persisted."""

    def __init__(self, initial: Optional[dict[tuple[str, str], str]] = None) -> None:
        self._entries: dict[tuple[str, str], str] = dict(initial or {})

    def get(self, service: str, account: str) -> Optional[str]:
        return self._entries.get((service, account))

    def set(self, service: str, account: str, secret: str) -> None:
        self._entries[(service, account)] = secret

    def delete(self, service: str, account: str) -> None:
        self._entries.pop((service, account), None)

    def __len__(self) -> int:
        return len(self._entries)
