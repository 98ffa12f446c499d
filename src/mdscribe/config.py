"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for mdscribe:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.mdscribe/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **App config** -- A single :class:`~mdscribe.models.AppConfig` JSON file
  holding the single-provider setting, the named-provider registry, and the
  transcript defaults. Managed via :func:`load_config` and :func:`save_config`.
* **Precedence resolution** -- :func:`resolve_config` layers the
  ``--provider`` CLI flag and the ``MDSCRIBE_PROVIDER`` environment variable
  over the file.
* **Secret backend selection** -- :func:`create_secret_store` builds the
  :class:`~mdscribe.auth.secret_store.SecretStore` named by the config.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from mdscribe import APP_NAME
from mdscribe.exceptions import ConfigurationError
from mdscribe.models import AppConfig, ProviderKind

logger = logging.getLogger(__name__)

_CONFIG_FILENAME = "config.json"

CONFIG_PATH_ENV = "MDSCRIBE_CONFIG"
PROVIDER_ENV = "MDSCRIBE_PROVIDER"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/mdscribe/`` (default ``~/.config/mdscribe/``).
    On macOS/Windows: ``~/.mdscribe/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs, file-backed secrets), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/mdscribe/`` (default ``~/.local/share/mdscribe/``).
    On macOS/Windows: ``~/.mdscribe/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Path to the config file, honouring ``MDSCRIBE_CONFIG`` when set."""
    override = os.environ.get(CONFIG_PATH_ENV, "")
    if override:
        return Path(override).expanduser()
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    When *mode* is given, permissions are applied to the temp file before
    any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- App config ---


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load the application configuration.

    Args:
        path: Explicit file to read. Defaults to :func:`get_config_path`.

    Returns:
        The deserialised :class:`~mdscribe.models.AppConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigurationError: If the file exists but contains invalid JSON or
            fails Pydantic validation.
    """
    path = path or get_config_path()
    if not path.is_file():
        logger.debug("No config file at %s, using defaults", path)
        return AppConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return AppConfig.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigurationError(
            f"Invalid config at {path}: {exc}. Fix it by hand or run: mdscribe config reset"
        ) from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config at {path}: {exc}") from exc


def save_config(config: AppConfig, path: Optional[Path] = None) -> Path:
    """Persist the configuration atomically to disk.

    Args:
        config: The configuration to save.
        path: Explicit destination. Defaults to :func:`get_config_path`.

    Returns:
        The path that was written.
    """
    path = path or get_config_path()
    data = config.model_dump(mode="json")
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    logger.debug("Saved config to %s", path)
    return path


# --- Precedence resolution ---


def resolve_config(cli_provider: Optional[str] = None) -> AppConfig:
    """Load the config and apply provider-kind overrides.

    Precedence (high to low):
        1. ``cli_provider`` when it names a provider kind
        2. ``MDSCRIBE_PROVIDER`` environment variable
        3. User config (``~/.config/mdscribe/config.json``)
        4. Defaults

    A ``cli_provider`` that is not a kind (for example a registry entry
    name) is left for the dispatcher to resolve and does not change the
    loaded settings.

    Raises:
        ConfigurationError: If the file is invalid or the environment
            variable names an unknown kind.
    """
    config = load_config()

    env_provider = os.environ.get(PROVIDER_ENV, "")
    if env_provider:
        config.llm.provider = parse_kind(env_provider, source=PROVIDER_ENV)

    if cli_provider is not None:
        try:
            config.llm.provider = ProviderKind(cli_provider.lower())
        except ValueError:
            pass

    return config


def parse_kind(value: str, source: str = "provider") -> ProviderKind:
    """Parse *value* into a :class:`~mdscribe.models.ProviderKind`.

    Raises:
        ConfigurationError: If *value* is not a known kind.
    """
    try:
        return ProviderKind(value.strip().lower())
    except ValueError:
        choices = ", ".join(kind.value for kind in ProviderKind)
        raise ConfigurationError(
            f"Unknown provider kind '{value}' ({source}). Choose one of: {choices}"
        ) from None


# --- Secret backend ---


def create_secret_store(config: AppConfig):  # noqa: ANN201
    """Build the secret store selected by ``config.secret_backend``.

    Returns:
        A :class:`~mdscribe.auth.secret_store.KeyringSecretStore` or a
        :class:`~mdscribe.auth.secret_store.FileSecretStore` rooted in
        the data directory.
    """
    from mdscribe.auth.secret_store import FileSecretStore, KeyringSecretStore

    if config.secret_backend == "file":
        return FileSecretStore(get_data_dir() / "secrets.json")
    return KeyringSecretStore()
