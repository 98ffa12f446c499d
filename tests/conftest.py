"""Shared test fixtures for mdscribe.

Provides isolated config directories, an in-memory secret store, output
state management, and a CLI runner. Discovered automatically by pytest.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from mdscribe.auth.credentials import CredentialManager
from mdscribe.auth.secret_store import MemorySecretStore
from mdscribe.models import AppConfig, ProviderConfig, ProviderKind
from mdscribe.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time. When
    Typer's CliRunner swaps those streams and the test ends, the cached
    references go stale, so a fresh manager is forced on next use.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _no_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own provider environment out of tests."""
    import os

    for var in list(os.environ):
        if var.startswith("MDSCRIBE_"):
            monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# Config isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the XDG config and data dirs at tmp_path.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("mdscribe.config._is_xdg_platform", lambda: True)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def credentials(memory_store: MemorySecretStore) -> CredentialManager:
    """CredentialManager over an empty in-memory store and an empty environment."""
    return CredentialManager(memory_store, environ={})


@pytest.fixture
def work_config() -> AppConfig:
    """Config with one active OpenAI entry called "work" using model "m1"."""
    config = AppConfig()
    config.registry.add(
        ProviderConfig(name="work", provider_type=ProviderKind.OPENAI, model="m1")
    )
    config.registry.set_active("work")
    return config


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
