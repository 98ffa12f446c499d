"""Canonical Pydantic models for mdscribe configuration.

This is the single source of truth for the persisted configuration shape.
Everything here is serialised as JSON in the user's config directory by
:mod:`mdscribe.config`:

* :class:`ProviderKind` -- the closed set of model backends.
* :class:`KindSettings` and :class:`LlmSettings` -- the single "current
  provider" setting with per-kind model and endpoint defaults.
* :class:`ProviderConfig` and :class:`ProviderRegistry` -- named provider
  entries plus the active-provider pointer.
* :class:`AppConfig` -- the top-level document.

The registry enforces its invariants in its mutating methods and in a model
validator, so a config file edited by hand cannot point the active provider
at an entry that does not exist.
"""

from __future__ import annotations

import enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from mdscribe.exceptions import ConfigurationError, NoActiveProviderError


class ProviderKind(str, enum.Enum):
    """Model backend categories. Each kind has exactly one wire protocol."""

    LOCAL = "local"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    CUSTOM = "custom"

    @property
    def is_hosted(self) -> bool:
        """Whether this kind is a hosted API that always needs a secret."""
        return self in _HOSTED_KINDS

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_HOSTED_KINDS = frozenset(
    {ProviderKind.OPENAI, ProviderKind.ANTHROPIC, ProviderKind.DEEPSEEK}
)

_DISPLAY_NAMES = {
    ProviderKind.LOCAL: "Ollama",
    ProviderKind.OPENAI: "OpenAI",
    ProviderKind.ANTHROPIC: "Anthropic",
    ProviderKind.DEEPSEEK: "DeepSeek",
    ProviderKind.CUSTOM: "Custom",
}


# --- Single provider setting ---


class KindSettings(BaseModel):
    """Model and endpoint for one provider kind on the single-setting path."""

    model: str = Field(default="", description="Model name sent to the provider")
    endpoint: Optional[str] = Field(
        default=None, description="Override for the kind's default endpoint"
    )


class LlmSettings(BaseModel):
    """The single "current provider" setting used when no registry entry is active."""

    provider: ProviderKind = Field(
        default=ProviderKind.LOCAL, description="Kind used by `mdscribe format`"
    )
    local: KindSettings = Field(
        default_factory=lambda: KindSettings(
            model="mistral-nemo:12b-instruct-2407-q5_0",
            endpoint="http://localhost:11434",
        )
    )
    openai: KindSettings = Field(
        default_factory=lambda: KindSettings(model="gpt-4o")
    )
    anthropic: KindSettings = Field(
        default_factory=lambda: KindSettings(model="claude-3-5-sonnet-20241022")
    )
    deepseek: KindSettings = Field(
        default_factory=lambda: KindSettings(model="deepseek-chat")
    )
    custom: KindSettings = Field(default_factory=KindSettings)

    def for_kind(self, kind: ProviderKind) -> KindSettings:
        """Return the settings block for *kind*."""
        return getattr(self, kind.value)


# --- Named provider registry ---


class ProviderConfig(BaseModel):
    """A named provider entry in the registry.

    Example::

        ProviderConfig(name="work", provider_type="openai", model="gpt-4o")
    """

    name: str = Field(min_length=1, description="Unique registry key")
    provider_type: ProviderKind
    model: str = Field(description="Model name sent to the provider")
    endpoint: Optional[str] = Field(
        default=None, description="Override for the kind's default endpoint"
    )

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("provider name cannot be blank")
        return value


class ProviderRegistry(BaseModel):
    """Named provider entries plus an optional active-provider pointer.

    The registry is a mapping; :meth:`list` order carries no meaning.
    """

    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    active_provider: Optional[str] = None

    @model_validator(mode="after")
    def check_invariants(self) -> ProviderRegistry:
        for key, entry in self.providers.items():
            if key != entry.name:
                raise ValueError(
                    f"registry key '{key}' does not match provider name '{entry.name}'"
                )
        if self.active_provider is not None and self.active_provider not in self.providers:
            raise ValueError(
                f"active provider '{self.active_provider}' is not registered"
            )
        return self

    def add(self, entry: ProviderConfig) -> None:
        """Register *entry*.

        Raises:
            ConfigurationError: If a provider with the same name exists.
                The registry is left unchanged.
        """
        if entry.name in self.providers:
            raise ConfigurationError(f"Provider '{entry.name}' already exists")
        self.providers[entry.name] = entry

    def remove(self, name: str) -> ProviderConfig:
        """Remove and return the entry called *name*.

        Clears the active pointer if it pointed at the removed entry.

        Raises:
            ConfigurationError: If no such provider is registered.
        """
        if name not in self.providers:
            raise ConfigurationError(f"Provider '{name}' not found")
        if self.active_provider == name:
            self.active_provider = None
        return self.providers.pop(name)

    def get(self, name: str) -> ProviderConfig:
        """Return the entry called *name*.

        Raises:
            ConfigurationError: If no such provider is registered.
        """
        entry = self.providers.get(name)
        if entry is None:
            raise ConfigurationError(f"Provider '{name}' not found")
        return entry

    def set_active(self, name: str) -> None:
        """Point the active-provider selector at *name*.

        Raises:
            ConfigurationError: If no such provider is registered.
        """
        if name not in self.providers:
            raise ConfigurationError(f"Provider '{name}' not found")
        self.active_provider = name

    def get_active(self) -> ProviderConfig:
        """Return the active entry.

        Raises:
            NoActiveProviderError: If no active provider is set.
        """
        if self.active_provider is None:
            raise NoActiveProviderError(
                "No active provider set. Choose one with: mdscribe provider use <name>"
            )
        return self.get(self.active_provider)

    def list(self) -> list[ProviderConfig]:
        """Return every registered entry, in no particular order."""
        return list(self.providers.values())

    def __contains__(self, name: object) -> bool:
        return name in self.providers


# --- Top-level document ---


class AppConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/mdscribe/config.json``.

    Loaded and saved by :func:`~mdscribe.config.load_config` and
    :func:`~mdscribe.config.save_config`. The transcript-side fields
    (``prefer_captions`` through ``paragraph_length``) are consumed by the
    transcription pipeline and are carried here unchanged.
    """

    llm: LlmSettings = Field(default_factory=LlmSettings)
    registry: ProviderRegistry = Field(default_factory=ProviderRegistry)
    secret_backend: Literal["keyring", "file"] = Field(
        default="keyring", description="Where API keys and OAuth tokens are stored"
    )
    prefer_captions: bool = True
    default_language: str = "en"
    output_dir: Optional[str] = None
    timestamps: bool = False
    compact: bool = False
    paragraph_length: int = Field(
        default=4, ge=1, description="Sentences per paragraph"
    )
