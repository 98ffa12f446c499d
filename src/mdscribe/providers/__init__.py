"""Per-kind provider adapters.

:data:`ADAPTERS` is the single table that maps every
:class:`~mdscribe.models.ProviderKind` to its adapter. It is checked for
completeness at import time, so adding a kind without an adapter fails
immediately rather than at dispatch.
"""

from mdscribe.models import ProviderKind
from mdscribe.providers.anthropic import AnthropicAdapter
from mdscribe.providers.base import (
    ProviderAdapter,
    ProviderCall,
    ValidatedRequest,
    build_prompt,
)
from mdscribe.providers.custom import CustomAdapter
from mdscribe.providers.deepseek import DeepSeekAdapter
from mdscribe.providers.local import LocalModelCatalog, OllamaAdapter
from mdscribe.providers.openai import OpenAIAdapter

ADAPTERS: dict[ProviderKind, ProviderAdapter] = {
    adapter.kind: adapter
    for adapter in (
        OllamaAdapter(),
        OpenAIAdapter(),
        AnthropicAdapter(),
        DeepSeekAdapter(),
        CustomAdapter(),
    )
}

_missing = [kind.value for kind in ProviderKind if kind not in ADAPTERS]
if _missing:
    raise RuntimeError(f"No provider adapter registered for: {', '.join(_missing)}")


def get_adapter(kind: ProviderKind) -> ProviderAdapter:
    """Return the adapter for *kind*."""
    return ADAPTERS[kind]


__all__ = [
    "ADAPTERS",
    "LocalModelCatalog",
    "ProviderAdapter",
    "ProviderCall",
    "ValidatedRequest",
    "build_prompt",
    "get_adapter",
]
