"""User-defined OpenAI-compatible endpoint (LM Studio, vLLM, llama.cpp server).

There is no default endpoint; one must be configured. The secret is
optional and the ``Authorization`` header is omitted when none resolves.
"""

from __future__ import annotations

from mdscribe.models import ProviderKind
from mdscribe.providers.openai import ChatCompletionsAdapter


class CustomAdapter(ChatCompletionsAdapter):
    kind = ProviderKind.CUSTOM
    default_endpoint = None
