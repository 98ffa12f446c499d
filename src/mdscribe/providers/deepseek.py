"""DeepSeek adapter (OpenAI-compatible chat completions)."""

from __future__ import annotations

from mdscribe.models import ProviderKind
from mdscribe.providers.openai import ChatCompletionsAdapter


class DeepSeekAdapter(ChatCompletionsAdapter):
    kind = ProviderKind.DEEPSEEK
    default_endpoint = "https://api.deepseek.com/v1"
