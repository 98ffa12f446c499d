"""OpenAI chat-completions adapter.

The same wire shape is spoken by DeepSeek and by most self-hosted
"OpenAI-compatible" servers, so :class:`ChatCompletionsAdapter` is the base
for :mod:`mdscribe.providers.deepseek` and :mod:`mdscribe.providers.custom`.
"""

from __future__ import annotations

from typing import Any

from mdscribe.models import ProviderKind
from mdscribe.providers.base import (
    SYSTEM_MESSAGE,
    ProviderAdapter,
    ProviderCall,
    ValidatedRequest,
)

CHAT_TEMPERATURE = 0.1


class ChatCompletionsAdapter(ProviderAdapter):
    """``POST {endpoint}/chat/completions`` with a system + user message pair."""

    def build_call(self, request: ValidatedRequest) -> ProviderCall:
        headers = {"Content-Type": "application/json"}
        if request.secret:
            headers["Authorization"] = f"Bearer {request.secret}"
        return ProviderCall(
            method="POST",
            url=f"{request.endpoint}/chat/completions",
            headers=headers,
            json={
                "model": request.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": request.prompt},
                ],
                "temperature": CHAT_TEMPERATURE,
            },
        )

    def extract_text(self, payload: Any) -> str:
        try:
            return payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed() from None


class OpenAIAdapter(ChatCompletionsAdapter):
    kind = ProviderKind.OPENAI
    default_endpoint = "https://api.openai.com/v1"
