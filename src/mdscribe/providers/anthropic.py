"""Anthropic Messages API adapter."""

from __future__ import annotations

from typing import Any

from mdscribe.models import ProviderKind
from mdscribe.providers.base import (
    SYSTEM_MESSAGE,
    ProviderAdapter,
    ProviderCall,
    ValidatedRequest,
)

ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 4096


class AnthropicAdapter(ProviderAdapter):
    """``POST {endpoint}/messages`` authenticated with the ``x-api-key`` header."""

    kind = ProviderKind.ANTHROPIC
    default_endpoint = "https://api.anthropic.com/v1"

    def build_call(self, request: ValidatedRequest) -> ProviderCall:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if request.secret:
            headers["x-api-key"] = request.secret
        return ProviderCall(
            method="POST",
            url=f"{request.endpoint}/messages",
            headers=headers,
            json={
                "model": request.model,
                "max_tokens": MAX_TOKENS,
                "system": SYSTEM_MESSAGE,
                "messages": [{"role": "user", "content": request.prompt}],
            },
        )

    def extract_text(self, payload: Any) -> str:
        try:
            return payload["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed() from None
