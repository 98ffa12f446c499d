"""Adapter interface and the validated request value shared by all providers.

A provider adapter translates a :class:`ValidatedRequest` into one HTTP call
and turns the provider's answer back into plain text. Adapters do no I/O;
:class:`~mdscribe.dispatcher.ProviderDispatcher` sends the call and maps
transport failures.

To add a provider kind, subclass :class:`ProviderAdapter`, set
:attr:`~ProviderAdapter.kind` and :attr:`~ProviderAdapter.default_endpoint`,
implement :meth:`~ProviderAdapter.build_call` and
:meth:`~ProviderAdapter.extract_text`, and register the instance in
:data:`mdscribe.providers.ADAPTERS`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

import httpx

from mdscribe.exceptions import (
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
)
from mdscribe.models import ProviderKind

FORMAT_INSTRUCTIONS = (
    "Please format the following transcript into well-structured markdown.\n"
    "Keep the original content but improve readability by:\n"
    "- Organizing into logical paragraphs\n"
    "- Fixing any grammar or punctuation issues\n"
    "- Removing filler words if appropriate\n"
    "- Maintaining the original meaning and tone"
)

SYSTEM_MESSAGE = (
    "You are a helpful assistant that formats transcripts into well-structured markdown."
)


def build_prompt(transcript: str) -> str:
    """Wrap *transcript* in the formatting instructions."""
    return f"{FORMAT_INSTRUCTIONS}\n\nTranscript:\n\n{transcript}"


@dataclass(frozen=True)
class ValidatedRequest:
    """Everything needed to call a provider, checked before any network I/O.

    Construction fails with :class:`~mdscribe.exceptions.ConfigurationError`
    when a required field is missing, so an instance is always sendable.

    Attributes:
        provider_name: Registry entry name, or the kind's value on the
            single-setting path. Used in messages and for credentials.
        kind: Provider kind, which selects the adapter.
        model: Model name sent to the provider.
        endpoint: Base URL without a trailing slash.
        secret: API key or OAuth access token, if one resolved.
        prompt: Full user prompt including the transcript.
    """

    provider_name: str
    kind: ProviderKind
    model: str
    endpoint: str
    secret: Optional[str]
    prompt: str

    def __post_init__(self) -> None:
        if not self.model or not self.model.strip():
            raise ConfigurationError(
                f"No model configured for provider '{self.provider_name}'. "
                f"Set one with: mdscribe provider add {self.provider_name} --model <model>"
            )
        if not self.endpoint or not self.endpoint.strip():
            if self.kind is ProviderKind.CUSTOM:
                raise ConfigurationError(
                    f"Custom provider '{self.provider_name}' requires an endpoint. "
                    f"Set one with: mdscribe provider add {self.provider_name} "
                    f"--type custom --endpoint <url>"
                )
            raise ConfigurationError(
                f"No endpoint configured for provider '{self.provider_name}'"
            )
        if self.kind.is_hosted and not self.secret:
            raise ConfigurationError(
                f"No API key found for {self.kind.display_name} provider "
                f"'{self.provider_name}'. Set one with: "
                f"mdscribe auth set-key {self.provider_name}"
            )


@dataclass(frozen=True)
class ProviderCall:
    """One outgoing HTTP request as built by an adapter."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    json: Optional[dict[str, Any]] = None


class ProviderAdapter(ABC):
    """Translate between :class:`ValidatedRequest` and one provider's wire format."""

    kind: ClassVar[ProviderKind]
    default_endpoint: ClassVar[Optional[str]] = None

    @property
    def display_name(self) -> str:
        return self.kind.display_name

    def resolve_endpoint(self, configured: Optional[str]) -> str:
        """Return *configured* or the kind's default, without a trailing slash."""
        endpoint = (configured or self.default_endpoint or "").strip()
        return endpoint.rstrip("/")

    @abstractmethod
    def build_call(self, request: ValidatedRequest) -> ProviderCall:
        """Build the generation request for *request*."""
        ...

    @abstractmethod
    def extract_text(self, payload: Any) -> str:
        """Pull the generated text out of a decoded response body.

        Raises:
            MalformedResponseError: If the expected field is missing.
        """
        ...

    def parse_response(self, response: httpx.Response) -> str:
        """Decode a successful response into stripped text.

        Raises:
            MalformedResponseError: If the body is not JSON or lacks the
                expected field.
            EmptyResponseError: If the text is empty after stripping.
        """
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Failed to parse {self.display_name} response: {exc}"
            ) from exc
        text = self.extract_text(payload)
        if not isinstance(text, str):
            raise MalformedResponseError(
                f"Invalid response format from {self.display_name}"
            )
        text = text.strip()
        if not text:
            raise EmptyResponseError(f"{self.display_name} returned empty response")
        return text

    def _malformed(self) -> MalformedResponseError:
        return MalformedResponseError(f"Invalid response format from {self.display_name}")
