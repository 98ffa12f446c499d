"""Exception hierarchy for mdscribe.

All exceptions inherit from :class:`MdscribeError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`mdscribe.exit_codes`.
The top-level error handler in :func:`mdscribe.app.main` catches
``MdscribeError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    MdscribeError (exit 1)
    +-- InvalidUsageError          (exit 2)
    +-- ConfigurationError         (exit 3)
    |   +-- NoActiveProviderError
    +-- SecretStoreError           (exit 4)
    +-- ProviderProtocolError      (exit 5)
    |   +-- ProviderStatusError
    |   +-- MalformedResponseError
    |   +-- EmptyResponseError
    +-- NetworkError               (exit 6)
    |   +-- RequestTimeoutError
    |   +-- ServiceUnreachableError
    +-- AuthorizationFlowError     (exit 7)

None of these are retried automatically. Callers outside the core decide
whether to fall back to non-LLM formatting.
"""

from __future__ import annotations

import enum
from typing import Optional

from mdscribe.exit_codes import (
    EXIT_AUTH_FLOW_ERROR,
    EXIT_CONFIG_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PROVIDER_ERROR,
    EXIT_SECRET_STORE_ERROR,
)


class MdscribeError(Exception):
    """Base exception for all mdscribe errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`mdscribe.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(MdscribeError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigurationError(MdscribeError):
    """Raised for missing or invalid settings.

    Covers unknown provider names, missing API keys for hosted providers,
    empty model names, and provider kinds that do not support the OAuth
    device flow. The message always carries a remediation hint.
    """

    exit_code = EXIT_CONFIG_ERROR


class NoActiveProviderError(ConfigurationError):
    """Raised when the registry has no active provider selected."""


class SecretStoreError(MdscribeError):
    """Raised when the secret backend is unavailable or a stored record is corrupt.

    Distinct from "absent": a missing entry is reported as ``None`` by the
    store, never as this exception.
    """

    exit_code = EXIT_SECRET_STORE_ERROR


class NetworkError(MdscribeError):
    """Raised on network-level failures (connection refused, DNS, TLS)."""

    exit_code = EXIT_CONNECTION_ERROR


class RequestTimeoutError(NetworkError):
    """Raised when a provider request exceeds its timeout.

    Kept separate from :class:`NetworkError` so callers can decide whether a
    retry is worthwhile.
    """


class ServiceUnreachableError(NetworkError):
    """Raised when the local model server fails its liveness probe."""


class ProviderProtocolError(MdscribeError):
    """Raised when a provider answers but the answer cannot be used."""

    exit_code = EXIT_PROVIDER_ERROR


class ProviderStatusError(ProviderProtocolError):
    """Raised on a non-success HTTP status from a provider.

    The upstream body is kept verbatim on :attr:`body` and in the message.

    Args:
        provider: Display name of the provider that failed.
        status_code: The HTTP status code received.
        body: The raw response body, possibly empty.
    """

    def __init__(self, provider: str, status_code: int, body: str = ""):
        message = f"{provider} API returned error {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.body = body


class MalformedResponseError(ProviderProtocolError):
    """Raised when a provider response lacks the expected fields."""


class EmptyResponseError(ProviderProtocolError):
    """Raised when a provider returns only whitespace."""


class FlowFailure(str, enum.Enum):
    """Terminal failure reasons of the OAuth device authorization flow."""

    EXPIRED = "expired"
    DENIED = "denied"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class AuthorizationFlowError(MdscribeError):
    """Raised when device-code polling ends without a token.

    Args:
        reason: Which terminal state the flow reached.
        message: Human-readable description.
        error_code: The raw OAuth ``error`` value for :attr:`FlowFailure.UNKNOWN`.
    """

    exit_code = EXIT_AUTH_FLOW_ERROR

    def __init__(
        self,
        reason: FlowFailure,
        message: str,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.error_code = error_code
