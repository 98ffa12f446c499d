"""OAuth2 Device Authorization Grant (:rfc:`8628`) for hosted providers.

For terminals where a browser callback cannot be received. The user is
shown a short code to enter at a verification URI on any device while
mdscribe polls the token endpoint.

Flow:
    1. POST to the kind's device-code endpoint to obtain ``device_code`` +
       ``user_code``.
    2. Hand the code and URI to an ``on_prompt`` callback.
    3. Poll the token endpoint until the user authorizes, denies, or the
       attempt budget runs out.
    4. On success, :meth:`OAuthManager.login` persists the token through
       :class:`~mdscribe.auth.credentials.CredentialManager`.

Poll outcomes are classified by the pure function
:func:`classify_poll_response`; the manager only sleeps, posts, and acts
on the classification.

Only OpenAI exposes a device flow. Every other kind raises
:class:`~mdscribe.exceptions.ConfigurationError`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
from pydantic import ValidationError

from mdscribe.auth.credentials import CredentialManager
from mdscribe.auth.token import OAuthToken
from mdscribe.exceptions import (
    AuthorizationFlowError,
    ConfigurationError,
    FlowFailure,
    NetworkError,
    RequestTimeoutError,
)
from mdscribe.models import ProviderKind

logger = logging.getLogger(__name__)

MAX_POLL_ATTEMPTS = 120
DEFAULT_POLL_INTERVAL = 5
SLOW_DOWN_INCREMENT = 5
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class DeviceFlowEndpoints:
    device_code_url: str
    token_url: str
    scope: str
    audience: str


DEVICE_FLOW_ENDPOINTS: dict[ProviderKind, DeviceFlowEndpoints] = {
    ProviderKind.OPENAI: DeviceFlowEndpoints(
        device_code_url="https://auth0.openai.com/oauth/device/code",
        token_url="https://auth0.openai.com/oauth/token",
        scope="openid profile email offline_access",
        audience="https://api.openai.com/v1",
    ),
}


def endpoints_for(kind: ProviderKind) -> DeviceFlowEndpoints:
    """Return the device-flow endpoints for *kind*.

    Raises:
        ConfigurationError: If *kind* has no device flow.
    """
    endpoints = DEVICE_FLOW_ENDPOINTS.get(kind)
    if endpoints is None:
        raise ConfigurationError(
            f"{kind.display_name} does not support OAuth device login. "
            f"Use an API key instead: mdscribe auth set-key <name>"
        )
    return endpoints


@dataclass(frozen=True)
class DeviceAuthorization:
    """What the user needs to complete the flow, plus the polling handle."""

    device_code: str
    user_code: str
    verification_uri: str
    interval: int = DEFAULT_POLL_INTERVAL
    expires_in: Optional[int] = None


class PollStatus(str, enum.Enum):
    SUCCESS = "success"
    PENDING = "pending"
    SLOW_DOWN = "slow_down"
    EXPIRED = "expired"
    DENIED = "denied"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PollResult:
    """One classified poll answer. ``token`` is set exactly when ``status`` is ``SUCCESS``."""

    status: PollStatus
    token: Optional[OAuthToken] = None
    error_code: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.status is PollStatus.SUCCESS) != (self.token is not None):
            raise ValueError("PollResult carries a token only for SUCCESS")


_ERROR_STATUSES = {
    "authorization_pending": PollStatus.PENDING,
    "slow_down": PollStatus.SLOW_DOWN,
    "expired_token": PollStatus.EXPIRED,
    "access_denied": PollStatus.DENIED,
}


def classify_poll_response(
    status_code: int, payload: Optional[Mapping[str, Any]]
) -> PollResult:
    """Classify one token-endpoint response.

    Args:
        status_code: HTTP status of the poll response.
        payload: Decoded JSON body, or ``None`` if the body was not a JSON
            object.

    Returns:
        A :class:`PollResult`. A 2xx answer is ``SUCCESS`` only when it
        carries a non-empty ``access_token``; anything unrecognised is
        ``UNKNOWN``.
    """
    if payload is None:
        return PollResult(PollStatus.UNKNOWN, description=f"unreadable response (HTTP {status_code})")

    if 200 <= status_code < 300:
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            return PollResult(PollStatus.UNKNOWN, description="token response missing 'access_token'")
        expires_in = payload.get("expires_in")
        try:
            token = OAuthToken.from_expires_in(
                access_token,
                expires_in=int(expires_in) if expires_in is not None else None,
                refresh_token=payload.get("refresh_token"),
                token_type=payload.get("token_type"),
            )
        except (TypeError, ValueError, ValidationError):
            return PollResult(PollStatus.UNKNOWN, description="token response is malformed")
        return PollResult(PollStatus.SUCCESS, token=token)

    error = payload.get("error")
    if not isinstance(error, str) or not error:
        error = "unknown_error"
    description = payload.get("error_description")
    status = _ERROR_STATUSES.get(error, PollStatus.UNKNOWN)
    return PollResult(status, error_code=error, description=description)


PromptCallback = Callable[[DeviceAuthorization], None]
Sleep = Callable[[float], Awaitable[Any]]


def _log_prompt(authorization: DeviceAuthorization) -> None:
    logger.info(
        "Go to %s and enter code: %s",
        authorization.verification_uri,
        authorization.user_code,
    )


class OAuthManager:
    """Run the device authorization flow against a provider.

    The manager never persists anything itself; :meth:`login` stores the
    token only after the flow succeeds.

    Args:
        client: Async HTTP client to use. When ``None`` a short-lived
            :class:`httpx.AsyncClient` is opened per request.
        sleep: Awaitable used between polls. Defaults to :func:`asyncio.sleep`.
        max_attempts: Pending/slow-down answers tolerated before timing out.

    Example::

        manager = OAuthManager()
        token = await manager.device_code_flow(ProviderKind.OPENAI, "client-id")
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        max_attempts: int = MAX_POLL_ATTEMPTS,
    ) -> None:
        self._client = client
        self._sleep = sleep
        self._max_attempts = max_attempts

    async def _post_form(self, url: str, data: dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._client is not None:
            return await self._client.post(url, data=data, headers=headers)
        async with httpx.AsyncClient(timeout=_REQUEST_TIMEOUT) as client:
            return await client.post(url, data=data, headers=headers)

    async def request_device_code(
        self, kind: ProviderKind, client_id: str
    ) -> DeviceAuthorization:
        """POST to the device authorization endpoint.

        Raises:
            ConfigurationError: If *kind* has no device flow, the endpoint
                answers with an error status, or the response is missing a
                required field.
            RequestTimeoutError: If the request times out.
            NetworkError: If the request cannot be sent.
        """
        endpoints = endpoints_for(kind)
        if not client_id.strip():
            raise ConfigurationError("An OAuth client ID is required for device login")

        data = {
            "client_id": client_id,
            "scope": endpoints.scope,
            "audience": endpoints.audience,
        }
        try:
            response = await self._post_form(endpoints.device_code_url, data)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"Device code request to {endpoints.device_code_url} timed out"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Failed to initiate device code flow: {exc}") from exc

        if not response.is_success:
            raise ConfigurationError(
                f"Failed to get device code (HTTP {response.status_code}): {response.text}"
            )
        try:
            result = response.json()
        except ValueError as exc:
            raise ConfigurationError(f"Failed to parse device code response: {exc}") from exc
        if not isinstance(result, dict):
            raise ConfigurationError("Device code response is not a JSON object")

        for field in ("device_code", "user_code", "verification_uri"):
            if not result.get(field):
                raise ConfigurationError(f"Device code response missing '{field}'")

        interval = result.get("interval", DEFAULT_POLL_INTERVAL)
        expires_in = result.get("expires_in")
        return DeviceAuthorization(
            device_code=result["device_code"],
            user_code=result["user_code"],
            verification_uri=result["verification_uri"],
            interval=int(interval) if isinstance(interval, (int, float)) else DEFAULT_POLL_INTERVAL,
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
        )

    async def poll_for_token(
        self,
        kind: ProviderKind,
        client_id: str,
        authorization: DeviceAuthorization,
    ) -> OAuthToken:
        """Poll the token endpoint until the flow reaches a terminal state.

        Implements the polling rules of :rfc:`8628` section 3.5:
        ``authorization_pending`` keeps polling, ``slow_down`` widens the
        interval by :data:`SLOW_DOWN_INCREMENT` seconds, ``expired_token``
        and ``access_denied`` end the flow.

        Raises:
            AuthorizationFlowError: On expiry, denial, an unknown error, or
                after :data:`MAX_POLL_ATTEMPTS` pending answers.
            RequestTimeoutError: If a poll request times out.
            NetworkError: If a poll request cannot be sent.
        """
        endpoints = endpoints_for(kind)
        interval = max(authorization.interval, 1)
        data = {
            "grant_type": DEVICE_GRANT_TYPE,
            "device_code": authorization.device_code,
            "client_id": client_id,
        }

        for attempt in range(1, self._max_attempts + 1):
            await self._sleep(interval)

            try:
                response = await self._post_form(endpoints.token_url, data)
            except httpx.TimeoutException as exc:
                raise RequestTimeoutError(f"Token polling timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                raise NetworkError(f"Token polling failed: {exc}") from exc

            try:
                payload = response.json()
            except ValueError:
                payload = None
            if not isinstance(payload, dict):
                payload = None

            result = classify_poll_response(response.status_code, payload)
            logger.debug("Poll %d/%d: %s", attempt, self._max_attempts, result.status.value)

            if result.token is not None:
                return result.token
            if result.status is PollStatus.PENDING:
                continue
            if result.status is PollStatus.SLOW_DOWN:
                interval = max(interval + SLOW_DOWN_INCREMENT, DEFAULT_POLL_INTERVAL)
                continue
            if result.status is PollStatus.EXPIRED:
                raise AuthorizationFlowError(
                    FlowFailure.EXPIRED, "Device code expired. Please try again."
                )
            if result.status is PollStatus.DENIED:
                raise AuthorizationFlowError(
                    FlowFailure.DENIED, "Authorization denied by user"
                )
            detail = result.description or result.error_code or "unknown error"
            raise AuthorizationFlowError(
                FlowFailure.UNKNOWN,
                f"Device authorization failed: {detail}",
                error_code=result.error_code,
            )

        raise AuthorizationFlowError(
            FlowFailure.TIMEOUT, "Authentication timed out. Please try again."
        )

    async def device_code_flow(
        self,
        kind: ProviderKind,
        client_id: str,
        on_prompt: Optional[PromptCallback] = None,
    ) -> OAuthToken:
        """Run the full flow and return the token without persisting it."""
        authorization = await self.request_device_code(kind, client_id)
        (on_prompt or _log_prompt)(authorization)
        return await self.poll_for_token(kind, client_id, authorization)

    async def login(
        self,
        credentials: CredentialManager,
        provider_name: str,
        kind: ProviderKind,
        client_id: str,
        on_prompt: Optional[PromptCallback] = None,
    ) -> OAuthToken:
        """Run the flow for *provider_name* and store the resulting token.

        Nothing is written unless the flow succeeds.
        """
        token = await self.device_code_flow(kind, client_id, on_prompt=on_prompt)
        credentials.set_oauth_token(provider_name, token)
        logger.debug("Logged in '%s' via device flow", provider_name)
        return token
