"""OAuth bearer token value object.

:class:`OAuthToken` is produced by :class:`~mdscribe.auth.oauth.OAuthManager`
on a successful device authorization (or by a refresh routine) and persisted
as JSON by :class:`~mdscribe.auth.credentials.CredentialManager`.

A token without ``expires_at`` never expires. Tokens are refreshed once they
are within :data:`REFRESH_THRESHOLD_SECONDS` of expiry.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

REFRESH_THRESHOLD_SECONDS = 300
"""Seconds before ``expires_at`` at which a token is due for refresh."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthToken(BaseModel):
    """A bearer credential with optional expiry and refresh token.

    Attributes:
        access_token: The bearer value sent to the provider.
        refresh_token: Optional token used to obtain a new access token.
        expires_at: Optional UTC expiry time. ``None`` means the token
            never expires.
        token_type: Token scheme, ``"Bearer"`` unless the server says otherwise.

    Example::

        token = OAuthToken.from_expires_in("tok", expires_in=3600)
        assert not token.is_expired()
    """

    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: str = "Bearer"

    @field_validator("expires_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_expires_in(
        cls,
        access_token: str,
        expires_in: Optional[int] = None,
        refresh_token: Optional[str] = None,
        token_type: Optional[str] = None,
    ) -> OAuthToken:
        """Build a token whose expiry is *expires_in* seconds from now."""
        expires_at = None
        if expires_in is not None:
            expires_at = _utcnow() + timedelta(seconds=expires_in)
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            token_type=token_type or "Bearer",
        )

    def is_expired(self) -> bool:
        """Return ``True`` once ``expires_at`` has passed."""
        if self.expires_at is None:
            return False
        return _utcnow() >= self.expires_at

    def needs_refresh(self, threshold: int = REFRESH_THRESHOLD_SECONDS) -> bool:
        """Return ``True`` when the token expires within *threshold* seconds."""
        if self.expires_at is None:
            return False
        return _utcnow() >= self.expires_at - timedelta(seconds=threshold)

    def expires_in(self) -> Optional[int]:
        """Whole seconds until expiry (negative once expired), or ``None``."""
        if self.expires_at is None:
            return None
        return int((self.expires_at - _utcnow()).total_seconds())
