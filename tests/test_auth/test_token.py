"""Tests for the OAuth token value object."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from mdscribe.auth.token import REFRESH_THRESHOLD_SECONDS, OAuthToken


def _token_expiring_in(seconds: int, **kwargs: object) -> OAuthToken:
    return OAuthToken(
        access_token="tok",
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=seconds),
        **kwargs,  # type: ignore[arg-type]
    )


class TestOAuthToken:
    def test_defaults(self) -> None:
        token = OAuthToken(access_token="tok")
        assert token.token_type == "Bearer"
        assert token.refresh_token is None
        assert token.expires_at is None

    def test_empty_access_token_rejected(self) -> None:
        with pytest.raises(ValidationError):
            OAuthToken(access_token="")

    def test_naive_expiry_is_treated_as_utc(self) -> None:
        token = OAuthToken(access_token="tok", expires_at=datetime(2030, 1, 1))
        assert token.expires_at is not None
        assert token.expires_at.tzinfo == timezone.utc

    def test_json_round_trip_keeps_all_fields(self) -> None:
        token = _token_expiring_in(3600, refresh_token="r", token_type="bearer")
        restored = OAuthToken.model_validate_json(token.model_dump_json())
        assert restored == token


class TestExpiry:
    def test_no_expiry_never_expires(self) -> None:
        token = OAuthToken(access_token="tok")
        assert not token.is_expired()
        assert not token.needs_refresh()
        assert token.expires_in() is None

    def test_future_expiry_not_expired(self) -> None:
        token = _token_expiring_in(3600)
        assert not token.is_expired()
        assert not token.needs_refresh()

    def test_past_expiry_is_expired(self) -> None:
        token = _token_expiring_in(-10)
        assert token.is_expired()
        assert token.needs_refresh()
        assert token.expires_in() < 0

    def test_inside_threshold_needs_refresh_but_not_expired(self) -> None:
        token = _token_expiring_in(REFRESH_THRESHOLD_SECONDS - 60)
        assert token.needs_refresh()
        assert not token.is_expired()

    def test_refresh_window_boundaries(self) -> None:
        assert _token_expiring_in(200).needs_refresh()
        assert not _token_expiring_in(4000).needs_refresh()

    def test_custom_threshold(self) -> None:
        token = _token_expiring_in(120)
        assert not token.needs_refresh(threshold=60)
        assert token.needs_refresh(threshold=600)


class TestFromExpiresIn:
    def test_sets_expiry_relative_to_now(self) -> None:
        before = datetime.now(timezone.utc)
        token = OAuthToken.from_expires_in("tok", expires_in=3600, refresh_token="r")
        assert token.expires_at is not None
        assert before + timedelta(seconds=3599) <= token.expires_at
        assert token.refresh_token == "r"

    def test_without_expires_in(self) -> None:
        token = OAuthToken.from_expires_in("tok")
        assert token.expires_at is None

    def test_missing_token_type_defaults_to_bearer(self) -> None:
        assert OAuthToken.from_expires_in("tok", token_type=None).token_type == "Bearer"
