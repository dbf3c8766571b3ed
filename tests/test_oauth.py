"""Summary: Tests for Google OAuth helpers.

Importance: Ensures OAuth URLs and payloads use config values correctly.
Alternatives: Validate OAuth flows manually.
"""

from __future__ import annotations

import io
import urllib.parse

import pytest

from gscreports.errors import OAuthError
from gscreports.oauth import (
    OAuthTokenResult,
    _refresh_payload,
    _token_payload,
    build_google_auth_url,
    fetch_user_profile,
    refresh_oauth_token,
)


def test_google_auth_url_requests_offline_access(make_config) -> None:
    """Summary: The consent URL asks for offline access and every required scope.

    Importance: Without offline access Google issues no refresh token.
    Alternatives: Request scopes incrementally.
    """

    url = build_google_auth_url(make_config(), "state123")
    params = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)
    assert params["client_id"] == ["google-client"]
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert params["state"] == ["state123"]
    scopes = params["scope"][0].split()
    assert "https://www.googleapis.com/auth/webmasters.readonly" in scopes
    assert "https://www.googleapis.com/auth/spreadsheets" in scopes


def test_google_token_payload_includes_redirect_uri(make_config) -> None:
    payload = _token_payload(make_config(), "code123")
    assert payload["redirect_uri"] == "http://localhost:8000/oauth2callback"
    assert payload["grant_type"] == "authorization_code"


def test_google_refresh_payload_includes_grant_type(make_config) -> None:
    payload = _refresh_payload(make_config(), "refresh")
    assert payload["grant_type"] == "refresh_token"
    assert payload["refresh_token"] == "refresh"


def test_payloads_require_client_credentials(make_config) -> None:
    with pytest.raises(OAuthError):
        _refresh_payload(make_config(google_client_secret=""), "refresh")


def test_token_result_parses_numeric_strings() -> None:
    result = OAuthTokenResult.from_response({"access_token": "a", "expires_in": "1800"})
    assert result.expires_in == 1800
    assert result.refresh_token is None
    with pytest.raises(OAuthError):
        OAuthTokenResult.from_response({"error": "invalid_grant"})


def test_refresh_oauth_token_posts_form(make_config, monkeypatch: pytest.MonkeyPatch) -> None:
    sent: dict[str, object] = {}

    def _fake_post(url: str, payload: dict[str, str], timeout: float) -> dict[str, object]:
        sent.update(url=url, payload=payload, timeout=timeout)
        return {"access_token": "new", "expires_in": 3599}

    monkeypatch.setattr("gscreports.oauth._post_form", _fake_post)
    result = refresh_oauth_token(make_config(), "refresh")
    assert result.access_token == "new"
    assert sent["url"] == "https://oauth2.googleapis.com/token"
    assert sent["timeout"] == 5.0


class _FakeResponse(io.BytesIO):
    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()


def test_fetch_user_profile_rejects_non_json(make_config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "urllib.request.urlopen",
        lambda request, timeout: _FakeResponse(b"<html>Service Unavailable</html>"),
    )
    with pytest.raises(OAuthError, match="invalid JSON"):
        fetch_user_profile(make_config(), "access")


def test_fetch_user_profile_maps_timeout(make_config, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: A userinfo read timeout becomes an OAuthError.

    Importance: The OAuth callback answers 400 instead of crashing with a 500.
    Alternatives: Retry the userinfo call.
    """

    def _silent(*_args: object, **_kwargs: object) -> None:
        raise TimeoutError("timed out")

    monkeypatch.setattr("urllib.request.urlopen", _silent)
    with pytest.raises(OAuthError, match="timed out"):
        fetch_user_profile(make_config(), "access")
