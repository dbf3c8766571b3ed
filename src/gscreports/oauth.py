"""Summary: Google OAuth helpers for Search Console and Sheets access.

Importance: Builds authorization URLs and performs code exchange and token refresh without extra dependencies.
Alternatives: Use google-auth-oauthlib flows.
"""

from __future__ import annotations

import json
import secrets
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from gscreports.config import AppConfig
from gscreports.errors import OAuthError


GOOGLE_SCOPES = " ".join(
    [
        "https://www.googleapis.com/auth/webmasters.readonly",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
        "https://www.googleapis.com/auth/spreadsheets",
    ]
)


@dataclass(frozen=True)
class OAuthTokenResult:
    """Summary: Normalized OAuth token response data.

    Importance: Leaves expiry arithmetic to the token manager, which owns the clock.
    Alternatives: Store the raw provider response without normalization.
    """

    access_token: str
    refresh_token: str | None
    expires_in: int | None
    scope: str | None
    token_type: str | None
    raw: dict[str, Any]

    @staticmethod
    def from_response(payload: dict[str, Any]) -> "OAuthTokenResult":
        """Summary: Build an OAuthTokenResult from a provider payload.

        Importance: Tolerates numeric strings and missing optional fields.
        Alternatives: Use provider-specific token response classes.
        """

        access_token = payload.get("access_token")
        if not access_token:
            raise OAuthError("Token response did not include an access token")
        expires_in = payload.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            expires_in = None
        return OAuthTokenResult(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or None,
            expires_in=expires_in,
            scope=payload.get("scope"),
            token_type=payload.get("token_type"),
            raw=payload,
        )


def create_state_token() -> str:
    """Summary: Generate a CSRF state token.

    Importance: Protects OAuth flows from CSRF attacks.
    Alternatives: Use server-side session storage with pre-generated tokens.
    """

    return secrets.token_urlsafe(24)


def build_google_auth_url(config: AppConfig, state: str) -> str:
    """Summary: Build a Google OAuth authorization URL.

    Importance: Requests offline access with forced consent so a refresh token is issued.
    Alternatives: Use a different OAuth helper library.
    """

    params = {
        "client_id": config.google_client_id,
        "redirect_uri": config.oauth_redirect_uri,
        "response_type": "code",
        "access_type": "offline",
        "prompt": "consent",
        "scope": GOOGLE_SCOPES,
        "state": state,
    }
    return config.google_auth_url + "?" + urllib.parse.urlencode(params)


def exchange_oauth_code(config: AppConfig, code: str) -> OAuthTokenResult:
    """Summary: Exchange an OAuth authorization code for tokens.

    Importance: Completes sign-in by retrieving access and refresh tokens.
    Alternatives: Use provider SDKs or external auth services.
    """

    payload = _token_payload(config, code)
    response = _post_form(config.google_token_url, payload, config.http_timeout_seconds)
    return OAuthTokenResult.from_response(response)


def refresh_oauth_token(config: AppConfig, refresh_token: str) -> OAuthTokenResult:
    """Summary: Trade a refresh token for a new access token.

    Importance: Keeps Search Console access alive without asking the user to sign in again.
    Alternatives: Force re-authorization whenever the access token expires.
    """

    payload = _refresh_payload(config, refresh_token)
    response = _post_form(config.google_token_url, payload, config.http_timeout_seconds)
    return OAuthTokenResult.from_response(response)


def fetch_user_profile(config: AppConfig, access_token: str) -> dict[str, Any]:
    """Summary: Fetch the signed-in user's Google profile.

    Importance: Supplies the email used as the stable user identity.
    Alternatives: Decode the ID token instead of calling userinfo.
    """

    request = urllib.request.Request(
        config.google_userinfo_url,
        headers={"Authorization": f"Bearer {access_token}"},
        method="GET",
    )
    try:
        with urllib.request.urlopen(request, timeout=config.http_timeout_seconds) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        raise OAuthError(f"Userinfo request failed: {exc.reason}", status=exc.code) from exc
    except urllib.error.URLError as exc:
        raise OAuthError(f"Userinfo endpoint unreachable: {exc.reason}") from exc
    except TimeoutError as exc:
        raise OAuthError(f"Userinfo endpoint timed out after {config.http_timeout_seconds}s") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise OAuthError("Userinfo endpoint returned invalid JSON") from exc


def _token_payload(config: AppConfig, code: str) -> dict[str, str]:
    """Summary: Build token request parameters for OAuth code exchange.

    Importance: Ensures the redirect URI matches the one used for authorization.
    Alternatives: Assemble payloads inline inside the exchange function.
    """

    _ensure_oauth_config(config)
    return {
        "client_id": config.google_client_id,
        "client_secret": config.google_client_secret,
        "code": code,
        "grant_type": "authorization_code",
        "redirect_uri": config.oauth_redirect_uri,
    }


def _refresh_payload(config: AppConfig, refresh_token: str) -> dict[str, str]:
    _ensure_oauth_config(config)
    return {
        "client_id": config.google_client_id,
        "client_secret": config.google_client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }


def _ensure_oauth_config(config: AppConfig) -> None:
    """Summary: Validate that OAuth client credentials exist.

    Importance: Prevents confusing token endpoint errors when credentials are missing.
    Alternatives: Allow requests to fail at the provider endpoint.
    """

    if not config.google_client_id or not config.google_client_secret:
        raise OAuthError("Missing Google OAuth client credentials")


def _post_form(url: str, payload: dict[str, str], timeout: float) -> dict[str, Any]:
    """Summary: Send a form-encoded POST request and parse JSON.

    Importance: Avoids new dependencies while supporting OAuth exchanges.
    Alternatives: Use requests or a provider SDK.
    """

    data = urllib.parse.urlencode(payload).encode("utf-8")
    request = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        raise OAuthError(f"Token request failed: {error_body or exc.reason}", status=exc.code) from exc
    except urllib.error.URLError as exc:
        raise OAuthError(f"Token endpoint unreachable: {exc.reason}") from exc
    except TimeoutError as exc:
        raise OAuthError(f"Token endpoint timed out after {timeout}s") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise OAuthError("Token endpoint returned invalid JSON") from exc
