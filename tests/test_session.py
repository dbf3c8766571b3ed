"""Summary: Tests for signed session tokens.

Importance: Ensures only untampered, unexpired cookies identify a user.
Alternatives: Trust a plain user ID cookie.
"""

from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from gscreports.clock import utc_now
from gscreports.session import SessionCodec


def test_issue_and_verify_roundtrip() -> None:
    codec = SessionCodec("secret", 3600)
    token = codec.issue(42, "owner@example.com")
    assert codec.verify(token) == 42


def test_verify_rejects_tampering_and_expiry() -> None:
    """Summary: Tokens signed with another secret or already expired read as signed out.

    Importance: A forged or stale cookie must never grant access.
    Alternatives: Raise and let the API return 500.
    """

    codec = SessionCodec("secret", 3600)
    forged = SessionCodec("other", 3600).issue(42, "owner@example.com")
    expired = codec.issue(42, "owner@example.com", now=utc_now() - timedelta(hours=2))
    assert codec.verify(forged) is None
    assert codec.verify(expired) is None
    assert codec.verify(None) is None
    assert codec.verify("garbage") is None


def test_token_carries_expected_claims() -> None:
    token = SessionCodec("secret", 60).issue(7, "owner@example.com")
    claims = jwt.decode(token, "secret", algorithms=["HS256"])
    assert claims["sub"] == "7"
    assert claims["exp"] - claims["iat"] == 60


def test_secret_is_required() -> None:
    with pytest.raises(ValueError):
        SessionCodec("", 60)
