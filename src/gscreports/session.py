"""Summary: Signed session tokens stored in the dashboard cookie.

Importance: Identifies the signed-in user on every request without server-side session rows.
Alternatives: Store opaque session IDs in a sessions table.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import jwt

from gscreports.clock import utc_now


_ALGORITHM = "HS256"


class SessionCodec:
    """Summary: Issues and verifies HS256 session tokens carrying the user ID.

    Importance: An expired or tampered cookie reads as signed out.
    Alternatives: Encrypt the full user profile into the cookie.
    """

    def __init__(self, secret: str, max_age_seconds: int) -> None:
        if not secret:
            raise ValueError("A session secret is required to sign session tokens")
        self._secret = secret
        self._max_age = timedelta(seconds=max_age_seconds)

    def issue(self, user_id: int, email: str, now: datetime | None = None) -> str:
        issued_at = now or utc_now()
        claims = {
            "sub": str(user_id),
            "email": email,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._max_age).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str | None) -> int | None:
        """Summary: Return the user ID in a valid token, otherwise None.

        Importance: Expiry is checked by PyJWT against the current time.
        Alternatives: Raise and let the API layer translate the error.
        """

        if not token:
            return None
        try:
            claims = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except jwt.PyJWTError:
            return None
        try:
            return int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            return None
