"""Summary: Exception hierarchy for the GSC report builder.

Importance: Lets the API layer map failures to user-visible responses in one place.
Alternatives: Raise ValueError and RuntimeError with message matching at the edges.
"""

from __future__ import annotations


class ReportBuilderError(Exception):
    """Base class for application errors."""


class TokenError(ReportBuilderError):
    """Summary: Base class for access-token lifecycle failures.

    Importance: Callers that only need "reconnect your account" handling catch this.
    Alternatives: Return None from the token manager on failure.
    """


class CredentialNotFound(TokenError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"No stored credential for user {user_id}")
        self.user_id = user_id


class TokenRefreshFailed(TokenError):
    pass


class TokenPersistFailed(TokenError):
    """Summary: A refresh succeeded but the new credential could not be stored.

    Importance: The fresh token stays usable for the current call through ``access_token``.
    Alternatives: Swallow the storage error and return the token silently.
    """

    def __init__(self, message: str, access_token: str) -> None:
        super().__init__(message)
        self.access_token = access_token


class AnalyticsError(ReportBuilderError):
    """Summary: Search Console request failure with the upstream HTTP status.

    Importance: Keeps 401/403/429 distinguishable for the API response.
    Alternatives: Collapse all upstream failures into a 500.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class SheetsExportError(ReportBuilderError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ReportNotFound(ReportBuilderError):
    pass


class ReportAccessDenied(ReportBuilderError):
    pass


class OAuthError(ReportBuilderError):
    """Summary: The OAuth token endpoint rejected a request or was unreachable.

    Importance: The token manager turns this into TokenRefreshFailed.
    Alternatives: Let urllib errors escape to callers.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
