"""Summary: Domain model dataclasses for the GSC report builder.

Importance: Defines the entities shared across services, storage, and the API.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


INTENT_VALUES = (
    "Informational",
    "Navigational",
    "Transactional",
    "Commercial Investigation",
    "Mixed",
    "Unknown",
)
FUNNEL_STAGES = ("Awareness", "Consideration", "Decision", "Post-Purchase", "Unknown")
METRICS = ("clicks", "impressions", "ctr", "position")

UNKNOWN = "Unknown"
RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
ANALYSIS_ERROR = "AnalysisError"
INCOMPLETE_RESPONSE = "IncompleteResponse"


@dataclass(frozen=True)
class User:
    """Summary: Represents a Google account that signed in to the dashboard.

    Importance: Anchors credentials, settings, and saved reports to one owner.
    Alternatives: Key everything by email address without a user table.
    """

    email: str
    name: str = ""
    avatar_url: str = ""


@dataclass(frozen=True)
class Credential:
    """Summary: OAuth credentials for a single user.

    Importance: Carries everything the token manager needs to decide on a refresh.
    Alternatives: Store the raw provider token payload as JSON.
    """

    user_id: int
    access_token: str
    refresh_token: str | None
    expires_at: datetime
    scope: str | None = None
    version: int = 0


@dataclass(frozen=True)
class AnalyticsRequest:
    """Summary: Parameters of a Search Console analytics query.

    Importance: Provides the deterministic fingerprint used as the report cache key.
    Alternatives: Hash the serialized request body.
    """

    site_url: str
    start_date: str
    end_date: str
    dimensions: tuple[str, ...] = ("query",)
    start_row: int = 0

    def fingerprint(self) -> str:
        """Summary: Build the cache key for this request.

        Importance: Identical parameters in the same order must map to the same cache row.
        Alternatives: Sort dimensions to make the key order-insensitive.
        """

        return f"{self.site_url}|{self.start_date}|{self.end_date}|{','.join(self.dimensions)}"


@dataclass(frozen=True)
class CachedReport:
    """Summary: Analytics rows previously fetched for a user and fingerprint."""

    user_id: int
    cache_key: str
    rows: list[dict[str, Any]]
    created_at: datetime


@dataclass(frozen=True)
class IntentRecord:
    """Summary: Structured search-intent analysis for a single query string.

    Importance: Shared across every report that contains the same query text.
    Alternatives: Store raw model output and parse it on read.
    """

    query: str
    intent: str = UNKNOWN
    category: str = UNKNOWN
    funnel_stage: str = UNKNOWN
    main_keywords: tuple[str, ...] = field(default_factory=tuple)
    analyzed_at: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "query": self.query,
            "intent": self.intent,
            "category": self.category,
            "funnel_stage": self.funnel_stage,
            "main_keywords": list(self.main_keywords),
        }
        if self.error:
            payload["error"] = self.error
        return payload

    def stamped(self, analyzed_at: datetime) -> "IntentRecord":
        return replace(self, analyzed_at=analyzed_at)


def default_intent(query: str, error: str | None = None) -> IntentRecord:
    """Summary: Build the Unknown-valued record used whenever analysis cannot answer.

    Importance: Guarantees one result per query regardless of endpoint behavior.
    Alternatives: Drop unanswered queries from the result set.
    """

    return IntentRecord(query=query, error=error)


@dataclass(frozen=True)
class SavedReport:
    """Summary: A generated report snapshot owned by a user.

    Importance: Lets users reopen reports and scopes intent analysis to an owner.
    Alternatives: Regenerate reports from Search Console every time.
    """

    report_id: str
    user_id: int
    site_url: str
    start_date: str
    end_date: str
    metrics: tuple[str, ...]
    data: dict[str, Any]
    created_at: datetime
