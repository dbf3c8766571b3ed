"""Summary: UTC time helpers shared by services and storage.

Importance: Keeps stored timestamps in one sortable format so SQL comparisons stay valid.
Alternatives: Store epoch milliseconds as integers.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Summary: Serialize a datetime as fixed-width UTC ISO text.

    Importance: Fixed width makes lexical order match chronological order in SQLite.
    Alternatives: Rely on datetime.isoformat defaults, which drop zero microseconds.
    """

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Summary: Parse stored ISO text, treating naive values as UTC.

    Importance: Accepts rows written by older code paths without offsets.
    Alternatives: Reject naive timestamps outright.
    """

    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
