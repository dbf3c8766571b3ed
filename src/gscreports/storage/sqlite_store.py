"""Summary: SQLite storage implementation for the GSC report builder.

Importance: Provides credentials, report caches, and the shared intent cache in one store.
Alternatives: Use Postgres through a hosted API or an ORM.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator

from gscreports.models import User


# SQLite caps bound parameters per statement; IN lookups are chunked below it.
_IN_CHUNK = 500


@dataclass(frozen=True)
class StoredUser:
    """Summary: User record with database identifier.

    Importance: Supplies profile data for the dashboard header.
    Alternatives: Decode profile data from the session token.
    """

    id: int
    email: str
    name: str
    avatar_url: str


@dataclass(frozen=True)
class StoredCredential:
    """Summary: Credential row as stored, with tokens still encoded.

    Importance: Keeps decoding in the service layer, next to the codec.
    Alternatives: Decode tokens inside the store.
    """

    user_id: int
    access_token: str
    refresh_token: str | None
    expires_at: str
    scope: str | None
    version: int


@dataclass(frozen=True)
class StoredCachedReport:
    user_id: int
    cache_key: str
    data: str
    created_at: str


@dataclass(frozen=True)
class StoredSavedReport:
    """Summary: Saved report row with JSON columns still serialized."""

    report_id: str
    user_id: int
    site_url: str
    start_date: str
    end_date: str
    metrics: str
    data: str
    created_at: str


@dataclass(frozen=True)
class StoredIntent:
    """Summary: Intent cache row keyed by query text.

    Importance: One row per distinct query across every user and report.
    Alternatives: Scope intent rows per report.
    """

    query: str
    intent: str
    category: str | None
    funnel_stage: str | None
    main_keywords: str | None
    analyzed_at: str


class SqliteStore:
    """Summary: SQLite-backed storage for users, credentials, reports, and intents.

    Importance: Enables local-first persistence with no extra services to run.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first request.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT,
                    avatar_url TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS credentials (
                    user_id INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
                    access_token TEXT NOT NULL,
                    refresh_token TEXT,
                    expires_at TEXT NOT NULL,
                    scope TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS user_settings (
                    user_id INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
                    selected_site TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS reports_data (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    cache_key TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE(user_id, cache_key)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS saved_reports (
                    report_id TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    site_url TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    metrics TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS report_intents (
                    query TEXT PRIMARY KEY,
                    intent TEXT NOT NULL,
                    category TEXT,
                    funnel_stage TEXT,
                    main_keywords TEXT,
                    analyzed_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS report_intent_links (
                    report_id TEXT NOT NULL,
                    query TEXT NOT NULL,
                    PRIMARY KEY (report_id, query)
                )
                """
            )
            connection.commit()
        self._ensure_column("credentials", "version", "INTEGER NOT NULL DEFAULT 0")

    def ensure_user(self, user: User) -> int:
        """Summary: Insert or refresh a user by email and return their ID.

        Importance: Keeps profile fields current on every sign-in.
        Alternatives: Create users only once and never update them.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO users (email, name, avatar_url) VALUES (?, ?, ?)
                ON CONFLICT(email) DO UPDATE SET
                    name = excluded.name,
                    avatar_url = excluded.avatar_url
                """,
                (user.email, user.name, user.avatar_url),
            )
            cursor.execute("SELECT id FROM users WHERE email = ?", (user.email,))
            row = cursor.fetchone()
            connection.commit()
        return int(row[0])

    def get_user(self, user_id: int) -> StoredUser | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT id, email, name, avatar_url FROM users WHERE id = ?",
                (user_id,),
            )
            row = cursor.fetchone()
        return StoredUser(row[0], row[1], row[2] or "", row[3] or "") if row else None

    def get_credential(self, user_id: int) -> StoredCredential | None:
        """Summary: Retrieve the stored credential for a user.

        Importance: First step of every access-token lookup.
        Alternatives: Cache credentials in process memory.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT user_id, access_token, refresh_token, expires_at, scope, version
                FROM credentials
                WHERE user_id = ?
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        return StoredCredential(*row) if row else None

    def upsert_credential(
        self,
        user_id: int,
        access_token: str,
        expires_at: str,
        refresh_token: str | None = None,
        scope: str | None = None,
    ) -> None:
        """Summary: Insert or update a credential with partial-field semantics.

        Importance: An omitted or empty refresh token or scope never erases the stored value.
        Alternatives: Require callers to read-modify-write the whole row.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO credentials (user_id, access_token, refresh_token, expires_at, scope, version)
                VALUES (?, ?, ?, ?, ?, 1)
                ON CONFLICT(user_id) DO UPDATE SET
                    access_token = excluded.access_token,
                    expires_at = excluded.expires_at,
                    refresh_token = COALESCE(NULLIF(excluded.refresh_token, ''), credentials.refresh_token),
                    scope = COALESCE(excluded.scope, credentials.scope),
                    version = credentials.version + 1
                """,
                (user_id, access_token, refresh_token or None, expires_at, scope),
            )
            connection.commit()

    def update_credential_if_version(
        self,
        user_id: int,
        expected_version: int,
        access_token: str,
        expires_at: str,
        refresh_token: str | None = None,
    ) -> bool:
        """Summary: Compare-and-swap update of a credential on its version column.

        Importance: Detects that another request refreshed the same credential first.
        Alternatives: Serialize refreshes with a database lock.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                UPDATE credentials SET
                    access_token = ?,
                    expires_at = ?,
                    refresh_token = COALESCE(NULLIF(?, ''), refresh_token),
                    version = version + 1
                WHERE user_id = ? AND version = ?
                """,
                (access_token, expires_at, refresh_token or None, user_id, expected_version),
            )
            updated = cursor.rowcount == 1
            connection.commit()
        return updated

    def get_selected_site(self, user_id: int) -> str | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT selected_site FROM user_settings WHERE user_id = ?", (user_id,))
            row = cursor.fetchone()
        return row[0] if row else None

    def set_selected_site(self, user_id: int, site_url: str) -> None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO user_settings (user_id, selected_site) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET selected_site = excluded.selected_site
                """,
                (user_id, site_url),
            )
            connection.commit()

    def get_cached_report(self, user_id: int, cache_key: str) -> StoredCachedReport | None:
        """Summary: Retrieve cached analytics rows for a user and cache key.

        Importance: Lets report generation skip Search Console while the cache is fresh.
        Alternatives: Cache responses in an HTTP proxy.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT user_id, cache_key, data, created_at
                FROM reports_data
                WHERE user_id = ? AND cache_key = ?
                """,
                (user_id, cache_key),
            )
            row = cursor.fetchone()
        return StoredCachedReport(*row) if row else None

    def upsert_cached_report(
        self,
        user_id: int,
        cache_key: str,
        data: str,
        created_at: str,
        conditional: bool = False,
    ) -> None:
        """Summary: Insert or overwrite cached rows for a user and cache key.

        Importance: Stale entries are replaced wholesale, never merged.
        Alternatives: Append a new row per fetch and read the latest.
        """

        guard = "WHERE reports_data.created_at <= excluded.created_at" if conditional else ""
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                INSERT INTO reports_data (user_id, cache_key, data, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, cache_key) DO UPDATE SET
                    data = excluded.data,
                    created_at = excluded.created_at
                {guard}
                """,
                (user_id, cache_key, data, created_at),
            )
            connection.commit()

    def save_report(self, report: StoredSavedReport) -> None:
        """Summary: Insert or replace a saved report snapshot.

        Importance: Re-saving a report under the same ID refreshes its contents.
        Alternatives: Keep every revision as a separate row.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO saved_reports (
                    report_id, user_id, site_url, start_date, end_date, metrics, data, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(report_id) DO UPDATE SET
                    site_url = excluded.site_url,
                    start_date = excluded.start_date,
                    end_date = excluded.end_date,
                    metrics = excluded.metrics,
                    data = excluded.data,
                    created_at = excluded.created_at
                WHERE saved_reports.user_id = excluded.user_id
                """,
                (
                    report.report_id,
                    report.user_id,
                    report.site_url,
                    report.start_date,
                    report.end_date,
                    report.metrics,
                    report.data,
                    report.created_at,
                ),
            )
            connection.commit()

    def get_saved_report(self, report_id: str) -> StoredSavedReport | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT report_id, user_id, site_url, start_date, end_date, metrics, data, created_at
                FROM saved_reports
                WHERE report_id = ?
                """,
                (report_id,),
            )
            row = cursor.fetchone()
        return StoredSavedReport(*row) if row else None

    def list_saved_reports(self, user_id: int, limit: int) -> list[StoredSavedReport]:
        """Summary: List a user's most recent saved reports.

        Importance: Powers the reports overview page.
        Alternatives: Paginate with a cursor instead of a fixed limit.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT report_id, user_id, site_url, start_date, end_date, metrics, data, created_at
                FROM saved_reports
                WHERE user_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
            rows = cursor.fetchall()
        return [StoredSavedReport(*row) for row in rows]

    def get_intents(self, queries: Iterable[str]) -> list[StoredIntent]:
        """Summary: Retrieve cached intent rows for the given query strings.

        Importance: Drives the cache-first classification policy.
        Alternatives: Look up queries one at a time.
        """

        unique = list(dict.fromkeys(queries))
        rows: list[tuple[Any, ...]] = []
        with self._connection() as connection:
            cursor = connection.cursor()
            for start in range(0, len(unique), _IN_CHUNK):
                chunk = unique[start:start + _IN_CHUNK]
                placeholders = ", ".join("?" for _ in chunk)
                cursor.execute(
                    f"""
                    SELECT query, intent, category, funnel_stage, main_keywords, analyzed_at
                    FROM report_intents
                    WHERE query IN ({placeholders})
                    """,
                    chunk,
                )
                rows.extend(cursor.fetchall())
        return [StoredIntent(*row) for row in rows]

    def upsert_intents(self, intents: list[StoredIntent], conditional: bool = False) -> None:
        """Summary: Insert or overwrite intent rows keyed by query text.

        Importance: Keeps exactly one analysis per distinct query system-wide.
        Alternatives: Version analyses and read the latest.
        """

        if not intents:
            return
        guard = "WHERE report_intents.analyzed_at <= excluded.analyzed_at" if conditional else ""
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.executemany(
                f"""
                INSERT INTO report_intents (
                    query, intent, category, funnel_stage, main_keywords, analyzed_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(query) DO UPDATE SET
                    intent = excluded.intent,
                    category = excluded.category,
                    funnel_stage = excluded.funnel_stage,
                    main_keywords = excluded.main_keywords,
                    analyzed_at = excluded.analyzed_at
                {guard}
                """,
                [
                    (
                        item.query,
                        item.intent,
                        item.category,
                        item.funnel_stage,
                        item.main_keywords,
                        item.analyzed_at,
                    )
                    for item in intents
                ],
            )
            connection.commit()

    def link_report_intents(self, report_id: str, queries: Iterable[str]) -> None:
        """Summary: Attach cached intent rows to a saved report.

        Importance: Lets one global analysis appear in many reports.
        Alternatives: Copy intent rows per report.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.executemany(
                "INSERT OR IGNORE INTO report_intent_links (report_id, query) VALUES (?, ?)",
                [(report_id, query) for query in dict.fromkeys(queries)],
            )
            connection.commit()

    def list_report_intents(self, report_id: str) -> list[StoredIntent]:
        """Summary: Retrieve every intent row linked to a report.

        Importance: Reopened reports show their analysis without re-running it.
        Alternatives: Re-classify the report's queries on every view.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT ri.query, ri.intent, ri.category, ri.funnel_stage, ri.main_keywords, ri.analyzed_at
                FROM report_intents ri
                JOIN report_intent_links rl ON rl.query = ri.query
                WHERE rl.report_id = ?
                ORDER BY ri.query
                """,
                (report_id,),
            )
            rows = cursor.fetchall()
        return [StoredIntent(*row) for row in rows]

    def _ensure_column(self, table: str, column: str, definition: str) -> None:
        """Summary: Ensure a column exists in a table.

        Importance: Upgrades databases created before the column was introduced.
        Alternatives: Use a migration tool to manage schema changes.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(f"PRAGMA table_info({table})")
            columns = {row[1] for row in cursor.fetchall()}
            if column in columns:
                return
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
            connection.commit()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path, timeout=30)
        try:
            yield connection
        finally:
            connection.close()


def encode_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))
