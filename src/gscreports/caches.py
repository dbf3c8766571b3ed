"""Summary: Store-backed caches for analytics result sets and intent records.

Importance: Keeps repeated report views off Search Console and repeated queries off Gemini.
Alternatives: Use an external cache such as Redis with TTL keys.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

from gscreports.clock import parse_iso, to_iso, utc_now
from gscreports.locks import KeyedLocks, NullLocks
from gscreports.models import AnalyticsRequest, CachedReport, IntentRecord
from gscreports.storage.sqlite_store import SqliteStore, StoredIntent, encode_json


logger = logging.getLogger(__name__)

REPORT_FRESHNESS = timedelta(hours=24)


def intent_from_row(row: StoredIntent) -> IntentRecord:
    keywords = json.loads(row.main_keywords) if row.main_keywords else []
    return IntentRecord(
        query=row.query,
        intent=row.intent,
        category=row.category or "Unknown",
        funnel_stage=row.funnel_stage or "Unknown",
        main_keywords=tuple(keywords),
        analyzed_at=parse_iso(row.analyzed_at),
    )


def intent_to_row(record: IntentRecord, analyzed_at: datetime) -> StoredIntent:
    return StoredIntent(
        query=record.query,
        intent=record.intent,
        category=record.category,
        funnel_stage=record.funnel_stage,
        main_keywords=encode_json(list(record.main_keywords)),
        analyzed_at=to_iso(record.analyzed_at or analyzed_at),
    )


@dataclass(frozen=True)
class SqliteIntentCache:
    """Summary: Intent cache keyed by query text alone, shared by every user and report.

    Importance: Error markers are transient and never written to the store.
    Alternatives: Persist the error marker so the UI can show stale failures.
    """

    store: SqliteStore
    conditional: bool = False
    clock: Callable[[], datetime] = utc_now

    def lookup(self, queries: Sequence[str]) -> dict[str, IntentRecord]:
        return {row.query: intent_from_row(row) for row in self.store.get_intents(queries)}

    def save(self, records: Sequence[IntentRecord]) -> None:
        now = self.clock()
        self.store.upsert_intents(
            [intent_to_row(record, now) for record in records],
            conditional=self.conditional,
        )
        logger.info("Persisted %s intent records.", len(records))


class ReportCache:
    """Summary: Per-user cache of analytics rows keyed by request fingerprint.

    Importance: Entries younger than 24 hours are served as-is; older entries are
    re-fetched and overwritten wholesale.
    Alternatives: Merge new rows into stale entries incrementally.
    """

    def __init__(
        self,
        store: SqliteStore,
        locks: KeyedLocks | NullLocks,
        conditional: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._locks = locks
        self._conditional = conditional
        self._clock = clock

    def get_fresh(self, user_id: int, cache_key: str) -> CachedReport | None:
        stored = self._store.get_cached_report(user_id, cache_key)
        if stored is None:
            return None
        created_at = parse_iso(stored.created_at)
        if self._clock() - created_at >= REPORT_FRESHNESS:
            logger.info("Cached report %s for user %s is stale.", cache_key, user_id)
            return None
        return CachedReport(
            user_id=user_id,
            cache_key=cache_key,
            rows=json.loads(stored.data),
            created_at=created_at,
        )

    def put(self, user_id: int, cache_key: str, rows: list[dict[str, Any]]) -> None:
        self._store.upsert_cached_report(
            user_id,
            cache_key,
            encode_json(rows),
            to_iso(self._clock()),
            conditional=self._conditional,
        )

    def get_or_fetch(
        self,
        user_id: int,
        request: AnalyticsRequest,
        fetch: Callable[[], list[dict[str, Any]]],
    ) -> tuple[list[dict[str, Any]], bool]:
        """Summary: Return cached rows when fresh, otherwise fetch and store them.

        Importance: The boolean tells callers whether the rows came from cache.
        Alternatives: Always fetch and write through.
        """

        cache_key = request.fingerprint()
        cached = self.get_fresh(user_id, cache_key)
        if cached is not None:
            logger.info("Report cache hit for user %s.", user_id)
            return cached.rows, True
        with self._locks.hold(("report", user_id, cache_key)):
            cached = self.get_fresh(user_id, cache_key)
            if cached is not None:
                return cached.rows, True
            logger.info("Report cache miss for user %s; fetching from Search Console.", user_id)
            rows = fetch()
            self.put(user_id, cache_key, rows)
        return rows, False
