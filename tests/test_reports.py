"""Summary: Tests for the report cache and report service.

Importance: Ensures cached reports respect the 24-hour window and saved reports stay private.
Alternatives: Verify caching by watching Search Console quota.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import pytest

from gscreports.caches import ReportCache
from gscreports.clock import to_iso
from gscreports.errors import ReportAccessDenied, ReportNotFound
from gscreports.locks import KeyedLocks
from gscreports.models import AnalyticsRequest, User
from gscreports.services import ReportService, TokenManager
from gscreports.token_codec import TokenCodec

from conftest import NOW


class FakeGateway:
    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self.rows = rows
        self.requests: list[tuple[str, AnalyticsRequest]] = []

    def search_analytics(self, access_token: str, request: AnalyticsRequest) -> list[dict[str, Any]]:
        self.requests.append((access_token, request))
        return self.rows

    def list_sites(self, access_token: str) -> list[dict[str, str]]:
        return [{"siteUrl": "sc-domain:example.com", "permissionLevel": "siteOwner"}]


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


ROWS = [
    {"keys": ["buy shoes"], "clicks": 10, "impressions": 100, "ctr": 0.1, "position": 3.25},
    {"keys": ["weather today"], "clicks": 1, "impressions": 50, "ctr": 0.02, "position": 8.0},
]
REQUEST = AnalyticsRequest("example.com", "2026-01-01", "2026-01-31", ("query",))


def _service(store, config, gateway: FakeGateway, clock: MutableClock) -> tuple[ReportService, int]:
    tokens = TokenManager(
        store=store,
        codec=TokenCodec(config.token_secret),
        config=config,
        locks=KeyedLocks(),
        clock=clock,
    )
    user_id = store.ensure_user(User(email="owner@example.com"))
    store.upsert_credential(
        user_id,
        tokens.codec.encode("access"),
        to_iso(NOW + timedelta(days=30)),
        refresh_token=tokens.codec.encode("refresh"),
    )
    service = ReportService(
        store=store,
        tokens=tokens,
        gateway=gateway,
        cache=ReportCache(store, KeyedLocks(), clock=clock),
        clock=clock,
    )
    return service, user_id


def test_fingerprint_is_order_sensitive() -> None:
    first = AnalyticsRequest("s", "2026-01-01", "2026-01-31", ("query", "page"))
    second = AnalyticsRequest("s", "2026-01-01", "2026-01-31", ("page", "query"))
    assert first.fingerprint() == "s|2026-01-01|2026-01-31|query,page"
    assert first.fingerprint() != second.fingerprint()


def test_fresh_cached_report_skips_gateway(store, make_config) -> None:
    """Summary: A cached report under 24 hours old is served from the store.

    Importance: Repeat views within a day cost no Search Console quota.
    Alternatives: Always call Search Console.
    """

    gateway = FakeGateway(ROWS)
    clock = MutableClock(NOW)
    service, user_id = _service(store, make_config(), gateway, clock)
    first = service.search_analytics(user_id, REQUEST, ["clicks"])
    clock.now = NOW + timedelta(hours=23, minutes=59)
    second = service.search_analytics(user_id, REQUEST, ["clicks"])
    assert len(gateway.requests) == 1
    assert first["cached"] is False
    assert second["cached"] is True
    assert second["rows"] == [{"keys": ["buy shoes"], "clicks": 10}, {"keys": ["weather today"], "clicks": 1}]


def test_stale_cached_report_is_refetched_and_overwritten(store, make_config) -> None:
    gateway = FakeGateway(ROWS)
    clock = MutableClock(NOW)
    service, user_id = _service(store, make_config(), gateway, clock)
    service.search_analytics(user_id, REQUEST, ["clicks"])
    gateway.rows = ROWS[:1]
    clock.now = NOW + timedelta(hours=24)
    result = service.search_analytics(user_id, REQUEST, ["clicks"])
    assert len(gateway.requests) == 2
    assert result["cached"] is False
    assert len(result["rows"]) == 1
    stored = store.get_cached_report(user_id, "sc-domain:example.com|2026-01-01|2026-01-31|query")
    assert stored.created_at == to_iso(NOW + timedelta(hours=24))


def test_generate_report_formats_site_and_filters_metrics(store, make_config) -> None:
    gateway = FakeGateway(ROWS)
    service, user_id = _service(store, make_config(), gateway, MutableClock(NOW))
    report = service.generate_report(user_id, REQUEST, ["ctr", "position"])
    token, sent = gateway.requests[0]
    assert token == "access"
    assert sent.site_url == "sc-domain:example.com"
    assert report["request"]["siteUrl"] == "sc-domain:example.com"
    assert report["request"]["timeRange"] == {"startDate": "2026-01-01", "endDate": "2026-01-31"}
    assert report["data"][0] == {"keys": ["buy shoes"], "ctr": 0.1, "position": 3.25}


def test_saved_report_ownership(store, make_config) -> None:
    """Summary: Saved reports are visible only to the user who saved them.

    Importance: Intent analysis and exports run only on the caller's own reports.
    Alternatives: Treat report IDs as capability URLs.
    """

    gateway = FakeGateway(ROWS)
    service, user_id = _service(store, make_config(), gateway, MutableClock(NOW))
    payload = service.generate_report(user_id, REQUEST, ["clicks"])
    report_id = service.save_report(user_id, payload)
    report = service.get_report(user_id, report_id)
    assert report.metrics == ("clicks",)
    assert report.data["data"][0]["clicks"] == 10
    intruder = store.ensure_user(User(email="intruder@example.com"))
    with pytest.raises(ReportAccessDenied):
        service.get_report(intruder, report_id)
    with pytest.raises(ReportAccessDenied):
        service.save_report(intruder, payload, report_id)
    with pytest.raises(ReportNotFound):
        service.get_report(user_id, "missing")


def test_list_reports_returns_latest_ten(store, make_config) -> None:
    clock = MutableClock(NOW)
    service, user_id = _service(store, make_config(), FakeGateway(ROWS), clock)
    for index in range(12):
        clock.now = NOW + timedelta(minutes=index)
        service.save_report(user_id, {"request": {"siteUrl": "s", "metrics": []}, "data": []}, f"r{index:02d}")
    reports = service.list_reports(user_id)
    assert len(reports) == 10
    assert reports[0].report_id == "r11"
