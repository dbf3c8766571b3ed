"""Summary: Tests for the Search Console gateway.

Importance: Ensures pagination, site formatting, and error mapping follow the API contract.
Alternatives: Record live API traffic as fixtures.
"""

from __future__ import annotations

import io
import urllib.error
from typing import Any

import pytest

from gscreports.analytics import SearchConsoleGateway, _request_json, filter_metrics, format_site_url
from gscreports.errors import AnalyticsError
from gscreports.models import AnalyticsRequest


def test_format_site_url() -> None:
    assert format_site_url("example.com") == "sc-domain:example.com"
    assert format_site_url("sc-domain:example.com") == "sc-domain:example.com"
    assert format_site_url("https://example.com/") == "https://example.com/"


def test_filter_metrics_keeps_keys_and_requested_metrics() -> None:
    rows = [{"keys": ["q"], "clicks": 1, "impressions": 2, "ctr": 0.5, "position": 1.0}]
    assert filter_metrics(rows, ["impressions"]) == [{"keys": ["q"], "impressions": 2}]


def test_search_analytics_paginates_until_short_page(monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Requests continue while each page is full.

    Importance: Reports must include every row, not just the first page.
    Alternatives: Cap reports at a single page.
    """

    sent: list[tuple[str, str, dict[str, Any]]] = []
    pages = [
        [{"keys": [f"q{i}"]} for i in range(3)],
        [{"keys": [f"q{i}"]} for i in range(3, 6)],
        [{"keys": ["q6"]}],
    ]

    def _fake_request(method: str, url: str, token: str, body: dict[str, Any] | None, timeout: float) -> dict[str, Any]:
        sent.append((method, url, body))
        return {"rows": pages[len(sent) - 1]}

    monkeypatch.setattr("gscreports.analytics._request_json", _fake_request)
    gateway = SearchConsoleGateway("https://search.test/webmasters/v3", timeout=5, row_limit=3)
    rows = gateway.search_analytics("token", AnalyticsRequest("example.com", "2026-01-01", "2026-01-31"))
    assert len(rows) == 7
    assert [body["startRow"] for _, _, body in sent] == [0, 3, 6]
    method, url, body = sent[0]
    assert method == "POST"
    assert url == "https://search.test/webmasters/v3/sites/sc-domain%3Aexample.com/searchAnalytics/query"
    assert body["searchType"] == "web"
    assert body["aggregationType"] == "auto"
    assert body["rowLimit"] == 3
    assert body["dimensions"] == ["query"]


def test_search_analytics_handles_empty_response(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("gscreports.analytics._request_json", lambda *_args: {})
    gateway = SearchConsoleGateway("https://search.test", timeout=5)
    assert gateway.search_analytics("token", AnalyticsRequest("example.com", "2026-01-01", "2026-01-31")) == []


def test_list_sites(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {"siteEntry": [{"siteUrl": "https://example.com/", "permissionLevel": "siteOwner"}]}
    monkeypatch.setattr("gscreports.analytics._request_json", lambda *_args: payload)
    sites = SearchConsoleGateway("https://search.test", timeout=5).list_sites("token")
    assert sites == [{"siteUrl": "https://example.com/", "permissionLevel": "siteOwner"}]


@pytest.mark.parametrize("status", [401, 403, 429, 500])
def test_request_json_maps_http_errors(monkeypatch: pytest.MonkeyPatch, status: int) -> None:
    def _raise(*_args: object, **_kwargs: object) -> None:
        raise urllib.error.HTTPError("https://search.test", status, "error", {}, io.BytesIO(b"{}"))

    monkeypatch.setattr("urllib.request.urlopen", _raise)
    with pytest.raises(AnalyticsError) as excinfo:
        _request_json("GET", "https://search.test/sites", "token", None, 5)
    assert excinfo.value.status == status
