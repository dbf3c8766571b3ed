"""Summary: Search Console API client for site listing and search analytics.

Importance: Fetches the rows every report is built from, following pagination to the end.
Alternatives: Use google-api-python-client's webmasters discovery service.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Iterable

from gscreports.errors import AnalyticsError
from gscreports.models import AnalyticsRequest


logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    401: "Search Console rejected the access token",
    403: "No permission for this Search Console property",
    429: "Search Console quota exceeded",
}


def format_site_url(site_url: str) -> str:
    """Summary: Normalize a property identifier for the Search Console API.

    Importance: Bare domains are domain properties and need the ``sc-domain:`` prefix.
    Alternatives: Require callers to pass fully qualified property identifiers.
    """

    site_url = site_url.strip()
    if site_url.startswith(("http://", "https://", "sc-domain:")):
        return site_url
    return f"sc-domain:{site_url}"


def filter_metrics(rows: Iterable[dict[str, Any]], metrics: Iterable[str]) -> list[dict[str, Any]]:
    """Summary: Keep only the dimension keys and requested metrics in each row.

    Importance: Reports show exactly the columns the user selected.
    Alternatives: Send every metric and hide columns in the UI.
    """

    wanted = list(metrics)
    filtered: list[dict[str, Any]] = []
    for row in rows:
        item: dict[str, Any] = {"keys": list(row.get("keys", []))}
        for metric in wanted:
            if metric in row:
                item[metric] = row[metric]
        filtered.append(item)
    return filtered


class SearchConsoleGateway:
    """Summary: Minimal Search Console client authenticated per call.

    Importance: The access token is supplied per request so one gateway serves every user.
    Alternatives: Build a client object per user session.
    """

    def __init__(self, base_url: str, timeout: float, row_limit: int = 1000) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._row_limit = row_limit

    def list_sites(self, access_token: str) -> list[dict[str, str]]:
        """Summary: List the properties the user can read.

        Importance: Feeds the site selector in the dashboard.
        Alternatives: Ask the user to type the property URL.
        """

        payload = _request_json("GET", f"{self._base_url}/sites", access_token, None, self._timeout)
        return [
            {"siteUrl": entry.get("siteUrl", ""), "permissionLevel": entry.get("permissionLevel", "")}
            for entry in payload.get("siteEntry", [])
        ]

    def search_analytics(self, access_token: str, request: AnalyticsRequest) -> list[dict[str, Any]]:
        """Summary: Fetch every analytics row for a request.

        Importance: Keeps requesting pages while a page comes back full.
        Alternatives: Return only the first page and let callers paginate.
        """

        site = urllib.parse.quote(format_site_url(request.site_url), safe="")
        url = f"{self._base_url}/sites/{site}/searchAnalytics/query"
        rows: list[dict[str, Any]] = []
        start_row = request.start_row
        while True:
            body = {
                "startDate": request.start_date,
                "endDate": request.end_date,
                "dimensions": list(request.dimensions),
                "rowLimit": self._row_limit,
                "startRow": start_row,
                "searchType": "web",
                "aggregationType": "auto",
            }
            page = _request_json("POST", url, access_token, body, self._timeout).get("rows", [])
            rows.extend(page)
            logger.debug("Fetched %s rows at offset %s for %s.", len(page), start_row, request.site_url)
            if len(page) < self._row_limit:
                break
            start_row += self._row_limit
        logger.info("Fetched %s analytics rows for %s.", len(rows), request.site_url)
        return rows


def _request_json(
    method: str,
    url: str,
    access_token: str,
    body: dict[str, Any] | None,
    timeout: float,
) -> dict[str, Any]:
    """Summary: Send an authenticated JSON request to Search Console.

    Importance: Maps upstream HTTP failures to AnalyticsError with the status kept.
    Alternatives: Use a third-party HTTP client.
    """

    headers = {"Authorization": f"Bearer {access_token}"}
    data = None
    if body is not None:
        data = json.dumps(body).encode("utf-8")
        headers["Content-Type"] = "application/json"
    request = urllib.request.Request(url, data=data, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        message = _STATUS_MESSAGES.get(exc.code, f"Search Console request failed: {exc.reason}")
        logger.warning("Search Console returned %s: %s", exc.code, error_body[:200])
        raise AnalyticsError(message, status=exc.code) from exc
    except urllib.error.URLError as exc:
        raise AnalyticsError(f"Search Console unreachable: {exc.reason}") from exc
    except TimeoutError as exc:
        raise AnalyticsError(f"Search Console request timed out after {timeout}s") from exc
    return json.loads(raw) if raw else {}
