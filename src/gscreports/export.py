"""Summary: Google Sheets and CSV exports of report rows.

Importance: Lets users take a generated report, with or without intents, out of the dashboard.
Alternatives: Use gspread or pandas.DataFrame.to_csv.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from datetime import date
from typing import Any, Iterable, Mapping, Sequence

from gscreports.errors import SheetsExportError
from gscreports.models import UNKNOWN, IntentRecord


logger = logging.getLogger(__name__)

_KEY_ALIASES = {"funnelstage": "funnel_stage", "mainkeywords": "main_keywords"}
INTENT_HEADERS = ("Intent", "Category", "Funnel Stage", "Main Keywords")


def header_key(header: str) -> str:
    """Summary: Map a display header such as ``Funnel Stage`` to its row key.

    Importance: Export requests carry display headers, rows carry snake_case keys.
    Alternatives: Require clients to send key and label pairs.
    """

    key = re.sub(r"\s+", "", header.lower())
    return _KEY_ALIASES.get(key, key)


def format_cell(key: str, value: Any) -> Any:
    """Summary: Render one value the way it should appear in a spreadsheet.

    Importance: CTR becomes a percentage, position keeps one decimal, keywords join with commas.
    Alternatives: Write raw numbers and apply sheet number formats.
    """

    if value is None:
        return ""
    if key == "ctr" and isinstance(value, (int, float)):
        return f"{value * 100:.2f}%"
    if key == "position" and isinstance(value, (int, float)):
        return f"{value:.1f}"
    if key == "main_keywords" and isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    return value


def build_sheet_values(headers: Sequence[str], rows: Iterable[Mapping[str, Any]]) -> list[list[Any]]:
    keys = [header_key(header) for header in headers]
    values: list[list[Any]] = [list(headers)]
    for row in rows:
        values.append([format_cell(key, row.get(key)) for key in keys])
    return values


def build_csv(
    rows: Iterable[Mapping[str, Any]],
    metrics: Sequence[str],
    intents: Mapping[str, IntentRecord] | None = None,
) -> str:
    """Summary: Render analytics rows as CSV, optionally with intent columns.

    Importance: The first dimension key becomes the Query column; missing metrics export as 0.
    Alternatives: Export every dimension as its own column.
    """

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    headers = ["Query", *metrics]
    if intents is not None:
        headers.extend(INTENT_HEADERS)
    writer.writerow(headers)
    for row in rows:
        keys = row.get("keys") or [""]
        query = keys[0]
        line: list[Any] = [query, *(row.get(metric) or 0 for metric in metrics)]
        if intents is not None:
            record = intents.get(query)
            if record is None:
                line.extend([UNKNOWN, UNKNOWN, UNKNOWN, ""])
            else:
                line.extend(
                    [record.intent, record.category, record.funnel_stage, ", ".join(record.main_keywords)]
                )
        writer.writerow(line)
    return buffer.getvalue()


def csv_filename(today: date, with_intents: bool) -> str:
    prefix = "gsc-report-with-intents" if with_intents else "gsc-report"
    return f"{prefix}-{today.isoformat()}.csv"


class SheetsExporter:
    """Summary: Creates a spreadsheet and writes report values into its first sheet.

    Importance: Uses the user's own OAuth token, so the sheet lands in their Drive.
    Alternatives: Write into a shared service-account spreadsheet.
    """

    def __init__(self, base_url: str, timeout: float) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def export(
        self,
        access_token: str,
        title: str,
        headers: Sequence[str],
        rows: Iterable[Mapping[str, Any]],
    ) -> dict[str, str]:
        """Summary: Export rows to a new spreadsheet and return its identifiers.

        Importance: Values are written with USER_ENTERED so percentages stay numeric in Sheets.
        Alternatives: Use the batchUpdate API with explicit cell formats.
        """

        logger.info("Creating spreadsheet %r.", title)
        created = _sheets_request(
            "POST",
            f"{self._base_url}/spreadsheets",
            access_token,
            {"properties": {"title": title}},
            self._timeout,
        )
        spreadsheet_id = created.get("spreadsheetId")
        spreadsheet_url = created.get("spreadsheetUrl")
        if not spreadsheet_id or not spreadsheet_url:
            raise SheetsExportError("Failed to create spreadsheet")

        values = build_sheet_values(headers, rows)
        target = urllib.parse.quote("Sheet1!A1", safe="")
        _sheets_request(
            "PUT",
            f"{self._base_url}/spreadsheets/{spreadsheet_id}/values/{target}?valueInputOption=USER_ENTERED",
            access_token,
            {"range": "Sheet1!A1", "majorDimension": "ROWS", "values": values},
            self._timeout,
        )
        logger.info("Wrote %s rows to spreadsheet %s.", len(values), spreadsheet_id)
        return {"spreadsheetId": spreadsheet_id, "spreadsheetUrl": spreadsheet_url}


def _sheets_request(
    method: str,
    url: str,
    access_token: str,
    body: dict[str, Any],
    timeout: float,
) -> dict[str, Any]:
    request = urllib.request.Request(
        url,
        data=json.dumps(body).encode("utf-8"),
        headers={"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"},
        method=method,
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        if exc.code == 403:
            message = (
                "Permission denied. Ensure the Google Sheets API is enabled and the "
                "required scope was granted."
            )
        else:
            message = f"Sheets request failed: {error_body or exc.reason}"
        raise SheetsExportError(message, status=exc.code) from exc
    except urllib.error.URLError as exc:
        raise SheetsExportError(f"Sheets API unreachable: {exc.reason}") from exc
    except TimeoutError as exc:
        raise SheetsExportError(f"Sheets API timed out after {timeout}s") from exc
    try:
        return json.loads(raw) if raw else {}
    except json.JSONDecodeError as exc:
        raise SheetsExportError("Sheets API returned invalid JSON") from exc
