"""Summary: Core application services for the GSC report builder.

Importance: Orchestrates token lifecycle, report generation, intent enrichment, and exports.
Alternatives: Build a full service layer with a dependency injection framework.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import sqlite3
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Callable

from gscreports.analytics import SearchConsoleGateway, filter_metrics, format_site_url
from gscreports.caches import ReportCache, SqliteIntentCache, intent_from_row
from gscreports.classifier import PER_ITEM, SINGLE_PROMPT, IntentClassifier
from gscreports.clock import parse_iso, to_iso, utc_now
from gscreports.config import AppConfig
from gscreports.errors import (
    CredentialNotFound,
    OAuthError,
    ReportAccessDenied,
    ReportNotFound,
    TokenPersistFailed,
    TokenRefreshFailed,
)
from gscreports.export import SheetsExporter, build_csv, csv_filename
from gscreports.locks import KeyedLocks, NullLocks
from gscreports.models import AnalyticsRequest, Credential, IntentRecord, SavedReport, User
from gscreports.oauth import OAuthTokenResult, refresh_oauth_token
from gscreports.storage.sqlite_store import (
    SqliteStore,
    StoredSavedReport,
    StoredUser,
    encode_json,
)
from gscreports.token_codec import TokenCodec


logger = logging.getLogger(__name__)

EXPIRY_SKEW = timedelta(minutes=5)
DEFAULT_EXPIRES_IN = 3600
RECENT_REPORTS_LIMIT = 10


@dataclass(frozen=True)
class UserService:
    """Summary: Manages user records for signed-in Google accounts.

    Importance: Maps a Google profile to a stable local user ID.
    Alternatives: Use an external identity provider.
    """

    store: SqliteStore

    def sign_in(self, profile: dict[str, Any]) -> int:
        """Summary: Create or refresh the user for a Google userinfo payload.

        Importance: Email is the identity key; name and picture follow the latest sign-in.
        Alternatives: Key users by the Google subject ID.
        """

        email = profile.get("email")
        if not email:
            raise OAuthError("Google profile did not include an email address")
        return self.store.ensure_user(
            User(email=email, name=profile.get("name") or "", avatar_url=profile.get("picture") or "")
        )

    def get_user(self, user_id: int) -> StoredUser | None:
        return self.store.get_user(user_id)


@dataclass(frozen=True)
class SettingsService:
    store: SqliteStore

    def selected_site(self, user_id: int) -> str | None:
        return self.store.get_selected_site(user_id)

    def select_site(self, user_id: int, site_url: str) -> None:
        self.store.set_selected_site(user_id, site_url)
        logger.info("User %s selected site %s.", user_id, site_url)


@dataclass(frozen=True)
class TokenManager:
    """Summary: Owns the access-token lifecycle for each user.

    Importance: Hands out tokens valid for at least five more minutes, refreshing
    and persisting them when needed.
    Alternatives: Re-run the OAuth consent flow whenever a token expires.
    """

    store: SqliteStore
    codec: TokenCodec
    config: AppConfig
    locks: KeyedLocks | NullLocks
    clock: Callable[[], datetime] = utc_now

    def store_authorization(self, user_id: int, token_result: OAuthTokenResult) -> None:
        """Summary: Persist tokens from a completed authorization-code exchange.

        Importance: A missing refresh token keeps the one stored from an earlier consent.
        Alternatives: Reject authorizations that do not include a refresh token.
        """

        expires_at = self._expiry(token_result)
        self.store.upsert_credential(
            user_id,
            self.codec.encode(token_result.access_token),
            to_iso(expires_at),
            refresh_token=self.codec.encode(token_result.refresh_token) if token_result.refresh_token else None,
            scope=token_result.scope,
        )
        logger.info("Stored Google credential for user %s.", user_id)

    def load_credential(self, user_id: int) -> Credential:
        record = self.store.get_credential(user_id)
        if record is None:
            raise CredentialNotFound(user_id)
        return Credential(
            user_id=record.user_id,
            access_token=self.codec.decode(record.access_token),
            refresh_token=self.codec.decode(record.refresh_token) if record.refresh_token else None,
            expires_at=parse_iso(record.expires_at),
            scope=record.scope,
            version=record.version,
        )

    def get_valid_access_token(self, user_id: int) -> str:
        """Summary: Return a usable access token, refreshing it when close to expiry.

        Importance: In advisory lock mode concurrent refreshes for one user collapse
        into a single call to the token endpoint.
        Alternatives: Always refresh before use.
        """

        credential = self.load_credential(user_id)
        if not self._is_expired(credential):
            return credential.access_token
        with self.locks.hold(("token", user_id)):
            if self.config.lock_mode == "advisory":
                credential = self.load_credential(user_id)
                if not self._is_expired(credential):
                    logger.info("Token for user %s was refreshed by a concurrent request.", user_id)
                    return credential.access_token
            return self._refresh(credential)

    def _is_expired(self, credential: Credential) -> bool:
        return self.clock() + EXPIRY_SKEW >= credential.expires_at

    def _refresh(self, credential: Credential) -> str:
        user_id = credential.user_id
        if not credential.refresh_token:
            raise TokenRefreshFailed(f"No refresh token stored for user {user_id}")
        logger.info("Refreshing Google access token for user %s.", user_id)
        try:
            token_result = refresh_oauth_token(self.config, credential.refresh_token)
        except OAuthError as exc:
            logger.warning("Token refresh failed for user %s: %s", user_id, exc)
            raise TokenRefreshFailed(f"Token refresh failed for user {user_id}: {exc}") from exc

        expires_at = self._expiry(token_result)
        encoded_access = self.codec.encode(token_result.access_token)
        encoded_refresh = (
            self.codec.encode(token_result.refresh_token) if token_result.refresh_token else None
        )
        try:
            if self.config.lock_mode == "conditional":
                updated = self.store.update_credential_if_version(
                    user_id,
                    credential.version,
                    encoded_access,
                    to_iso(expires_at),
                    refresh_token=encoded_refresh,
                )
                if not updated:
                    logger.warning(
                        "Credential for user %s changed during refresh; kept the stored value.", user_id
                    )
            else:
                self.store.upsert_credential(
                    user_id,
                    encoded_access,
                    to_iso(expires_at),
                    refresh_token=encoded_refresh,
                )
        except sqlite3.Error as exc:
            logger.error("Refreshed token for user %s could not be stored: %s", user_id, exc)
            raise TokenPersistFailed(
                f"Refreshed token for user {user_id} could not be stored",
                access_token=token_result.access_token,
            ) from exc
        logger.info("Refreshed token for user %s valid until %s.", user_id, to_iso(expires_at))
        return token_result.access_token

    def _expiry(self, token_result: OAuthTokenResult) -> datetime:
        expires_in = token_result.expires_in if token_result.expires_in is not None else DEFAULT_EXPIRES_IN
        return self.clock() + timedelta(seconds=expires_in)


def usable_token(tokens: TokenManager, user_id: int) -> str:
    """Summary: Get an access token, tolerating a failed write of a refreshed one.

    Importance: The refreshed token is still valid for this request even if it was not stored.
    Alternatives: Fail the request when persistence fails.
    """

    try:
        return tokens.get_valid_access_token(user_id)
    except TokenPersistFailed as exc:
        logger.warning("Using unsaved refreshed token for user %s: %s", user_id, exc)
        return exc.access_token


@dataclass(frozen=True)
class ReportService:
    """Summary: Generates, caches, and saves Search Console reports.

    Importance: Composes the token manager, gateway, and report cache for HTTP handlers.
    Alternatives: Query Search Console directly from each route.
    """

    store: SqliteStore
    tokens: TokenManager
    gateway: SearchConsoleGateway
    cache: ReportCache
    clock: Callable[[], datetime] = utc_now

    def list_sites(self, user_id: int) -> list[dict[str, str]]:
        return self.gateway.list_sites(usable_token(self.tokens, user_id))

    def search_analytics(
        self,
        user_id: int,
        request: AnalyticsRequest,
        metrics: list[str],
    ) -> dict[str, Any]:
        """Summary: Fetch analytics rows through the 24-hour report cache.

        Importance: Repeat views within a day cost no Search Console quota.
        Alternatives: Always query the live API.
        """

        request = _normalized(request)
        rows, cached = self.cache.get_or_fetch(
            user_id,
            request,
            lambda: self.gateway.search_analytics(usable_token(self.tokens, user_id), request),
        )
        return {"rows": filter_metrics(rows, metrics), "cached": cached}

    def generate_report(
        self,
        user_id: int,
        request: AnalyticsRequest,
        metrics: list[str],
    ) -> dict[str, Any]:
        """Summary: Build a fresh report payload from the live API.

        Importance: The payload carries the request so saved reports can be reopened and exported.
        Alternatives: Serve generated reports from the cache as well.
        """

        request = _normalized(request)
        rows = self.gateway.search_analytics(usable_token(self.tokens, user_id), request)
        return {
            "request": {
                "siteUrl": request.site_url,
                "metrics": list(metrics),
                "timeRange": {"startDate": request.start_date, "endDate": request.end_date},
                "dimensions": list(request.dimensions),
            },
            "data": filter_metrics(rows, metrics),
        }

    def save_report(self, user_id: int, report_data: dict[str, Any], report_id: str | None = None) -> str:
        """Summary: Save a generated report under a new or existing ID.

        Importance: Reports owned by another user are never overwritten.
        Alternatives: Always mint a new ID on save.
        """

        report_id = report_id or uuid.uuid4().hex
        existing = self.store.get_saved_report(report_id)
        if existing is not None and existing.user_id != user_id:
            raise ReportAccessDenied(f"Report {report_id} belongs to another user")
        request = report_data.get("request") or {}
        time_range = request.get("timeRange") or {}
        self.store.save_report(
            StoredSavedReport(
                report_id=report_id,
                user_id=user_id,
                site_url=request.get("siteUrl", ""),
                start_date=time_range.get("startDate", ""),
                end_date=time_range.get("endDate", ""),
                metrics=encode_json(list(request.get("metrics") or [])),
                data=encode_json(report_data),
                created_at=to_iso(self.clock()),
            )
        )
        logger.info("Saved report %s for user %s.", report_id, user_id)
        return report_id

    def get_report(self, user_id: int, report_id: str) -> SavedReport:
        stored = self.store.get_saved_report(report_id)
        if stored is None:
            raise ReportNotFound(f"Report {report_id} not found")
        if stored.user_id != user_id:
            raise ReportAccessDenied(f"Report {report_id} belongs to another user")
        return _saved_report(stored)

    def list_reports(self, user_id: int, limit: int = RECENT_REPORTS_LIMIT) -> list[SavedReport]:
        return [_saved_report(stored) for stored in self.store.list_saved_reports(user_id, limit)]


def _normalized(request: AnalyticsRequest) -> AnalyticsRequest:
    return AnalyticsRequest(
        site_url=format_site_url(request.site_url),
        start_date=request.start_date,
        end_date=request.end_date,
        dimensions=tuple(request.dimensions),
        start_row=request.start_row,
    )


def _saved_report(stored: StoredSavedReport) -> SavedReport:
    return SavedReport(
        report_id=stored.report_id,
        user_id=stored.user_id,
        site_url=stored.site_url,
        start_date=stored.start_date,
        end_date=stored.end_date,
        metrics=tuple(json.loads(stored.metrics)),
        data=json.loads(stored.data),
        created_at=parse_iso(stored.created_at),
    )


@dataclass(frozen=True)
class IntentService:
    """Summary: Runs intent analysis for saved reports and serves cached intents.

    Importance: Checks report ownership before spending model quota.
    Alternatives: Classify queries without tying them to a report.
    """

    store: SqliteStore
    classifier: IntentClassifier
    intent_cache: SqliteIntentCache
    reports: ReportService
    analysis_cap: int = 10

    def analyze_report_intents(
        self,
        user_id: int,
        report_id: str,
        queries: list[str],
        visible_only: bool = False,
        force: bool = False,
    ) -> dict[str, Any]:
        """Summary: Classify a report's queries and link the results to the report.

        Importance: Visible-only requests use one uncapped prompt; full-report requests
        analyze per query up to the configured cap.
        Alternatives: Always analyze the whole report in one prompt.
        """

        self.reports.get_report(user_id, report_id)
        if visible_only:
            result = self.classifier.analyze(queries, mode=SINGLE_PROMPT, limit=None, force=force)
        else:
            result = self.classifier.analyze(queries, mode=PER_ITEM, limit=self.analysis_cap, force=force)
        self.store.link_report_intents(report_id, queries)
        logger.info(
            "Report %s intents: %s cached, %s analyzed, %s remaining.",
            report_id,
            result.cached,
            result.analyzed,
            result.remaining,
        )
        return {
            "reportId": report_id,
            "total": len(result.results),
            "cached": result.cached,
            "new": result.analyzed,
            "remainingQueries": result.remaining,
            "hasMoreQueries": result.remaining > 0,
            "intents": [record.to_dict() for record in result.results],
        }

    def existing_intents(self, queries: list[str]) -> list[IntentRecord]:
        found = self.intent_cache.lookup(queries)
        return [found[query] for query in dict.fromkeys(queries) if query in found]

    def report_intents(self, user_id: int, report_id: str) -> list[IntentRecord]:
        self.reports.get_report(user_id, report_id)
        return [intent_from_row(row) for row in self.store.list_report_intents(report_id)]


@dataclass(frozen=True)
class ExportService:
    """Summary: Exports report rows to Google Sheets or CSV.

    Importance: Sheets exports run under the user's own Google token.
    Alternatives: Only offer client-side CSV downloads.
    """

    tokens: TokenManager
    sheets: SheetsExporter
    reports: ReportService
    intents: IntentService
    clock: Callable[[], datetime] = utc_now

    def export_to_sheets(
        self,
        user_id: int,
        title: str,
        headers: list[str],
        rows: list[dict[str, Any]],
    ) -> dict[str, str]:
        return self.sheets.export(usable_token(self.tokens, user_id), title, headers, rows)

    def export_csv(self, user_id: int, report_id: str, include_intents: bool = False) -> tuple[str, str]:
        """Summary: Render a saved report as CSV and pick its download filename.

        Importance: Intent columns come from the intents linked to the report.
        Alternatives: Let the browser assemble the CSV.
        """

        report = self.reports.get_report(user_id, report_id)
        rows = report.data.get("data") or []
        intents = None
        if include_intents:
            intents = {record.query: record for record in self.intents.report_intents(user_id, report_id)}
        content = build_csv(rows, list(report.metrics), intents)
        today: date = self.clock().date()
        return csv_filename(today, include_intents), content
