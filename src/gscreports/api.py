"""Summary: FastAPI application for the GSC report builder.

Importance: Exposes sign-in, report, intent, and export endpoints to the dashboard.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, Field, field_validator

from gscreports.app import AppContext, build_context
from gscreports.clock import utc_now
from gscreports.config import AppConfig
from gscreports.errors import (
    AnalyticsError,
    CredentialNotFound,
    OAuthError,
    ReportAccessDenied,
    ReportBuilderError,
    ReportNotFound,
    SheetsExportError,
    TokenRefreshFailed,
)
from gscreports.models import METRICS, AnalyticsRequest, SavedReport
from gscreports.oauth import (
    build_google_auth_url,
    create_state_token,
    exchange_oauth_code,
    fetch_user_profile,
)


logger = logging.getLogger(__name__)

RECONNECT_MESSAGE = "Please reconnect your Google account"
OAUTH_STATE_TTL = timedelta(minutes=10)


class SearchAnalyticsRequest(BaseModel):
    """Summary: Request payload for analytics queries and report generation.

    Importance: Rejects unknown metrics before any Search Console call is made.
    Alternatives: Accept free-form metric names and filter silently.
    """

    site_url: str = Field(min_length=1)
    start_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    end_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    dimensions: list[str] = Field(default_factory=lambda: ["query"], min_length=1)
    metrics: list[str] = Field(default_factory=lambda: list(METRICS), min_length=1)

    @field_validator("metrics")
    @classmethod
    def _known_metrics(cls, value: list[str]) -> list[str]:
        unknown = [metric for metric in value if metric not in METRICS]
        if unknown:
            raise ValueError(f"Unknown metrics: {', '.join(unknown)}")
        return value

    def to_request(self) -> AnalyticsRequest:
        return AnalyticsRequest(
            site_url=self.site_url,
            start_date=self.start_date,
            end_date=self.end_date,
            dimensions=tuple(self.dimensions),
        )


class SelectedSiteRequest(BaseModel):
    site_url: str = Field(min_length=1)


class SaveReportRequest(BaseModel):
    """Summary: Request payload for saving a generated report.

    Importance: Lets clients re-save under a known ID or receive a new one.
    Alternatives: Always assign IDs server-side.
    """

    report_data: dict[str, Any]
    report_id: str | None = None


class AnalyzeIntentsRequest(BaseModel):
    """Summary: Request payload for report intent analysis.

    Importance: ``visible_only`` switches to one uncapped prompt for the rows on screen.
    Alternatives: Analyze the whole report every time.
    """

    report_id: str = Field(min_length=1)
    queries: list[str] = Field(min_length=1)
    visible_only: bool = False
    force: bool = False


class ExistingIntentsRequest(BaseModel):
    queries: list[str] = Field(min_length=1)


class SheetsExportRequest(BaseModel):
    """Summary: Request payload for Google Sheets export.

    Importance: Headers are display labels mapped to row keys on export.
    Alternatives: Export a saved report by ID only.
    """

    report_title: str = Field(min_length=1)
    headers: list[str] = Field(min_length=1)
    rows: list[dict[str, Any]]


class CsvExportRequest(BaseModel):
    report_id: str = Field(min_length=1)
    include_intents: bool = False


def _report_summary(report: SavedReport) -> dict[str, Any]:
    return {
        "report_id": report.report_id,
        "site_url": report.site_url,
        "start_date": report.start_date,
        "end_date": report.end_date,
        "metrics": list(report.metrics),
        "created_at": report.created_at.isoformat(),
    }


def _error_status(exc: ReportBuilderError) -> tuple[int, str]:
    """Summary: Map application errors to HTTP status codes and messages.

    Importance: Token failures always ask the user to reconnect their Google account.
    Alternatives: Return 500 for every application error.
    """

    if isinstance(exc, (CredentialNotFound, TokenRefreshFailed)):
        return 401, RECONNECT_MESSAGE
    if isinstance(exc, (AnalyticsError, SheetsExportError)):
        if exc.status in (401, 403, 429):
            return exc.status, str(exc)
        return 502, str(exc)
    if isinstance(exc, ReportNotFound):
        return 404, "Report not found"
    if isinstance(exc, ReportAccessDenied):
        return 403, "Unauthorized access to this report"
    if isinstance(exc, OAuthError):
        return 400, str(exc)
    return 500, "Internal error"


def create_app(config: AppConfig, context: AppContext | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to report builder services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="GSC Report Builder API", version="0.1.0")
    context = context or build_context(config)
    app.state.oauth_states = {}

    @app.exception_handler(ReportBuilderError)
    def handle_app_error(request: Request, exc: ReportBuilderError) -> JSONResponse:
        status, message = _error_status(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s returned %s: %s", request.method, request.url.path, status, exc)
        return JSONResponse(status_code=status, content={"error": message})

    def _register_state(state: str) -> None:
        app.state.oauth_states[state] = utc_now()

    def _consume_state(state: str) -> None:
        """Summary: Validate and discard an OAuth state token.

        Importance: Reduces CSRF risks in the OAuth callback.
        Alternatives: Store state in a signed cookie.
        """

        created_at = app.state.oauth_states.pop(state, None)
        if created_at is None:
            raise HTTPException(status_code=400, detail="Invalid OAuth state")
        if utc_now() - created_at > OAUTH_STATE_TTL:
            raise HTTPException(status_code=400, detail="OAuth state expired")

    def current_user(request: Request) -> int:
        """Summary: Resolve the signed-in user from the session cookie.

        Importance: Every data endpoint is scoped to the cookie's user.
        Alternatives: Accept a bearer token header.
        """

        user_id = context.sessions.verify(request.cookies.get(config.session_cookie_name))
        if user_id is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return user_id

    @app.get("/health")
    def health() -> dict[str, str]:
        """Summary: Health check endpoint.

        Importance: Supports uptime checks in local and cloud deployments.
        Alternatives: Use a metrics endpoint only.
        """

        return {"status": "ok", "model": context.model_name}

    @app.get("/auth/google")
    def auth_google() -> dict[str, str]:
        """Summary: Start Google sign-in.

        Importance: Returns the consent URL together with the state the callback must echo.
        Alternatives: Redirect the browser directly.
        """

        state = create_state_token()
        _register_state(state)
        return {"url": build_google_auth_url(config, state), "state": state}

    @app.get("/oauth2callback")
    def oauth_callback(
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
    ) -> RedirectResponse:
        """Summary: Complete Google sign-in and start a session.

        Importance: Stores the user's credential and sets the session cookie.
        Alternatives: Hand the code to the frontend for exchange.
        """

        if error:
            raise HTTPException(status_code=400, detail=f"Google sign-in failed: {error}")
        if not code or not state:
            raise HTTPException(status_code=400, detail="Missing code or state")
        _consume_state(state)
        token_result = exchange_oauth_code(config, code)
        profile = fetch_user_profile(config, token_result.access_token)
        user_id = context.users.sign_in(profile)
        context.tokens.store_authorization(user_id, token_result)
        logger.info("User %s signed in.", user_id)
        response = RedirectResponse(url=config.post_login_redirect, status_code=302)
        response.set_cookie(
            key=config.session_cookie_name,
            value=context.sessions.issue(user_id, profile["email"]),
            max_age=config.session_max_age_seconds,
            httponly=True,
            samesite="lax",
            secure=config.oauth_redirect_uri.startswith("https://"),
            path="/",
        )
        return response

    @app.get("/auth/logout")
    def logout() -> JSONResponse:
        response = JSONResponse({"success": True})
        response.delete_cookie(config.session_cookie_name, path="/")
        return response

    @app.get("/user/profile")
    def user_profile(user_id: int = Depends(current_user)) -> dict[str, Any]:
        user = context.users.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return {"id": user.id, "email": user.email, "name": user.name, "avatar_url": user.avatar_url}

    @app.get("/gsc/sites")
    def list_sites(user_id: int = Depends(current_user)) -> dict[str, Any]:
        return {"sites": context.reports.list_sites(user_id)}

    @app.get("/gsc/selected-site")
    def get_selected_site(user_id: int = Depends(current_user)) -> dict[str, Any]:
        return {"site_url": context.settings.selected_site(user_id)}

    @app.post("/gsc/selected-site")
    def set_selected_site(
        payload: SelectedSiteRequest,
        user_id: int = Depends(current_user),
    ) -> dict[str, Any]:
        context.settings.select_site(user_id, payload.site_url)
        return {"success": True, "site_url": payload.site_url}

    @app.post("/gsc/search-analytics")
    def search_analytics(
        payload: SearchAnalyticsRequest,
        user_id: int = Depends(current_user),
    ) -> dict[str, Any]:
        """Summary: Fetch analytics rows through the report cache.

        Importance: Repeat requests within 24 hours are answered from the store.
        Alternatives: Always call Search Console.
        """

        return context.reports.search_analytics(user_id, payload.to_request(), payload.metrics)

    @app.post("/gsc/generate-report")
    def generate_report(
        payload: SearchAnalyticsRequest,
        user_id: int = Depends(current_user),
    ) -> dict[str, Any]:
        report = context.reports.generate_report(user_id, payload.to_request(), payload.metrics)
        return {"success": True, **report}

    @app.post("/reports")
    def save_report(payload: SaveReportRequest, user_id: int = Depends(current_user)) -> dict[str, Any]:
        report_id = context.reports.save_report(user_id, payload.report_data, payload.report_id)
        return {"success": True, "report_id": report_id}

    @app.get("/reports")
    def list_reports(user_id: int = Depends(current_user)) -> dict[str, Any]:
        return {"reports": [_report_summary(report) for report in context.reports.list_reports(user_id)]}

    @app.get("/reports/{report_id}")
    def get_report(report_id: str, user_id: int = Depends(current_user)) -> dict[str, Any]:
        report = context.reports.get_report(user_id, report_id)
        return {**_report_summary(report), "data": report.data}

    @app.get("/reports/{report_id}/intents")
    def report_intents(report_id: str, user_id: int = Depends(current_user)) -> dict[str, Any]:
        records = context.intents.report_intents(user_id, report_id)
        return {"intents": [record.to_dict() for record in records]}

    @app.post("/intents/analyze")
    def analyze_intents(
        payload: AnalyzeIntentsRequest,
        user_id: int = Depends(current_user),
    ) -> dict[str, Any]:
        """Summary: Classify a saved report's queries.

        Importance: Always answers with one intent per query, even when Gemini is rate limited.
        Alternatives: Fail the request when the model is unavailable.
        """

        result = context.intents.analyze_report_intents(
            user_id,
            payload.report_id,
            payload.queries,
            visible_only=payload.visible_only,
            force=payload.force,
        )
        return {"success": True, **result}

    @app.post("/intents/existing")
    def existing_intents(
        payload: ExistingIntentsRequest,
        user_id: int = Depends(current_user),
    ) -> dict[str, Any]:
        records = context.intents.existing_intents(payload.queries)
        return {"intents": [record.to_dict() for record in records]}

    @app.post("/export/sheets")
    def export_sheets(payload: SheetsExportRequest, user_id: int = Depends(current_user)) -> dict[str, Any]:
        result = context.exports.export_to_sheets(
            user_id, payload.report_title, payload.headers, payload.rows
        )
        return {"success": True, "message": "Successfully exported to Google Sheets!", **result}

    @app.post("/export/csv")
    def export_csv(payload: CsvExportRequest, user_id: int = Depends(current_user)) -> Response:
        """Summary: Download a saved report as a CSV file.

        Importance: The filename carries the export date and whether intents are included.
        Alternatives: Build the CSV in the browser.
        """

        filename, content = context.exports.export_csv(user_id, payload.report_id, payload.include_intents)
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return app


app = create_app(AppConfig.from_env())
