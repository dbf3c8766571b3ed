"""Summary: Shared pytest fixtures for report builder tests.

Importance: Gives every test an isolated database and a complete configuration.
Alternatives: Repeat a full AppConfig literal in each test module.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from gscreports.config import AppConfig
from gscreports.storage.sqlite_store import SqliteStore


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _base_config(db_path: str) -> AppConfig:
    return AppConfig(
        db_path=db_path,
        ai_provider="mock",
        gemini_api_key=None,
        gemini_model="gemini-2.0-flash",
        gemini_base_url="https://generativelanguage.googleapis.com/v1beta",
        api_host="127.0.0.1",
        api_port=8000,
        google_client_id="google-client",
        google_client_secret="google-secret",
        oauth_redirect_uri="http://localhost:8000/oauth2callback",
        google_auth_url="https://accounts.google.com/o/oauth2/v2/auth",
        google_token_url="https://oauth2.googleapis.com/token",
        google_userinfo_url="https://www.googleapis.com/oauth2/v2/userinfo",
        search_console_base_url="https://searchconsole.googleapis.com/webmasters/v3",
        sheets_base_url="https://sheets.googleapis.com/v4",
        session_secret="session-secret",
        session_cookie_name="gsc_auth_token",
        session_max_age_seconds=2592000,
        token_secret="secret",
        http_timeout_seconds=5.0,
        lock_mode="advisory",
        report_row_limit=1000,
        intent_batch_size=1,
        intent_batch_delay_seconds=3.0,
        intent_max_retries=3,
        intent_initial_delay_seconds=1.0,
        intent_analysis_cap=10,
        post_login_redirect="/dashboard",
    )


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., AppConfig]:
    """Summary: Factory for configs pointing at a per-test database.

    Importance: Tests override only the fields they care about.
    Alternatives: Load AppConfig from environment variables.
    """

    def _make(**overrides: Any) -> AppConfig:
        return dataclasses.replace(_base_config(str(tmp_path / "test.db")), **overrides)

    return _make


@pytest.fixture
def store(tmp_path: Path) -> SqliteStore:
    sqlite_store = SqliteStore(str(tmp_path / "test.db"))
    sqlite_store.initialize()
    return sqlite_store
