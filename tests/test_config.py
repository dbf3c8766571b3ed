"""Summary: Tests for configuration loading.

Importance: Ensures defaults, .env, and environment overrides behave correctly.
Alternatives: Validate configuration manually during runtime.
"""

from __future__ import annotations

import dataclasses
import json
import os
import shutil
from pathlib import Path

import pytest

from gscreports.config import AppConfig, load_defaults, load_dotenv


REPO_DEFAULTS = Path(__file__).resolve().parents[1] / "config" / "defaults.json"


def _use_repo_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "config").mkdir()
    shutil.copy(REPO_DEFAULTS, tmp_path / "config" / "defaults.json")
    monkeypatch.chdir(tmp_path)


def test_load_defaults_reads_json(tmp_path: Path) -> None:
    """Summary: Verify defaults are parsed from JSON.

    Importance: Confirms config file is the source of truth for variables.
    Alternatives: Hardcode defaults in the test.
    """

    defaults_path = tmp_path / "defaults.json"
    defaults_path.write_text(json.dumps({"db_path": "test.db"}), encoding="utf-8")
    assert load_defaults(defaults_path)["db_path"] == "test.db"


def test_load_defaults_requires_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_defaults(tmp_path / "missing.json")


def test_load_dotenv_sets_env_and_strips_quotes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Ensure .env values populate environment variables.

    Importance: Validates local secret loading without external tools.
    Alternatives: Assume OS environment is always set.
    """

    env_path = tmp_path / ".env"
    env_path.write_text(
        "# local settings\nGSCREPORTS_AI_PROVIDER=gemini\nGEMINI_API_KEY=\"quoted-key\"\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("GSCREPORTS_AI_PROVIDER", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    load_dotenv(env_path)
    assert os.getenv("GSCREPORTS_AI_PROVIDER") == "gemini"
    assert os.getenv("GEMINI_API_KEY") == "quoted-key"
    monkeypatch.delenv("GSCREPORTS_AI_PROVIDER")
    monkeypatch.delenv("GEMINI_API_KEY")


def test_app_config_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Verify AppConfig honors defaults when env is absent.

    Importance: Confirms the shipped defaults file builds a valid configuration.
    Alternatives: Inline defaults directly in the AppConfig class.
    """

    _use_repo_defaults(tmp_path, monkeypatch)
    for name in ("GSCREPORTS_DB_PATH", "GSCREPORTS_AI_PROVIDER", "GEMINI_API_KEY", "GSCREPORTS_LOCK_MODE"):
        monkeypatch.delenv(name, raising=False)
    config = AppConfig.from_env()
    assert config.db_path == "gscreports.db"
    assert config.ai_provider == "mock"
    assert config.gemini_api_key is None
    assert config.gemini_model == "gemini-2.0-flash"
    assert config.session_cookie_name == "gsc_auth_token"
    assert config.session_max_age_seconds == 30 * 24 * 3600
    assert config.lock_mode == "advisory"
    assert config.report_row_limit == 1000
    assert config.intent_batch_size == 1
    assert config.intent_batch_delay_seconds == 3.0
    assert config.intent_max_retries == 3
    assert config.intent_analysis_cap == 10


def test_app_config_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _use_repo_defaults(tmp_path, monkeypatch)
    monkeypatch.setenv("GSCREPORTS_LOCK_MODE", "conditional")
    monkeypatch.setenv("GSCREPORTS_INTENT_CAP", "25")
    monkeypatch.setenv("GSCREPORTS_HTTP_TIMEOUT", "12.5")
    config = AppConfig.from_env()
    assert config.lock_mode == "conditional"
    assert config.intent_analysis_cap == 25
    assert config.http_timeout_seconds == 12.5


def test_app_config_rejects_unknown_lock_mode(make_config) -> None:
    """Summary: Unknown lock modes fail at construction time.

    Importance: A typo must not silently disable refresh de-duplication.
    Alternatives: Fall back to the default mode.
    """

    config = make_config()
    with pytest.raises(ValueError):
        dataclasses.replace(config, lock_mode="pessimistic")
