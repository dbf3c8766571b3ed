"""Summary: Application configuration for the GSC report builder.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


LOCK_MODES = ("none", "advisory", "conditional")


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for Google, Gemini, storage, and the API.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Read environment variables ad hoc inside each module.
    """

    db_path: str
    ai_provider: str
    gemini_api_key: str | None
    gemini_model: str
    gemini_base_url: str
    api_host: str
    api_port: int
    google_client_id: str
    google_client_secret: str
    oauth_redirect_uri: str
    google_auth_url: str
    google_token_url: str
    google_userinfo_url: str
    search_console_base_url: str
    sheets_base_url: str
    session_secret: str
    session_cookie_name: str
    session_max_age_seconds: int
    token_secret: str
    http_timeout_seconds: float
    lock_mode: str
    report_row_limit: int
    intent_batch_size: int
    intent_batch_delay_seconds: float
    intent_max_retries: int
    intent_initial_delay_seconds: float
    intent_analysis_cap: int
    post_login_redirect: str

    def __post_init__(self) -> None:
        if self.lock_mode not in LOCK_MODES:
            raise ValueError(
                f"Unknown lock mode {self.lock_mode!r}; expected one of {', '.join(LOCK_MODES)}"
            )

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("GSCREPORTS_DB_PATH", defaults["db_path"]),
            ai_provider=os.getenv("GSCREPORTS_AI_PROVIDER", defaults["ai_provider"]),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or defaults["gemini_api_key"] or None,
            gemini_model=os.getenv("GEMINI_MODEL", defaults["gemini_model"]),
            gemini_base_url=os.getenv("GEMINI_BASE_URL", defaults["gemini_base_url"]),
            api_host=os.getenv("GSCREPORTS_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("GSCREPORTS_API_PORT", defaults["api_port"])),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", defaults["google_client_id"]),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", defaults["google_client_secret"]),
            oauth_redirect_uri=os.getenv("GOOGLE_REDIRECT_URI", defaults["oauth_redirect_uri"]),
            google_auth_url=os.getenv("GOOGLE_AUTH_URL", defaults["google_auth_url"]),
            google_token_url=os.getenv("GOOGLE_TOKEN_URL", defaults["google_token_url"]),
            google_userinfo_url=os.getenv("GOOGLE_USERINFO_URL", defaults["google_userinfo_url"]),
            search_console_base_url=os.getenv(
                "GSCREPORTS_SEARCH_CONSOLE_URL", defaults["search_console_base_url"]
            ),
            sheets_base_url=os.getenv("GSCREPORTS_SHEETS_URL", defaults["sheets_base_url"]),
            session_secret=os.getenv("JWT_SECRET", defaults["session_secret"]),
            session_cookie_name=os.getenv("COOKIE_NAME", defaults["session_cookie_name"]),
            session_max_age_seconds=int(
                os.getenv("GSCREPORTS_SESSION_MAX_AGE", defaults["session_max_age_seconds"])
            ),
            token_secret=os.getenv("GSCREPORTS_TOKEN_SECRET", defaults["token_secret"]),
            http_timeout_seconds=float(
                os.getenv("GSCREPORTS_HTTP_TIMEOUT", defaults["http_timeout_seconds"])
            ),
            lock_mode=os.getenv("GSCREPORTS_LOCK_MODE", defaults["lock_mode"]),
            report_row_limit=int(os.getenv("GSCREPORTS_ROW_LIMIT", defaults["report_row_limit"])),
            intent_batch_size=int(
                os.getenv("GSCREPORTS_INTENT_BATCH_SIZE", defaults["intent_batch_size"])
            ),
            intent_batch_delay_seconds=float(
                os.getenv("GSCREPORTS_INTENT_BATCH_DELAY", defaults["intent_batch_delay_seconds"])
            ),
            intent_max_retries=int(
                os.getenv("GSCREPORTS_INTENT_MAX_RETRIES", defaults["intent_max_retries"])
            ),
            intent_initial_delay_seconds=float(
                os.getenv(
                    "GSCREPORTS_INTENT_INITIAL_DELAY", defaults["intent_initial_delay_seconds"]
                )
            ),
            intent_analysis_cap=int(
                os.getenv("GSCREPORTS_INTENT_CAP", defaults["intent_analysis_cap"])
            ),
            post_login_redirect=os.getenv(
                "GSCREPORTS_POST_LOGIN_REDIRECT", defaults["post_login_redirect"]
            ),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets such as the Gemini key out of code for local runs.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        os.environ.setdefault(key.strip(), value)
