"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and the API layer.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from gscreports.ai import AiProvider, AiProviderFactory
from gscreports.analytics import SearchConsoleGateway
from gscreports.caches import ReportCache, SqliteIntentCache
from gscreports.classifier import IntentClassifier
from gscreports.clock import utc_now
from gscreports.config import AppConfig
from gscreports.export import SheetsExporter
from gscreports.locks import build_locks
from gscreports.retry import RetryPolicy
from gscreports.services import (
    ExportService,
    IntentService,
    ReportService,
    SettingsService,
    TokenManager,
    UserService,
)
from gscreports.session import SessionCodec
from gscreports.storage.sqlite_store import SqliteStore
from gscreports.token_codec import TokenCodec


@dataclass(frozen=True)
class AppContext:
    """Summary: Bundle of shared services for the report builder.

    Importance: Services take the user ID per call, so one context serves every request.
    Alternatives: Rebuild services for every request.
    """

    config: AppConfig
    store: SqliteStore
    sessions: SessionCodec
    users: UserService
    settings: SettingsService
    tokens: TokenManager
    reports: ReportService
    classifier: IntentClassifier
    intents: IntentService
    exports: ExportService
    model_name: str


def build_classifier(
    config: AppConfig,
    store: SqliteStore,
    ai_provider: AiProvider,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] = utc_now,
) -> IntentClassifier:
    """Summary: Build the intent classifier from configuration.

    Importance: The provider is created by the caller and injected, never built on import.
    Alternatives: Let the classifier construct its own Gemini client.
    """

    return IntentClassifier(
        provider=ai_provider,
        cache=SqliteIntentCache(
            store=store,
            conditional=config.lock_mode == "conditional",
            clock=clock,
        ),
        retry_policy=RetryPolicy(
            max_retries=config.intent_max_retries,
            initial_delay=config.intent_initial_delay_seconds,
        ),
        batch_size=config.intent_batch_size,
        batch_delay_seconds=config.intent_batch_delay_seconds,
        default_limit=config.intent_analysis_cap,
        sleep=sleep,
        clock=clock,
    )


def build_context(
    config: AppConfig,
    ai_provider: AiProvider | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] = utc_now,
) -> AppContext:
    """Summary: Build shared context from configuration.

    Importance: Provides a single construction path; tests pass a fake provider, sleep, and clock.
    Alternatives: Construct dependencies separately per request.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    if ai_provider is None:
        ai_provider = AiProviderFactory(config).build()
    locks = build_locks(config.lock_mode)
    conditional = config.lock_mode == "conditional"

    tokens = TokenManager(
        store=store,
        codec=TokenCodec(config.token_secret),
        config=config,
        locks=locks,
        clock=clock,
    )
    reports = ReportService(
        store=store,
        tokens=tokens,
        gateway=SearchConsoleGateway(
            config.search_console_base_url,
            config.http_timeout_seconds,
            config.report_row_limit,
        ),
        cache=ReportCache(store, locks, conditional=conditional, clock=clock),
        clock=clock,
    )
    classifier = build_classifier(config, store, ai_provider, sleep=sleep, clock=clock)
    intents = IntentService(
        store=store,
        classifier=classifier,
        intent_cache=classifier.cache,
        reports=reports,
        analysis_cap=config.intent_analysis_cap,
    )
    exports = ExportService(
        tokens=tokens,
        sheets=SheetsExporter(config.sheets_base_url, config.http_timeout_seconds),
        reports=reports,
        intents=intents,
        clock=clock,
    )
    return AppContext(
        config=config,
        store=store,
        sessions=SessionCodec(config.session_secret, config.session_max_age_seconds),
        users=UserService(store=store),
        settings=SettingsService(store=store),
        tokens=tokens,
        reports=reports,
        classifier=classifier,
        intents=intents,
        exports=exports,
        model_name=AiProviderFactory(config).model_name(),
    )
