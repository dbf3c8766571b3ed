"""Summary: Command-line interface for the GSC report builder.

Importance: Runs the API server and offers offline intent classification from a terminal.
Alternatives: Use a CLI framework like Typer or Click.
"""

from __future__ import annotations

import argparse
import logging

from gscreports.app import build_context
from gscreports.classifier import PER_ITEM, SINGLE_PROMPT
from gscreports.config import AppConfig
from gscreports.oauth import build_google_auth_url, create_state_token


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="GSC Report Builder CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)

    classify = subparsers.add_parser("classify", help="Classify search queries by intent")
    classify.add_argument("queries", nargs="+", type=str)
    classify.add_argument(
        "--single-prompt",
        action="store_true",
        help="Send every query in one prompt without the analysis cap",
    )
    classify.add_argument("--force", action="store_true", help="Re-analyze cached queries")

    subparsers.add_parser("auth-url", help="Print a Google sign-in URL")
    return parser


def run_cli(argv: list[str] | None = None) -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives local workflows without the dashboard.
    Alternatives: Invoke services via the HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()

    if args.command == "serve":
        import uvicorn

        from gscreports.api import create_app

        uvicorn.run(
            create_app(config),
            host=args.host or config.api_host,
            port=args.port or config.api_port,
        )
        return

    if args.command == "classify":
        context = build_context(config)
        if args.single_prompt:
            result = context.classifier.analyze(args.queries, mode=SINGLE_PROMPT, limit=None, force=args.force)
        else:
            result = context.classifier.analyze(args.queries, mode=PER_ITEM, force=args.force)
        for record in result.results:
            keywords = ", ".join(record.main_keywords)
            marker = f" [{record.error}]" if record.error else ""
            print(f"{record.query}: {record.intent} / {record.category} / {record.funnel_stage} ({keywords}){marker}")
        print(f"{result.cached} cached, {result.analyzed} analyzed, {result.remaining} remaining.")
        return

    if args.command == "auth-url":
        print(build_google_auth_url(config, create_state_token()))
        return


if __name__ == "__main__":
    run_cli()
