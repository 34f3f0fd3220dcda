"""Command line entry point for the project."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
from datetime import date
from typing import Sequence

from dotenv import load_dotenv

from .config import Config, load_config
from .core.application import Application
from .errors import ConfigurationError
from .logging_config import get_category_logger, setup_logging
from .services.mailer import verify_mail_service_configured
from .storage import ReminderStorage

_LOGGER = logging.getLogger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="KKMK event reminder service")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Start the daily reminder scheduler (default)")
    run_parser.set_defaults(command="run")

    sweep_parser = subparsers.add_parser("sweep", help="Run one reminder sweep now and exit")
    sweep_parser.add_argument("--date", type=_parse_date, default=None, help="Treat this day as today")
    sweep_parser.add_argument(
        "--force", action="store_true", help="Resend reminders already sent for the same day"
    )
    sweep_parser.set_defaults(command="sweep")

    check_parser = subparsers.add_parser("check-mail", help="Verify mail configuration and exit")
    check_parser.set_defaults(command="check-mail")

    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations and exit")
    migrate_parser.add_argument(
        "--target", type=int, default=None, help="Schema version to move to (default: latest)"
    )
    migrate_parser.set_defaults(command="migrate")

    parser.set_defaults(command="run")
    return parser


def _run_migrations(config: Config, target: int | None = None) -> int:
    schema_logger = get_category_logger("schema")
    schema_logger.info("Ensuring schema for %s", config.storage_path)
    with ReminderStorage(config.storage_path) as storage:
        try:
            version = storage.migrate(target)
        except ValueError as exc:
            schema_logger.error("%s", exc)
            return 1
        schema_logger.info("Database ready at %s (version %s)", storage.path, version)
    return 0


def _check_mail(config: Config) -> int:
    verify_mail_service_configured(config)
    print(f"Mail service configured for {config.mail.domain} (from: {config.mail.from_address})")
    return 0


def _run_sweep(config: Config, args: argparse.Namespace) -> int:
    app = Application(config=config)
    summary = asyncio.run(app.sweep_once(today=args.date, force=args.force))
    print(summary.describe())
    for outcome in summary.failures:
        print(f"  failed: event={outcome.event_id} user={outcome.user_id} <{outcome.email}>: {outcome.error}")
    return 0 if summary.ok else 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    load_dotenv()
    setup_logging(os.getenv("LOG_DIR") or "logs")

    try:
        config = load_config()
        if args.command == "migrate":
            return _run_migrations(config, args.target)
        if args.command == "check-mail":
            return _check_mail(config)
        if args.command == "sweep":
            return _run_sweep(config, args)
        asyncio.run(Application(config=config).run())
    except ConfigurationError as exc:
        _LOGGER.error("Configuration error: %s", exc)
        return 1
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted, shutting down")
    return 0


__all__ = ["main"]
