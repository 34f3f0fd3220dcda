"""Application configuration helpers for the reminder service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigurationError

_logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

DEFAULT_MAILGUN_BASE_URL = "https://api.mailgun.net"
DEFAULT_FRONTEND_URL = "http://localhost:5173"


def _read_int(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigurationError(f"{name} must be an integer") from exc
    if min_value is not None and value < min_value:
        raise ConfigurationError(f"{name} must be >= {min_value}")
    if max_value is not None and value > max_value:
        raise ConfigurationError(f"{name} must be <= {max_value}")
    return value


def _read_float(name: str, default: float, *, min_value: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = float(raw)
        except ValueError as exc:
            raise ConfigurationError(f"{name} must be a number") from exc
    if min_value is not None and value < min_value:
        raise ConfigurationError(f"{name} must be >= {min_value}")
    return value


def _read_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean (true/false)")


def _read_str(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    return value or None


@dataclass(slots=True)
class MailConfig:
    """Credentials and limits for the outbound mail provider."""

    api_key: str | None = None
    domain: str | None = None
    sender: str | None = None
    base_url: str = DEFAULT_MAILGUN_BASE_URL
    timeout: float = 15.0
    concurrency: int = 1

    @property
    def from_address(self) -> str:
        if self.sender:
            return self.sender
        return f"KKMK Events <events@{self.domain or 'localhost'}>"

    def missing_credentials(self) -> tuple[str, ...]:
        missing: list[str] = []
        if not self.api_key:
            missing.append("MAILGUN_API_KEY")
        if not self.domain:
            missing.append("MAILGUN_DOMAIN")
        return tuple(missing)


@dataclass(slots=True)
class ReminderConfig:
    """Daily trigger and sweep behaviour."""

    cron_hour: int = 8
    cron_minute: int = 0
    skip_initial: bool = False
    deduplicate: bool = True


@dataclass(slots=True)
class Config:
    """Container for application configuration."""

    mail: MailConfig
    reminder: ReminderConfig = field(default_factory=ReminderConfig)
    frontend_url: str = DEFAULT_FRONTEND_URL
    environment: str = "development"
    storage_path: Path = Path("data/kkmk.db")
    logs_dir: Path = Path("logs")
    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _load_timezone(name: str | None) -> ZoneInfo:
    if not name:
        name = "UTC"
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        _logger.warning("Unknown timezone %s, falling back to UTC", name)
        return ZoneInfo("UTC")


def _validate_config(config: Config) -> None:
    if config.storage_path.exists() and config.storage_path.is_dir():
        raise ConfigurationError("DB_PATH must point to a file path")
    if not config.frontend_url.startswith(("http://", "https://")):
        raise ConfigurationError("FRONTEND_URL must be an http(s) URL")
    if not config.mail.base_url.startswith(("http://", "https://")):
        raise ConfigurationError("MAILGUN_BASE_URL must be an http(s) URL")


def _log_summary(config: Config) -> None:
    timezone_name = getattr(config.timezone, "key", str(config.timezone))
    missing = config.mail.missing_credentials()
    _logger.info(
        "Configuration loaded: env=%s, db=%s, timezone=%s, daily sweep=%02d:%02d, skip initial=%s, "
        "dedup=%s, mail domain=%s, mail timeout=%.1fs, concurrency=%s, credentials=%s",
        config.environment,
        config.storage_path,
        timezone_name,
        config.reminder.cron_hour,
        config.reminder.cron_minute,
        config.reminder.skip_initial,
        config.reminder.deduplicate,
        config.mail.domain or "-",
        config.mail.timeout,
        config.mail.concurrency,
        "missing " + ", ".join(missing) if missing else "present",
    )


def load_config() -> Config:
    """Load configuration from environment variables.

    Missing mail credentials are not an error here; they are reported by
    :func:`kkmk_reminders.services.mailer.verify_mail_service_configured`
    at startup so that storage-only commands keep working.
    """

    mail = MailConfig(
        api_key=_read_str("MAILGUN_API_KEY"),
        domain=_read_str("MAILGUN_DOMAIN"),
        sender=_read_str("MAIL_FROM"),
        base_url=(_read_str("MAILGUN_BASE_URL") or DEFAULT_MAILGUN_BASE_URL).rstrip("/"),
        timeout=_read_float("MAIL_TIMEOUT", 15.0, min_value=0.1),
        concurrency=_read_int("MAIL_CONCURRENCY", 1, min_value=1),
    )
    reminder = ReminderConfig(
        cron_hour=_read_int("REMINDER_CRON_HOUR", 8, min_value=0, max_value=23),
        cron_minute=_read_int("REMINDER_CRON_MINUTE", 0, min_value=0, max_value=59),
        skip_initial=_read_bool("SKIP_INITIAL_REMINDERS", False),
        deduplicate=_read_bool("REMINDER_DEDUPLICATE", True),
    )

    storage_path = Path(_read_str("DB_PATH") or "data/kkmk.db").expanduser()
    logs_dir = Path(_read_str("LOG_DIR") or "logs").expanduser()
    environment = (_read_str("APP_ENV") or "development").lower()
    frontend_url = (_read_str("FRONTEND_URL") or DEFAULT_FRONTEND_URL).rstrip("/")

    config = Config(
        mail=mail,
        reminder=reminder,
        frontend_url=frontend_url,
        environment=environment,
        storage_path=storage_path,
        logs_dir=logs_dir,
        timezone=_load_timezone(_read_str("TZ")),
    )

    _validate_config(config)
    _log_summary(config)

    return config


__all__ = ["Config", "MailConfig", "ReminderConfig", "load_config"]
