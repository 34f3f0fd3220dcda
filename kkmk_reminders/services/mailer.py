"""Outbound mail transport backed by the Mailgun HTTP API."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import Config, MailConfig
from ..errors import ConfigurationError, SendError
from ..models import EmailMessage

_logger = logging.getLogger(__name__)

_transporter: Optional["MailgunTransport"] = None


class MailgunTransport:
    """Reusable client that hands composed messages to Mailgun.

    Construction never talks to the network and does not validate the
    credentials; see :func:`verify_mail_service_configured`.
    """

    def __init__(
        self,
        config: MailConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            auth=("api", config.api_key or ""),
            timeout=httpx.Timeout(config.timeout),
        )

    @property
    def from_address(self) -> str:
        return self._config.from_address

    def _messages_url(self) -> str:
        return f"/v3/{self._config.domain}/messages"

    async def send(self, message: EmailMessage) -> str:
        """Send ``message`` and return the provider's message id."""

        data: dict[str, object] = {
            "from": self._sender_for(message),
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.tags:
            data["o:tag"] = list(message.tags)
        try:
            response = await self._client.post(self._messages_url(), data=data)
        except httpx.TimeoutException as exc:
            raise SendError(message.to, f"timed out after {self._config.timeout:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise SendError(message.to, str(exc) or exc.__class__.__name__) from exc

        if response.status_code >= 400:
            raise SendError(
                message.to,
                f"provider returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = {}
        message_id = str(payload.get("id") or "")
        _logger.debug("Mail accepted for %s (id=%s)", message.to, message_id or "-")
        return message_id

    def _sender_for(self, message: EmailMessage) -> str:
        if message.sender_name and self._config.domain and not self._config.sender:
            return f"{message.sender_name} <events@{self._config.domain}>"
        return self._config.from_address

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def verify_mail_service_configured(config: Config | MailConfig) -> None:
    """Raise :class:`ConfigurationError` when mail credentials are missing."""

    mail = config.mail if isinstance(config, Config) else config
    missing = mail.missing_credentials()
    if missing:
        raise ConfigurationError(
            "Mail service is not configured; missing environment variables: " + ", ".join(missing)
        )
    _logger.info("Mail service configured for domain %s", mail.domain)


def build_transport(config: Config | MailConfig) -> MailgunTransport:
    mail = config.mail if isinstance(config, Config) else config
    return MailgunTransport(mail)


def get_transporter(config: Config | MailConfig) -> MailgunTransport:
    """Return the process-wide transport, constructing it on first use.

    The application wires its own transport through
    :class:`kkmk_reminders.core.application.Application`; this helper exists
    for one-off scripts that have no composition root.
    """

    global _transporter
    if _transporter is None:
        _logger.debug("Creating shared mail transport")
        _transporter = build_transport(config)
    return _transporter


def reset_transporter() -> None:
    global _transporter
    _transporter = None


__all__ = [
    "MailgunTransport",
    "build_transport",
    "get_transporter",
    "reset_transporter",
    "verify_mail_service_configured",
]
