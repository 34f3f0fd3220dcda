from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import suppress
from datetime import date

from ..config import Config
from ..jobs.scheduler import ReminderScheduler
from ..models import SweepSummary
from ..services.emails import EmailService
from ..services.mailer import MailgunTransport, build_transport, verify_mail_service_configured
from ..services.reminders import ReminderService
from ..storage import ReminderStorage

logger = logging.getLogger(__name__)


class Application:
    """Composition root: builds and owns every long-lived collaborator."""

    def __init__(
        self,
        *,
        config: Config,
        storage: ReminderStorage | None = None,
        transport: MailgunTransport | None = None,
    ) -> None:
        self._config = config
        self._storage = storage or ReminderStorage(config.storage_path)
        self._transport = transport or build_transport(config)
        self._emails = EmailService(self._transport, frontend_url=config.frontend_url)
        self._reminders = ReminderService(
            self._storage,
            self._emails,
            timezone=config.timezone,
            send_timeout=config.mail.timeout,
            concurrency=config.mail.concurrency,
            deduplicate=config.reminder.deduplicate,
        )
        self._scheduler = ReminderScheduler(config=config, reminder_service=self._reminders)
        self._stop_event: asyncio.Event | None = None
        self._closed = False

    @property
    def reminders(self) -> ReminderService:
        return self._reminders

    @property
    def emails(self) -> EmailService:
        return self._emails

    @property
    def storage(self) -> ReminderStorage:
        return self._storage

    async def run(self) -> None:
        try:
            verify_mail_service_configured(self._config)
            self._stop_event = asyncio.Event()
            self._install_signal_handlers()
            await self._scheduler.start()
            await self._stop_event.wait()
        finally:
            with suppress(Exception):
                await self._scheduler.shutdown()
            await self.close()

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def sweep_once(self, *, today: date | None = None, force: bool = False) -> SweepSummary:
        """Manual sweep used by the ``sweep`` command."""

        try:
            verify_mail_service_configured(self._config)
            return await self._scheduler.trigger_now(today=today, force=force)
        finally:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._transport.aclose()
        self._storage.close()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self.stop)
