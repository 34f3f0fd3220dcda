"""Daily reminder sweep: discover events, fan out to participants, send emails."""
from __future__ import annotations

import asyncio
import time
from datetime import date, datetime
from typing import Callable, List, Optional, Protocol, Sequence, Set

from zoneinfo import ZoneInfo

from ..logging_config import get_category_logger
from ..models import (
    DeliveryOutcome,
    Event,
    Participant,
    ReminderKind,
    ReminderTarget,
    SweepSummary,
)
from .emails import EmailService

sweep_logger = get_category_logger("sweep")
sent_logger = get_category_logger("reminder_sent")
error_logger = get_category_logger("error")


class ReminderStore(Protocol):
    """Persistence queries consumed by the sweep."""

    def find_events_needing_reminders(self, today: date) -> List[ReminderTarget]: ...

    def list_active_participants(self, event_id: int) -> List[Participant]: ...

    def create_bulk_event_reminders(
        self,
        participants: Sequence[Participant],
        event: Event,
        kind: ReminderKind,
        *,
        notified_on: Optional[date] = None,
    ) -> int: ...

    def sent_reminder_recipients(self, event_id: int, kind: ReminderKind, sent_on: date) -> Set[int]: ...

    def notified_reminder_recipients(self, event_id: int, kind: ReminderKind, notified_on: date) -> Set[int]: ...

    def record_reminder_sent(
        self,
        event_id: int,
        user_id: int,
        kind: ReminderKind,
        sent_on: date,
        *,
        message_id: Optional[str] = None,
    ) -> None: ...


class ReminderService:
    """Run reminder sweeps against a store and an email service.

    Failures never escape :meth:`run_sweep`: each one is logged where it
    happens and counted in the returned :class:`SweepSummary`.
    """

    def __init__(
        self,
        storage: ReminderStore,
        emails: EmailService,
        *,
        timezone: ZoneInfo | None = None,
        send_timeout: float = 15.0,
        concurrency: int = 1,
        deduplicate: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._emails = emails
        self._timezone = timezone or ZoneInfo("UTC")
        self._send_timeout = send_timeout
        self._concurrency = max(1, concurrency)
        self._deduplicate = deduplicate
        self._clock = clock or (lambda: datetime.now(tz=self._timezone))
        self._sweep_lock = asyncio.Lock()

    def today(self) -> date:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(self._timezone)
        return now.date()

    # discovery --------------------------------------------------------
    def discover_events(self, today: date | None = None) -> List[ReminderTarget]:
        """Return events needing a ``week`` or ``day`` reminder, or ``[]`` on failure."""

        targets = self._find_targets(today or self.today())
        return targets if targets is not None else []

    def _find_targets(self, today: date) -> Optional[List[ReminderTarget]]:
        try:
            targets = self._storage.find_events_needing_reminders(today)
        except Exception:
            error_logger.exception("Error finding events for reminders on %s", today.isoformat())
            return None
        sweep_logger.info("Found %s events needing reminders on %s", len(targets), today.isoformat())
        return list(targets)

    def get_active_participants(self, event_id: int) -> List[Participant]:
        participants = self._fetch_participants(event_id)
        return participants if participants is not None else []

    def _fetch_participants(self, event_id: int) -> Optional[List[Participant]]:
        try:
            return list(self._storage.list_active_participants(event_id))
        except Exception:
            error_logger.exception("Error getting participants for event %s", event_id)
            return None

    # sweep ------------------------------------------------------------
    async def run_sweep(self, today: date | None = None, *, force: bool = False) -> SweepSummary:
        """Run one full sweep and return its summary.

        ``force`` ignores the sent-reminder ledger, resending reminders that
        already went out for the same day.
        """

        async with self._sweep_lock:
            today = today or self.today()
            summary = SweepSummary(today=today)
            started = time.monotonic()
            sweep_logger.info("Running event reminder sweep for %s", today.isoformat())

            targets = self._find_targets(today)
            if targets is None:
                summary.discovery_failed = True
                targets = []

            summary.events_found = len(targets)
            for target in targets:
                await self._process_target(target, today, summary, force=force)

            summary.duration = time.monotonic() - started
            sweep_logger.info("Finished event reminder sweep: %s", summary.describe())
            return summary

    async def _process_target(
        self,
        target: ReminderTarget,
        today: date,
        summary: SweepSummary,
        *,
        force: bool,
    ) -> None:
        event = target.event
        sweep_logger.info(
            "Processing %s reminder for event %s - %s", target.kind, event.id, event.title
        )

        participants = self._fetch_participants(event.id)
        if participants is None:
            summary.participant_lookup_failures += 1
            summary.events_skipped += 1
            return
        target.participants = participants
        if not participants:
            sweep_logger.info("No active participants for event %s, skipping", event.id)
            summary.events_skipped += 1
            return

        pending = participants
        to_notify = participants
        if self._deduplicate and not force:
            already_sent = self._ledger_lookup(self._storage.sent_reminder_recipients, target, today)
            pending = [p for p in participants if p.user_id not in already_sent]
            for participant in participants:
                if participant.user_id in already_sent:
                    summary.record(self._outcome(target, participant, "skipped"))
            if not pending:
                sweep_logger.info(
                    "All %s reminders for event %s already sent on %s",
                    target.kind,
                    event.id,
                    today.isoformat(),
                )
                return
            # a recipient whose email failed earlier today already has the in-app notice
            already_notified = self._ledger_lookup(self._storage.notified_reminder_recipients, target, today)
            to_notify = [p for p in pending if p.user_id not in already_notified]

        if to_notify:
            try:
                created = self._storage.create_bulk_event_reminders(
                    to_notify,
                    event,
                    target.kind,
                    notified_on=today if self._deduplicate else None,
                )
            except Exception:
                summary.notification_failures += 1
                error_logger.exception("Failed to create bulk notifications for event %s", event.id)
            else:
                summary.notifications_created += created

        for outcome in await self._send_all(target, pending, today):
            summary.record(outcome)

    def _ledger_lookup(
        self,
        reader: Callable[[int, ReminderKind, date], Set[int]],
        target: ReminderTarget,
        today: date,
    ) -> Set[int]:
        try:
            return set(reader(target.event.id, target.kind, today))
        except Exception:
            error_logger.exception("Unable to read reminder ledger for event %s", target.event.id)
            return set()

    async def _send_all(
        self, target: ReminderTarget, participants: Sequence[Participant], today: date
    ) -> List[DeliveryOutcome]:
        if self._concurrency == 1:
            return [await self._send_one(target, participant, today) for participant in participants]

        semaphore = asyncio.Semaphore(self._concurrency)

        async def bounded(participant: Participant) -> DeliveryOutcome:
            async with semaphore:
                return await self._send_one(target, participant, today)

        return list(await asyncio.gather(*(bounded(p) for p in participants)))

    async def _send_one(self, target: ReminderTarget, participant: Participant, today: date) -> DeliveryOutcome:
        event = target.event
        try:
            message_id = await asyncio.wait_for(
                self._emails.send_event_reminder(
                    participant.email,
                    name=participant.name,
                    event_title=event.title,
                    event_date=event.date,
                    location=event.location,
                    start_time=event.start_time,
                    kind=target.kind,
                ),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            error_logger.error(
                "Timed out sending reminder email to participant %s for event %s after %.1fs",
                participant.user_id,
                event.id,
                self._send_timeout,
            )
            return self._outcome(target, participant, "failed", error="timeout")
        except Exception as exc:
            error_logger.exception(
                "Failed to send reminder email to participant %s for event %s",
                participant.user_id,
                event.id,
            )
            return self._outcome(target, participant, "failed", error=str(exc) or exc.__class__.__name__)

        sent_logger.info(
            "Sent %s reminder email to %s (%s) for event %s",
            target.kind,
            participant.name,
            participant.email,
            event.id,
        )
        if self._deduplicate:
            try:
                self._storage.record_reminder_sent(
                    event.id, participant.user_id, target.kind, today, message_id=message_id or None
                )
            except Exception:
                error_logger.exception(
                    "Unable to record reminder for participant %s of event %s",
                    participant.user_id,
                    event.id,
                )
        return self._outcome(target, participant, "sent", message_id=message_id)

    @staticmethod
    def _outcome(
        target: ReminderTarget,
        participant: Participant,
        status: str,
        *,
        message_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> DeliveryOutcome:
        return DeliveryOutcome(
            event_id=target.event.id,
            user_id=participant.user_id,
            email=participant.email,
            kind=target.kind,
            status=status,  # type: ignore[arg-type]
            message_id=message_id,
            error=error,
        )


__all__ = ["ReminderService", "ReminderStore"]
