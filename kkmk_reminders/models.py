"""Domain models for events, participants and reminder sweeps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Tuple

ReminderKind = Literal["week", "day"]
OutcomeStatus = Literal["sent", "failed", "skipped"]

EVENT_OPEN = "OPEN"
EVENT_CLOSED = "CLOSED"

PARTICIPANT_ACTIVE = "ACTIVE"

#: Days before the event date mapped to the reminder kind sent on that day.
REMINDER_OFFSETS: Dict[int, ReminderKind] = {7: "week", 1: "day"}

NOTIFICATION_TYPE_EVENT_REMINDER = "event_reminder"


def reminder_kind_for(event_date: date, today: date) -> Optional[ReminderKind]:
    """Return the reminder kind due ``today`` for an event, if any."""

    if event_date <= today:
        return None
    return REMINDER_OFFSETS.get((event_date - today).days)


@dataclass(slots=True)
class Event:
    """Read-only view of an event as seen by the reminder pipeline."""

    id: int
    title: str
    date: date
    location: Optional[str] = None
    start_time: Optional[str] = None
    status: str = EVENT_OPEN


@dataclass(slots=True)
class Participant:
    """An enrolled user that should receive reminders for an event."""

    user_id: int
    name: str
    email: str


@dataclass(slots=True)
class ReminderTarget:
    """One event that needs a reminder today, plus its resolved recipients."""

    event: Event
    kind: ReminderKind
    participants: List[Participant] = field(default_factory=list)


@dataclass(slots=True)
class Notification:
    """In-app notification row."""

    id: int
    user_id: int
    type: str
    content: str
    related_id: Optional[int] = None
    actor_name: Optional[str] = None
    requires_confirmation: bool = False
    read: bool = False
    created_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class EmailMessage:
    """A composed email ready to be handed to the mail transport."""

    to: str
    subject: str
    html: str
    sender_name: Optional[str] = None
    tags: Tuple[str, ...] = ()


@dataclass(slots=True)
class DeliveryOutcome:
    """Result of one reminder email attempt."""

    event_id: int
    user_id: int
    email: str
    kind: ReminderKind
    status: OutcomeStatus
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(slots=True)
class SweepSummary:
    """Aggregated counters for one reminder sweep."""

    today: date
    events_found: int = 0
    events_skipped: int = 0
    participant_lookup_failures: int = 0
    notifications_created: int = 0
    notification_failures: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    emails_skipped: int = 0
    discovery_failed: bool = False
    duration: float = 0.0
    outcomes: List[DeliveryOutcome] = field(default_factory=list)

    def record(self, outcome: DeliveryOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status == "sent":
            self.emails_sent += 1
        elif outcome.status == "failed":
            self.emails_failed += 1
        else:
            self.emails_skipped += 1

    @property
    def failures(self) -> List[DeliveryOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == "failed"]

    @property
    def ok(self) -> bool:
        return not (
            self.discovery_failed
            or self.participant_lookup_failures
            or self.notification_failures
            or self.emails_failed
        )

    def describe(self) -> str:
        return (
            f"date={self.today.isoformat()} events={self.events_found} "
            f"skipped_events={self.events_skipped} lookup_failures={self.participant_lookup_failures} "
            f"notifications={self.notifications_created} notification_failures={self.notification_failures} "
            f"sent={self.emails_sent} failed={self.emails_failed} duplicates={self.emails_skipped} "
            f"duration={self.duration:.2f}s"
        )


__all__ = [
    "DeliveryOutcome",
    "EVENT_CLOSED",
    "EVENT_OPEN",
    "EmailMessage",
    "Event",
    "NOTIFICATION_TYPE_EVENT_REMINDER",
    "Notification",
    "OutcomeStatus",
    "PARTICIPANT_ACTIVE",
    "Participant",
    "REMINDER_OFFSETS",
    "ReminderKind",
    "ReminderTarget",
    "SweepSummary",
    "reminder_kind_for",
]
