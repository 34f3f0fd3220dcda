"""Exception types raised by the reminder pipeline."""
from __future__ import annotations


class ReminderError(Exception):
    """Base class for errors raised inside the reminder pipeline."""


class ConfigurationError(ReminderError, RuntimeError):
    """Raised when application or mail configuration is invalid."""


class DiscoveryError(ReminderError):
    """Raised when events needing reminders cannot be queried."""


class ParticipantLookupError(ReminderError):
    """Raised when the participants of an event cannot be loaded."""

    def __init__(self, event_id: int, message: str | None = None) -> None:
        super().__init__(message or f"Unable to load participants for event {event_id}")
        self.event_id = event_id


class BulkNotificationError(ReminderError):
    """Raised when in-app reminder notifications cannot be written."""

    def __init__(self, event_id: int, message: str | None = None) -> None:
        super().__init__(message or f"Unable to create notifications for event {event_id}")
        self.event_id = event_id


class SendError(ReminderError):
    """Raised when the mail provider rejects or fails to accept a message."""

    def __init__(self, recipient: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"Failed to send email to {recipient}: {message}")
        self.recipient = recipient
        self.status_code = status_code


__all__ = [
    "BulkNotificationError",
    "ConfigurationError",
    "DiscoveryError",
    "ParticipantLookupError",
    "ReminderError",
    "SendError",
]
