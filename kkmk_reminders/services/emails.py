"""Email composition and dispatch.

Every ``compose_*`` function is pure: the same arguments always yield the
same :class:`EmailMessage`, so reminders can be rendered in tests without a
transport.
"""
from __future__ import annotations

import logging
from datetime import date, time
from html import escape
from typing import Any, Callable, Dict, Literal, Optional, Protocol

from ..models import EmailMessage, ReminderKind
from ..storage.utils import parse_date

_logger = logging.getLogger(__name__)

ParticipationStatus = Literal["pending", "approved", "rejected", "removed"]

SUPPORT_SENDER = "KKMK Support"
EVENTS_SENDER = "KKMK Events"

_BRAND_COLOUR = "#ff4015"
_ACCOUNT_COLOUR = "#4CAF50"

_REMINDER_SUBJECT_SUFFIX: Dict[str, str] = {
    "week": "is coming up in one week",
    "day": "is tomorrow",
}
_REMINDER_DEADLINE: Dict[str, str] = {
    "week": "starts in 7 days",
    "day": "starts tomorrow",
}


class MailTransport(Protocol):
    async def send(self, message: EmailMessage) -> str:  # pragma: no cover - interface method
        ...


def format_event_date(value: date | str) -> str:
    """Render a date as ``Monday, January 8, 2024``."""

    day = parse_date(value)
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def format_time(value: Optional[str]) -> str:
    """Convert ``HH:MM[:SS]`` to a 12-hour clock string such as ``2:30 PM``.

    Anything that is not a clock time yields ``""`` so callers can show
    their own placeholder instead.
    """

    if not value:
        return ""
    try:
        parsed = time.fromisoformat(str(value).strip())
    except ValueError:
        _logger.warning("Unrecognised start time %r, leaving it out", value)
        return ""
    suffix = "PM" if parsed.hour >= 12 else "AM"
    return f"{parsed.hour % 12 or 12}:{parsed.minute:02d} {suffix}"


def _button(url: str, label: str, colour: str) -> str:
    return (
        '<div style="text-align: center; margin: 30px 0;">'
        f'<a href="{escape(url)}" style="background-color: {colour}; color: white; '
        "padding: 12px 25px; text-decoration: none; border-radius: 5px; font-weight: bold;\">"
        f"{escape(label)}</a></div>"
    )


def _layout(body: str, footer: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"{body}"
        '<hr style="border: 1px solid #eee; margin: 20px 0;">'
        f'<p style="color: #666; font-size: 12px;">{escape(footer)}</p>'
        "</div>"
    )


def _link_email(
    *,
    to: str,
    subject: str,
    heading: str,
    intro: str,
    url: str,
    button: str,
    expiry: str,
    footer: str,
) -> EmailMessage:
    body = (
        f'<h1 style="color: #333;">{escape(heading)}</h1>'
        f"<p>{escape(intro)}</p>"
        f"{_button(url, button, _ACCOUNT_COLOUR)}"
        "<p>Or copy and paste this link in your browser:</p>"
        f'<p style="color: #666;">{escape(url)}</p>'
        f"<p>{escape(expiry)}</p>"
    )
    return EmailMessage(
        to=to,
        subject=subject,
        html=_layout(body, footer),
        sender_name=SUPPORT_SENDER,
        tags=("account",),
    )


def compose_verification_email(to: str, token: str, *, frontend_url: str) -> EmailMessage:
    url = f"{frontend_url}/verify-email/{token}"
    return _link_email(
        to=to,
        subject="Verify Your KKMK Account",
        heading="Welcome to KKMK!",
        intro="Thank you for registering. Please verify your email address by clicking the button below:",
        url=url,
        button="Verify Email Address",
        expiry="This link will expire in 24 hours.",
        footer="If you didn't create an account, please ignore this email.",
    )


def compose_password_reset_email(to: str, token: str, *, frontend_url: str) -> EmailMessage:
    url = f"{frontend_url}/reset-password/{token}"
    return _link_email(
        to=to,
        subject="Reset Your KKMK Password",
        heading="Password Reset Request",
        intro="You requested to reset your password. Click the button below to reset it:",
        url=url,
        button="Reset Password",
        expiry="This link will expire in 1 hour.",
        footer="If you didn't request this, please ignore this email.",
    )


def compose_event_reminder(
    to: str,
    name: str,
    event_title: str,
    event_date: date | str,
    location: Optional[str],
    start_time: Optional[str],
    kind: ReminderKind,
    *,
    frontend_url: str,
) -> EmailMessage:
    """Compose the reminder sent 7 days (``week``) or 1 day (``day``) ahead."""

    if kind not in _REMINDER_SUBJECT_SUFFIX:
        raise ValueError(f"Unknown reminder kind: {kind!r}")
    time_text = format_time(start_time) or "Check event details for time"
    deadline = _REMINDER_DEADLINE[kind]
    body = (
        f'<h1 style="color: #333;">Hello {escape(name)}!</h1>'
        "<p>We're sending you a friendly reminder that you're registered for an upcoming event. "
        f"<strong>{escape(event_title)}</strong> {deadline}.</p>"
        '<div style="background-color: #f9f9f9; padding: 15px; border-radius: 8px; margin: 20px 0;">'
        f'<h2 style="color: {_BRAND_COLOUR}; margin-top: 0;">{escape(event_title)}</h2>'
        f"<p><strong>Date:</strong> {escape(format_event_date(event_date))}</p>"
        f"<p><strong>Time:</strong> {escape(time_text)}</p>"
        f"<p><strong>Location:</strong> {escape(location or 'To be announced')}</p>"
        "</div>"
        "<p>We look forward to seeing you there!</p>"
        f"{_button(f'{frontend_url}/events', 'View Event Details', _BRAND_COLOUR)}"
        "<p>Thank you for volunteering with KKMK!</p>"
    )
    return EmailMessage(
        to=to,
        subject=f'Reminder: Your event "{event_title}" {_REMINDER_SUBJECT_SUFFIX[kind]}!',
        html=_layout(body, "This is an automated reminder. Please do not reply to this message."),
        sender_name=EVENTS_SENDER,
        tags=("event-reminder", kind),
    )


def compose_participation_update(
    to: str,
    name: str,
    event_title: str,
    status: ParticipationStatus,
    *,
    frontend_url: str,
    event_date: date | str | None = None,
    reason: Optional[str] = None,
) -> EmailMessage:
    """Compose the notice sent when an enrolment changes state."""

    title = escape(event_title)
    if status == "pending":
        when = f" on <strong>{escape(format_event_date(event_date))}</strong>" if event_date else ""
        subject = f'Your participation request for "{event_title}" is pending approval'
        heading = f"Thank you, {escape(name)}!"
        paragraphs = [
            f"Your request to join the event <strong>\"{title}\"</strong>{when} has been received.",
            'Your participation is currently <strong style="color: #FF9800;">pending approval</strong> '
            "from our administrators.",
            "We'll notify you once your request has been reviewed. This usually takes 1-2 business days.",
        ]
    elif status == "approved":
        subject = f'Your participation in "{event_title}" has been approved!'
        heading = f"Great news, {escape(name)}!"
        paragraphs = [
            f"Your request to join <strong>\"{title}\"</strong> has been approved.",
            "We will send you a reminder one week and one day before the event.",
        ]
    elif status in ("rejected", "removed"):
        subject = f'Update on your participation in "{event_title}"'
        heading = f"Hello {escape(name)},"
        action = (
            "we were unable to approve your request to join"
            if status == "rejected"
            else "you have been removed from the participant list of"
        )
        paragraphs = [f"Unfortunately, {action} <strong>\"{title}\"</strong>."]
        if reason:
            paragraphs.append(f"<strong>Reason:</strong> {escape(reason)}")
        paragraphs.append("Please browse our other events, we would love to have you join us.")
    else:
        raise ValueError(f"Unknown participation status: {status!r}")

    body = f'<h1 style="color: #333;">{heading}</h1>' + "".join(f"<p>{p}</p>" for p in paragraphs)
    body += _button(f"{frontend_url}/events", "View All Events", _ACCOUNT_COLOUR)
    return EmailMessage(
        to=to,
        subject=subject,
        html=_layout(body, "This is an automated email. Please do not reply to this message."),
        sender_name=EVENTS_SENDER,
        tags=("participation", status),
    )


class EmailService:
    """Compose messages by kind and hand them to the injected transport."""

    def __init__(self, transport: MailTransport, *, frontend_url: str) -> None:
        self._transport = transport
        self._frontend_url = frontend_url.rstrip("/")
        self._composers: Dict[str, Callable[..., EmailMessage]] = {
            "event_reminder": compose_event_reminder,
            "verification": compose_verification_email,
            "password_reset": compose_password_reset_email,
            "participation_update": compose_participation_update,
        }

    def compose(self, kind: str, recipient: str, /, **template_data: Any) -> EmailMessage:
        composer = self._composers.get(kind)
        if composer is None:
            raise ValueError(f"Unknown email kind: {kind!r}")
        return composer(recipient, frontend_url=self._frontend_url, **template_data)

    async def compose_and_send(self, kind: str, recipient: str, /, **template_data: Any) -> str:
        """Compose a ``kind`` email for ``recipient`` and return the message id.

        :class:`kkmk_reminders.errors.SendError` from the transport propagates
        to the caller.
        """

        message = self.compose(kind, recipient, **template_data)
        message_id = await self._transport.send(message)
        _logger.info("Sent %s email to %s (id=%s)", kind, recipient, message_id or "-")
        return message_id

    async def send_event_reminder(
        self,
        recipient: str,
        *,
        name: str,
        event_title: str,
        event_date: date | str,
        location: Optional[str],
        start_time: Optional[str],
        kind: ReminderKind,
    ) -> str:
        return await self.compose_and_send(
            "event_reminder",
            recipient,
            name=name,
            event_title=event_title,
            event_date=event_date,
            location=location,
            start_time=start_time,
            kind=kind,
        )


__all__ = [
    "EmailService",
    "MailTransport",
    "compose_event_reminder",
    "compose_participation_update",
    "compose_password_reset_email",
    "compose_verification_email",
    "format_event_date",
    "format_time",
]
