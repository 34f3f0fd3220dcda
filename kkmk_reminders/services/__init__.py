"""Mail and reminder services."""
from .emails import EmailService
from .mailer import MailgunTransport, verify_mail_service_configured
from .reminders import ReminderService

__all__ = ["EmailService", "MailgunTransport", "ReminderService", "verify_mail_service_configured"]
