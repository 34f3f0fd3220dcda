"""Event reminder scheduler and mail dispatch for the KKMK volunteer platform."""

from .models import ReminderTarget, SweepSummary
from .services.reminders import ReminderService

__all__ = ["ReminderService", "ReminderTarget", "SweepSummary"]
