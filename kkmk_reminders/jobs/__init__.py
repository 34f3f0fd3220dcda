"""Scheduled jobs."""
from .scheduler import ReminderScheduler, should_run_startup_sweep

__all__ = ["ReminderScheduler", "should_run_startup_sweep"]
