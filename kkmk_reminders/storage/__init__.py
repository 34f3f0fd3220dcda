"""Public interface for the storage package."""
from .migrations import MIGRATIONS
from .repository import ReminderStorage

__all__ = ["MIGRATIONS", "ReminderStorage"]
