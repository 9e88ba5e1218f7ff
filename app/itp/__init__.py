"""
ITP Tracker Reminders Module
Inspection-expiry reminders over SMS and email, with a send ledger and a
daily scheduler.
"""
from .dispatcher import NotificationDispatcher
from .engine import ReminderJob
from .models import init_itp_schema
from .routes import register_itp_routes
from .scheduler_jobs import ReminderScheduler, cleanup_old_notifications

__all__ = [
    "NotificationDispatcher",
    "ReminderJob",
    "ReminderScheduler",
    "cleanup_old_notifications",
    "init_itp_schema",
    "register_itp_routes",
]
