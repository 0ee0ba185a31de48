"""Database package."""

from .db import Database, default_database_url
from .models import Snapshot, Lease, PendingCommand, FocusStats, Completion, DailyStats
from .store import SnapshotStore, LeaseInfo, QueuedCommand, SESSION_KEY, SETTINGS_KEY

__all__ = [
    "Database",
    "default_database_url",
    "Snapshot",
    "Lease",
    "PendingCommand",
    "FocusStats",
    "Completion",
    "DailyStats",
    "SnapshotStore",
    "LeaseInfo",
    "QueuedCommand",
    "SESSION_KEY",
    "SETTINGS_KEY",
]
