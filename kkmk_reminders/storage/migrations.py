"""Database migrations for the storage layer."""
from __future__ import annotations

import sqlite3
from typing import Callable, NamedTuple, Tuple


class Migration(NamedTuple):
    version: int
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Callable[[sqlite3.Connection], None]


def _upgrade_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL DEFAULT 'volunteer',
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            date TEXT NOT NULL,
            location TEXT,
            start_time TEXT,
            status TEXT NOT NULL DEFAULT 'OPEN' CHECK(status IN ('OPEN', 'CLOSED')),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS event_participants (
            event_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING',
            joined_at TEXT NOT NULL,
            PRIMARY KEY (event_id, user_id),
            FOREIGN KEY(event_id) REFERENCES events(id) ON DELETE CASCADE,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            content TEXT NOT NULL,
            related_id INTEGER,
            actor_name TEXT,
            requires_confirmation INTEGER NOT NULL DEFAULT 0,
            read INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_events_date ON events(date)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at)"
    )


def _downgrade_v1(conn: sqlite3.Connection) -> None:
    conn.execute("DROP INDEX IF EXISTS idx_notifications_user")
    conn.execute("DROP INDEX IF EXISTS idx_events_date")
    conn.execute("DROP TABLE IF EXISTS notifications")
    conn.execute("DROP TABLE IF EXISTS event_participants")
    conn.execute("DROP TABLE IF EXISTS events")
    conn.execute("DROP TABLE IF EXISTS users")


def _upgrade_v2(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS reminder_log (
            event_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            kind TEXT NOT NULL CHECK(kind IN ('week', 'day')),
            sent_on TEXT NOT NULL,
            sent_at TEXT NOT NULL,
            message_id TEXT,
            PRIMARY KEY (event_id, user_id, kind, sent_on),
            FOREIGN KEY(event_id) REFERENCES events(id) ON DELETE CASCADE
        )
        """
    )


def _downgrade_v2(conn: sqlite3.Connection) -> None:
    conn.execute("DROP TABLE IF EXISTS reminder_log")


def _upgrade_v3(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS reminder_notification_log (
            event_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            kind TEXT NOT NULL CHECK(kind IN ('week', 'day')),
            notified_on TEXT NOT NULL,
            PRIMARY KEY (event_id, user_id, kind, notified_on),
            FOREIGN KEY(event_id) REFERENCES events(id) ON DELETE CASCADE
        )
        """
    )


def _downgrade_v3(conn: sqlite3.Connection) -> None:
    conn.execute("DROP TABLE IF EXISTS reminder_notification_log")


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(version=1, upgrade=_upgrade_v1, downgrade=_downgrade_v1),
    Migration(version=2, upgrade=_upgrade_v2, downgrade=_downgrade_v2),
    Migration(version=3, upgrade=_upgrade_v3, downgrade=_downgrade_v3),
)


__all__ = ["MIGRATIONS", "Migration"]
