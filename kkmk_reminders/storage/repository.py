"""SQLite-backed storage for events, enrolments and notifications."""
from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Set

from ..errors import BulkNotificationError, DiscoveryError, ParticipantLookupError
from ..logging_config import get_category_logger
from ..models import (
    EVENT_OPEN,
    NOTIFICATION_TYPE_EVENT_REMINDER,
    PARTICIPANT_ACTIVE,
    REMINDER_OFFSETS,
    Event,
    Notification,
    Participant,
    ReminderKind,
    ReminderTarget,
    reminder_kind_for,
)
from .migrations import MIGRATIONS
from .utils import normalize_start_time, parse_date, utcnow

_logger = logging.getLogger(__name__)

__all__ = ["ReminderStorage"]


def _reminder_content(event: Event, kind: ReminderKind) -> str:
    if kind == "week":
        return f'📅 Reminder: "{event.title}" is coming up in one week ({event.date:%B %d, %Y}).'
    return f'⏰ Reminder: "{event.title}" is tomorrow ({event.date:%B %d, %Y}).'


class ReminderStorage:
    """SQLite-backed storage implementation."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.execute("PRAGMA foreign_keys = ON")
        self._apply_migrations()

    def __enter__(self) -> "ReminderStorage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # schema
    def _log_schema_change(self, message: str, *args: Any) -> None:
        get_category_logger("schema").info(message, *args)

    def _get_schema_version(self) -> int:
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)"
            )
            row = self._conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._conn.execute("INSERT INTO schema_version (version) VALUES (0)")
                return 0
            return int(row[0])

    def _set_schema_version(self, version: int) -> None:
        self._conn.execute("UPDATE schema_version SET version = ?", (version,))

    def _apply_migrations(self, target: Optional[int] = None) -> int:
        latest = MIGRATIONS[-1].version if MIGRATIONS else 0
        if target is None:
            target = latest
        if not 0 <= target <= latest:
            raise ValueError(f"Schema version must be between 0 and {latest}, got {target}")
        with self._lock:
            current = self._get_schema_version()
            if current < target:
                for migration in MIGRATIONS:
                    if current < migration.version <= target:
                        self._log_schema_change("Applying migration %s", migration.version)
                        with self._conn:
                            migration.upgrade(self._conn)
                            self._set_schema_version(migration.version)
                        current = migration.version
                self._log_schema_change("Schema migrated to version %s at %s", target, self._path)
            elif current > target:
                for migration in reversed(MIGRATIONS):
                    if target < migration.version <= current:
                        self._log_schema_change("Reverting migration %s", migration.version)
                        with self._conn:
                            migration.downgrade(self._conn)
                            self._set_schema_version(migration.version - 1)
                        current = migration.version - 1
                self._log_schema_change("Schema downgraded to version %s at %s", target, self._path)
            return current

    def migrate(self, target: Optional[int] = None) -> int:
        """Move the schema to ``target`` (latest when omitted), up or down."""

        return self._apply_migrations(target)

    def schema_version(self) -> int:
        with self._lock:
            return self._get_schema_version()

    # ------------------------------------------------------------------
    # reminder queries
    def find_events_needing_reminders(self, today: date) -> List[ReminderTarget]:
        """Return ``OPEN`` events dated exactly 7 or 1 days after ``today``."""

        offsets = sorted(REMINDER_OFFSETS)
        placeholders = ", ".join("?" for _ in offsets)
        sql = f"""
            SELECT e.id, e.title, e.date, e.location, e.start_time, e.status
            FROM events e
            WHERE e.status = ?
              AND CAST(julianday(date(e.date)) - julianday(?) AS INTEGER) IN ({placeholders})
            ORDER BY date(e.date), e.id
        """
        params = [EVENT_OPEN, today.isoformat(), *offsets]
        try:
            with self._lock, self._conn:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise DiscoveryError(f"Unable to query events needing reminders: {exc}") from exc
        targets: List[ReminderTarget] = []
        for row in rows:
            event = self._row_to_event(row)
            kind = reminder_kind_for(event.date, today)
            if kind is not None:
                targets.append(ReminderTarget(event=event, kind=kind))
        return targets

    def list_active_participants(self, event_id: int) -> List[Participant]:
        sql = """
            SELECT u.id, u.name, u.email
            FROM event_participants ep
            JOIN users u ON ep.user_id = u.id
            WHERE ep.event_id = ? AND ep.status = ?
            ORDER BY u.id
        """
        try:
            with self._lock, self._conn:
                rows = self._conn.execute(sql, (int(event_id), PARTICIPANT_ACTIVE)).fetchall()
        except sqlite3.Error as exc:
            raise ParticipantLookupError(event_id, f"Unable to load participants for event {event_id}: {exc}") from exc
        return [Participant(user_id=int(row["id"]), name=row["name"], email=row["email"]) for row in rows]

    def create_bulk_event_reminders(
        self,
        participants: Sequence[Participant],
        event: Event,
        kind: ReminderKind,
        *,
        notified_on: Optional[date] = None,
    ) -> int:
        """Insert one ``event_reminder`` notification per participant in one transaction.

        With ``notified_on`` the recipients are also written to the
        notification ledger inside the same transaction, see
        :meth:`notified_reminder_recipients`.
        """

        if not participants:
            return 0
        created_at = utcnow()
        content = _reminder_content(event, kind)
        rows = [
            (
                participant.user_id,
                NOTIFICATION_TYPE_EVENT_REMINDER,
                content,
                event.id,
                "System",
                1,
                created_at,
            )
            for participant in participants
        ]
        try:
            with self._lock, self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO notifications (
                        user_id, type, content, related_id, actor_name,
                        requires_confirmation, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                if notified_on is not None:
                    self._conn.executemany(
                        """
                        INSERT OR IGNORE INTO reminder_notification_log (event_id, user_id, kind, notified_on)
                        VALUES (?, ?, ?, ?)
                        """,
                        [(event.id, p.user_id, kind, notified_on.isoformat()) for p in participants],
                    )
        except sqlite3.Error as exc:
            raise BulkNotificationError(event.id, f"Unable to create notifications for event {event.id}: {exc}") from exc
        get_category_logger("notification").info(
            "Created %s %s reminder notifications for event %s", len(rows), kind, event.id
        )
        return len(rows)

    def list_notifications(self, user_id: int, *, limit: int = 20) -> List[Notification]:
        with self._lock, self._conn:
            rows = self._conn.execute(
                "SELECT * FROM notifications WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (int(user_id), int(limit)),
            ).fetchall()
        return [self._row_to_notification(row) for row in rows]

    # ------------------------------------------------------------------
    # sent reminder ledger
    def sent_reminder_recipients(self, event_id: int, kind: ReminderKind, sent_on: date) -> Set[int]:
        with self._lock, self._conn:
            rows = self._conn.execute(
                "SELECT user_id FROM reminder_log WHERE event_id = ? AND kind = ? AND sent_on = ?",
                (int(event_id), kind, sent_on.isoformat()),
            ).fetchall()
        return {int(row["user_id"]) for row in rows}

    def notified_reminder_recipients(self, event_id: int, kind: ReminderKind, notified_on: date) -> Set[int]:
        with self._lock, self._conn:
            rows = self._conn.execute(
                """
                SELECT user_id FROM reminder_notification_log
                WHERE event_id = ? AND kind = ? AND notified_on = ?
                """,
                (int(event_id), kind, notified_on.isoformat()),
            ).fetchall()
        return {int(row["user_id"]) for row in rows}

    def record_reminder_sent(
        self,
        event_id: int,
        user_id: int,
        kind: ReminderKind,
        sent_on: date,
        *,
        message_id: Optional[str] = None,
    ) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT OR IGNORE INTO reminder_log (event_id, user_id, kind, sent_on, sent_at, message_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (int(event_id), int(user_id), kind, sent_on.isoformat(), utcnow(), message_id),
            )

    # ------------------------------------------------------------------
    # write helpers used by seeding and administration
    def add_user(self, *, name: str, email: str, role: str = "volunteer") -> int:
        with self._lock, self._conn:
            cur = self._conn.execute(
                "INSERT INTO users (name, email, role, created_at) VALUES (?, ?, ?, ?)",
                (name, email, role, utcnow()),
            )
        return int(cur.lastrowid)

    def create_event(
        self,
        *,
        title: str,
        event_date: date | datetime,
        location: Optional[str] = None,
        start_time: Any = None,
        status: str = EVENT_OPEN,
    ) -> Event:
        normalized_date = parse_date(event_date)
        normalized_time = normalize_start_time(start_time)
        now = utcnow()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO events (title, date, location, start_time, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (title, normalized_date.isoformat(), location, normalized_time, status, now, now),
            )
        return Event(
            id=int(cur.lastrowid),
            title=title,
            date=normalized_date,
            location=location,
            start_time=normalized_time,
            status=status,
        )

    def set_event_status(self, event_id: int, status: str) -> bool:
        with self._lock, self._conn:
            cur = self._conn.execute(
                "UPDATE events SET status = ?, updated_at = ? WHERE id = ?",
                (status, utcnow(), int(event_id)),
            )
        return cur.rowcount > 0

    def add_participant(self, event_id: int, user_id: int, *, status: str = PARTICIPANT_ACTIVE) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO event_participants (event_id, user_id, status, joined_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(event_id, user_id) DO UPDATE SET status = excluded.status
                """,
                (int(event_id), int(user_id), status, utcnow()),
            )

    def add_participants(self, event_id: int, user_ids: Iterable[int], *, status: str = PARTICIPANT_ACTIVE) -> None:
        for user_id in user_ids:
            self.add_participant(event_id, user_id, status=status)

    # ------------------------------------------------------------------
    # row mapping
    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            id=int(row["id"]),
            title=row["title"],
            date=parse_date(row["date"]),
            location=row["location"],
            start_time=row["start_time"],
            status=row["status"],
        )

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> Notification:
        return Notification(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            type=row["type"],
            content=row["content"],
            related_id=row["related_id"],
            actor_name=row["actor_name"],
            requires_confirmation=bool(row["requires_confirmation"]),
            read=bool(row["read"]),
            created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        )
