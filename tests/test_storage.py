from datetime import date, timedelta

import pytest

from kkmk_reminders.errors import DiscoveryError, ParticipantLookupError
from kkmk_reminders.models import EVENT_CLOSED, Participant, reminder_kind_for
from kkmk_reminders.storage import MIGRATIONS, ReminderStorage

TODAY = date(2024, 1, 1)


def _kinds_by_title(storage, today=TODAY):
    return {target.event.title: target.kind for target in storage.find_events_needing_reminders(today)}


def test_discovery_tags_week_and_day_offsets(storage):
    storage.create_event(title="Week out", event_date=date(2024, 1, 8), location="Hall", start_time="09:30")
    storage.create_event(title="Tomorrow", event_date=date(2024, 1, 2))
    storage.create_event(title="Today", event_date=date(2024, 1, 1))
    storage.create_event(title="Past", event_date=date(2023, 12, 30))
    storage.create_event(title="Three days", event_date=date(2024, 1, 4))

    assert _kinds_by_title(storage) == {"Week out": "week", "Tomorrow": "day"}


def test_discovery_returns_event_fields(storage):
    created = storage.create_event(
        title="Beach Cleanup", event_date=TODAY + timedelta(days=7), location="Manila Bay", start_time="08:00"
    )

    [target] = storage.find_events_needing_reminders(TODAY)

    assert target.event == created
    assert target.event.date == date(2024, 1, 8)
    assert target.event.start_time == "08:00"
    assert target.participants == []


def test_discovery_ignores_closed_events(storage):
    storage.create_event(title="Closed", event_date=date(2024, 1, 8), status=EVENT_CLOSED)
    closed_later = storage.create_event(title="Closed later", event_date=date(2024, 1, 2))
    storage.set_event_status(closed_later.id, EVENT_CLOSED)

    assert storage.find_events_needing_reminders(TODAY) == []


def test_discovery_failure_raises_discovery_error(tmp_path):
    store = ReminderStorage(tmp_path / "closed.db")
    store.close()

    with pytest.raises(DiscoveryError):
        store.find_events_needing_reminders(TODAY)


def test_only_active_participants_are_listed(storage):
    event = storage.create_event(title="Feeding program", event_date=date(2024, 1, 2))
    ana = storage.add_user(name="Ana", email="a@x.com")
    bo = storage.add_user(name="Bo", email="b@x.com")
    cy = storage.add_user(name="Cy", email="c@x.com")
    storage.add_participant(event.id, ana)
    storage.add_participant(event.id, bo, status="PENDING")
    storage.add_participant(event.id, cy, status="REJECTED")

    assert storage.list_active_participants(event.id) == [Participant(user_id=ana, name="Ana", email="a@x.com")]


def test_participant_status_can_be_promoted(storage):
    event = storage.create_event(title="Tutoring", event_date=date(2024, 1, 2))
    bo = storage.add_user(name="Bo", email="b@x.com")
    storage.add_participant(event.id, bo, status="PENDING")
    storage.add_participant(event.id, bo, status="ACTIVE")

    assert [p.user_id for p in storage.list_active_participants(event.id)] == [bo]


def test_participant_lookup_failure_raises(tmp_path):
    store = ReminderStorage(tmp_path / "closed.db")
    store.close()

    with pytest.raises(ParticipantLookupError) as excinfo:
        store.list_active_participants(42)
    assert excinfo.value.event_id == 42


def test_bulk_event_reminders_creates_one_row_per_participant(storage):
    event = storage.create_event(title="Beach Cleanup", event_date=date(2024, 1, 8))
    ana = storage.add_user(name="Ana", email="a@x.com")
    bo = storage.add_user(name="Bo", email="b@x.com")
    participants = storage.list_active_participants(event.id)
    assert participants == []
    storage.add_participants(event.id, [ana, bo])
    participants = storage.list_active_participants(event.id)

    created = storage.create_bulk_event_reminders(participants, event, "week")

    assert created == 2
    for user_id in (ana, bo):
        [notification] = storage.list_notifications(user_id)
        assert notification.type == "event_reminder"
        assert notification.related_id == event.id
        assert notification.requires_confirmation is True
        assert notification.read is False
        assert "Beach Cleanup" in notification.content
        assert "one week" in notification.content


def test_bulk_event_reminders_with_no_participants_is_noop(storage):
    event = storage.create_event(title="Empty", event_date=date(2024, 1, 2))

    assert storage.create_bulk_event_reminders([], event, "day") == 0


def test_reminder_ledger_is_keyed_by_event_kind_and_day(storage):
    event = storage.create_event(title="Beach Cleanup", event_date=date(2024, 1, 8))
    ana = storage.add_user(name="Ana", email="a@x.com")

    storage.record_reminder_sent(event.id, ana, "week", TODAY, message_id="<1@mg>")
    storage.record_reminder_sent(event.id, ana, "week", TODAY)

    assert storage.sent_reminder_recipients(event.id, "week", TODAY) == {ana}
    assert storage.sent_reminder_recipients(event.id, "day", TODAY) == set()
    assert storage.sent_reminder_recipients(event.id, "week", TODAY + timedelta(days=1)) == set()


def test_migrations_applied_once(tmp_path):
    path = tmp_path / "kkmk.db"
    with ReminderStorage(path) as first:
        assert first.schema_version() == MIGRATIONS[-1].version
        first.create_event(title="Kept", event_date=date(2024, 1, 2))

    with ReminderStorage(path) as second:
        assert second.schema_version() == MIGRATIONS[-1].version
        assert [t.event.title for t in second.find_events_needing_reminders(TODAY)] == ["Kept"]


def test_invalid_start_time_is_rejected(storage):
    with pytest.raises(ValueError):
        storage.create_event(title="Bad", event_date=date(2024, 1, 2), start_time="late morning")


def _tables(storage):
    rows = storage._conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row["name"] for row in rows}


def test_migrate_can_step_down_and_back_up(storage):
    latest = MIGRATIONS[-1].version

    assert storage.migrate(1) == 1
    assert storage.schema_version() == 1
    assert "reminder_log" not in _tables(storage)
    assert "reminder_notification_log" not in _tables(storage)
    assert "events" in _tables(storage)

    assert storage.migrate() == latest
    assert {"reminder_log", "reminder_notification_log"} <= _tables(storage)


def test_migrate_rejects_unknown_version(storage):
    with pytest.raises(ValueError):
        storage.migrate(MIGRATIONS[-1].version + 1)


def test_bulk_reminders_fill_notification_ledger(storage):
    event = storage.create_event(title="Beach Cleanup", event_date=date(2024, 1, 8))
    ana = storage.add_user(name="Ana", email="a@x.com")
    storage.add_participant(event.id, ana)
    participants = storage.list_active_participants(event.id)

    storage.create_bulk_event_reminders(participants, event, "week")
    assert storage.notified_reminder_recipients(event.id, "week", TODAY) == set()

    storage.create_bulk_event_reminders(participants, event, "week", notified_on=TODAY)
    storage.create_bulk_event_reminders(participants, event, "week", notified_on=TODAY)

    assert storage.notified_reminder_recipients(event.id, "week", TODAY) == {ana}
    assert storage.notified_reminder_recipients(event.id, "day", TODAY) == set()


@pytest.mark.parametrize("days_ahead", range(-2, 10))
def test_discovery_agrees_with_reminder_offsets(storage, days_ahead):
    event_date = TODAY + timedelta(days=days_ahead)
    storage.create_event(title="Offset check", event_date=event_date)

    kinds = [target.kind for target in storage.find_events_needing_reminders(TODAY)]

    expected = reminder_kind_for(event_date, TODAY)
    assert kinds == ([expected] if expected else [])
