import sys
from datetime import date
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from kkmk_reminders.errors import SendError  # noqa: E402
from kkmk_reminders.storage import ReminderStorage  # noqa: E402

TODAY = date(2024, 1, 1)


class RecordingTransport:
    """Mail transport double that records messages and can fail on demand."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []
        self.attempts = []
        self.closed = False

    async def send(self, message):
        self.attempts.append(message)
        if message.to in self.fail_for:
            raise SendError(message.to, "mailbox unavailable", status_code=400)
        self.sent.append(message)
        return f"<{len(self.sent)}@mg.example.org>"

    async def aclose(self):
        self.closed = True


@pytest.fixture
def storage(tmp_path):
    store = ReminderStorage(tmp_path / "kkmk.db")
    yield store
    store.close()


@pytest.fixture
def transport():
    return RecordingTransport()
