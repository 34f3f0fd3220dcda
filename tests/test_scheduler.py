import asyncio
from datetime import date

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from kkmk_reminders.config import Config, MailConfig, ReminderConfig
from kkmk_reminders.jobs import ReminderScheduler, should_run_startup_sweep
from kkmk_reminders.jobs.scheduler import SWEEP_JOB_ID
from kkmk_reminders.models import SweepSummary


class FakeReminders:
    def __init__(self):
        self.calls = []

    async def run_sweep(self, today=None, *, force=False):
        self.calls.append((today, force))
        return SweepSummary(today=today or date(2024, 1, 1))


def _config(environment="development", **reminder):
    return Config(mail=MailConfig(), reminder=ReminderConfig(**reminder), environment=environment)


def test_startup_sweep_policy():
    assert should_run_startup_sweep(_config())
    assert not should_run_startup_sweep(_config(skip_initial=True))
    assert not should_run_startup_sweep(_config("production"))


def test_register_adds_daily_cron_job():
    config = _config(cron_hour=6, cron_minute=30)
    scheduler = AsyncIOScheduler(timezone=config.timezone)
    reminder_scheduler = ReminderScheduler(config=config, reminder_service=FakeReminders(), scheduler=scheduler)

    reminder_scheduler.register()

    job = scheduler.get_job(SWEEP_JOB_ID)
    assert job is not None
    fields = {field.name: str(field) for field in job.trigger.fields}
    assert fields["hour"] == "6"
    assert fields["minute"] == "30"


def test_trigger_now_keeps_last_summary():
    reminders = FakeReminders()
    reminder_scheduler = ReminderScheduler(
        config=_config(), reminder_service=reminders, scheduler=AsyncIOScheduler()
    )

    summary = asyncio.run(reminder_scheduler.trigger_now(today=date(2024, 1, 1), force=True))

    assert reminders.calls == [(date(2024, 1, 1), True)]
    assert reminder_scheduler.last_summary is summary


def _start_and_stop(reminder_scheduler):
    async def scenario():
        await reminder_scheduler.start()
        running = reminder_scheduler.scheduler.running
        await reminder_scheduler.shutdown()
        return running

    return asyncio.run(scenario())


def test_start_runs_initial_sweep_in_development():
    reminders = FakeReminders()
    reminder_scheduler = ReminderScheduler(config=_config(), reminder_service=reminders)

    assert _start_and_stop(reminder_scheduler)
    assert reminders.calls == [(None, False)]
    assert reminder_scheduler.last_summary is not None


def test_start_skips_initial_sweep_in_production():
    reminders = FakeReminders()
    reminder_scheduler = ReminderScheduler(config=_config("production"), reminder_service=reminders)

    assert _start_and_stop(reminder_scheduler)
    assert reminders.calls == []
    assert reminder_scheduler.last_summary is None
