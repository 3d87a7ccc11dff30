"""Shared test fixtures and configuration.

Sets up fake environment variables before any src imports, and provides
a temp reminder DB, in-memory source stores and a controllable clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("OWNER_IDS", "12345")

from datetime import datetime, timedelta, timezone

import pytest

OWNER = 12345
OTHER_OWNER = 67890

# Tuesday 2026-03-10, 14:00 UTC
BASE_NOW = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSources:
    """In-memory implementation of every source port."""

    def __init__(self) -> None:
        self.tasks = []
        self.meetings = []
        self.people = []
        self.change_plans = []
        self.projects = []
        self.milestones = []
        self.settings_record = None
        self.name_lookups = 0

    async def list_tasks(self, owner):
        return list(self.tasks)

    async def list_meetings(self, owner):
        return list(self.meetings)

    async def list_people(self, owner):
        return list(self.people)

    async def get_names(self, owner, person_ids):
        self.name_lookups += 1
        return {p.id: p.name for p in self.people if p.id in person_ids}

    async def list_change_plans(self, owner):
        return list(self.change_plans)

    async def list_projects(self, owner):
        return list(self.projects)

    async def list_milestones(self, owner, plan_ids):
        return [m for m in self.milestones if m.plan_id in plan_ids]

    async def get_settings(self, owner):
        return self.settings_record

    def as_sources(self):
        from src.ports.source_port import Sources
        return Sources(
            tasks=self,
            meetings=self,
            people=self,
            change_plans=self,
            projects=self,
            settings=self,
        )


@pytest.fixture
def clock():
    return FakeClock(BASE_NOW)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_reminders.db")


@pytest.fixture
def reminder_db(tmp_db_path):
    """Return a ReminderDB instance backed by a temp file."""
    from src.data.db import ReminderDB
    return ReminderDB(db_path=tmp_db_path)


@pytest.fixture
def fake_sources():
    return FakeSources()


@pytest.fixture
def generator(reminder_db, fake_sources, clock):
    from src.core.generator import ReminderGenerator
    return ReminderGenerator(reminder_db, fake_sources.as_sources(), clock)


@pytest.fixture
def service(reminder_db, fake_sources, clock):
    from src.core.reminder_service import ReminderService
    return ReminderService(reminder_db, fake_sources.as_sources(), clock=clock)


def make_draft(**overrides):
    """A task-due draft for OWNER, with any field overridden."""
    from src.data.models import (
        DeliveryChannel,
        EntityKind,
        ReminderDraft,
        ReminderKind,
        SourceDomain,
    )

    fields = dict(
        owner=OWNER,
        kind=ReminderKind.TASK_DUE,
        title="Pay rent",
        channel=DeliveryChannel.MORNING_DIGEST,
        related_entity_kind=EntityKind.TASK,
        related_entity_id="task-1",
        source_domain=SourceDomain.TASKS,
    )
    fields.update(overrides)
    return ReminderDraft(**fields)
