"""
LifeOS Reminders — Data Models.

The Reminder is the only entity this engine owns. Everything else here is a
read-only view of a record that lives in another subsystem's store (tasks,
meetings, people, change plans, projects) or the per-owner settings record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------


class ReminderKind(Enum):
    TASK_DUE = "task_due"
    TASK_OVERDUE = "task_overdue"
    MEETING_DUE = "meeting_due"
    MEETING_DAY_BEFORE = "meeting_day_before"
    IMPORTANT_DATE = "important_date"
    CHANGE_PLAN_CHECKIN = "change_plan_checkin"
    MILESTONE_APPROACHING = "milestone_approaching"
    MILESTONE_OVERDUE = "milestone_overdue"
    STREAK_AT_RISK = "streak_at_risk"
    MONTHLY_EXPORT = "monthly_export"
    CUSTOM = "custom"


class DeliveryChannel(Enum):
    PUSH = "push"
    MORNING_DIGEST = "morning_digest"
    EVENING_DIGEST = "evening_digest"
    IN_APP = "in_app"


class ReminderStatus(Enum):
    PENDING = "pending"
    SNOOZED = "snoozed"
    DELIVERED = "delivered"
    DISMISSED = "dismissed"
    ACTED_ON = "acted_on"
    ARCHIVED = "archived"


# Statuses covered by the dedup invariant
ACTIVE_STATUSES = frozenset(
    {ReminderStatus.PENDING, ReminderStatus.DELIVERED, ReminderStatus.SNOOZED}
)

# Statuses the batch readers surface
VISIBLE_STATUSES = frozenset({ReminderStatus.PENDING, ReminderStatus.SNOOZED})


class EntityKind(Enum):
    TASK = "task"
    MEETING_SCHEDULE = "meeting_schedule"
    PERSON = "person"
    CHANGE_PLAN = "change_plan"
    MILESTONE = "milestone"
    EXPORT_PERIOD = "export_period"


class SourceDomain(Enum):
    TASKS = "tasks"
    MEETINGS = "meetings"
    PEOPLE = "people"
    CHANGE_PLANS = "change_plans"
    PROJECTS = "projects"
    STREAKS = "streaks"
    JOURNAL = "journal"
    USER = "user"


class SnoozePreset(Enum):
    ONE_HOUR = "1_hour"
    LATER_TODAY = "later_today"
    TOMORROW = "tomorrow"
    NEXT_WEEK = "next_week"


class NotificationMode(Enum):
    """Per-category delivery selection in the settings record."""

    OFF = "off"
    PUSH = "push"
    MORNING_DIGEST = "morning_digest"
    EVENING_DIGEST = "evening_digest"
    BOTH = "both"


# ---------------------------------------------------------------------------
# Reminder
# ---------------------------------------------------------------------------


@dataclass
class ReminderDraft:
    """A creation request emitted by a rule (or by a custom reminder)."""

    owner: int
    kind: ReminderKind
    title: str
    source_domain: SourceDomain
    channel: DeliveryChannel = DeliveryChannel.MORNING_DIGEST
    body: str | None = None
    scheduled_at: str | None = None          # ISO UTC, None → visible now
    related_entity_kind: EntityKind | None = None
    related_entity_id: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def dedup_key(self) -> tuple | None:
        """(owner, kind, entity kind, entity id), or None when unrelated."""
        if self.related_entity_kind is None or not self.related_entity_id:
            return None
        return (self.owner, self.kind, self.related_entity_kind, self.related_entity_id)


@dataclass
class Reminder:
    """A persisted reminder record. Timestamps are ISO-8601 UTC strings."""

    id: int
    owner: int
    kind: ReminderKind
    title: str
    channel: DeliveryChannel
    status: ReminderStatus
    source_domain: SourceDomain
    created_at: str
    updated_at: str
    body: str | None = None
    scheduled_at: str | None = None
    related_entity_kind: EntityKind | None = None
    related_entity_id: str | None = None
    metadata: dict = field(default_factory=dict)
    snooze_count: int = 0
    snoozed_until: str | None = None
    archived_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_snoozed_at(self, now_iso: str) -> bool:
        """True while a snoozed reminder must stay hidden."""
        return (
            self.status is ReminderStatus.SNOOZED
            and self.snoozed_until is not None
            and now_iso < self.snoozed_until
        )


# ---------------------------------------------------------------------------
# Source-domain records (read-only)
# ---------------------------------------------------------------------------


@dataclass
class Task:
    id: str
    title: str
    due_date: str | None                 # ISO date YYYY-MM-DD
    status: str = "pending"
    archived: bool = False
    parent_id: str | None = None         # set on subtasks
    recurrence_rule: str | None = None   # set on recurring tasks


@dataclass
class MeetingSchedule:
    id: str
    meeting_type: str                    # e.g. "weekly_one_on_one"
    next_due_date: str | None
    related_person_id: str | None = None
    active: bool = True


@dataclass
class ImportantDate:
    label: str                           # e.g. "Birthday"
    date: str                            # ISO date; year ignored when recurring
    recurring: bool = False


@dataclass
class Person:
    id: str
    name: str
    important_dates: list[ImportantDate] = field(default_factory=list)
    is_primary: bool = False             # the user's primary relationship
    archived: bool = False


@dataclass
class ChangePlan:
    id: str
    title: str
    next_checkin_date: str | None
    status: str = "active"


@dataclass
class ProjectPlan:
    id: str
    title: str
    status: str = "active"
    nudge_approaching: bool = True
    nudge_overdue: bool = True


@dataclass
class Milestone:
    id: str
    plan_id: str
    title: str
    target_date: str | None
    status: str = "not_started"          # not_started | in_progress | done | skipped


# ---------------------------------------------------------------------------
# Settings record
# ---------------------------------------------------------------------------


class NotificationSettings(BaseModel):
    """Per-owner notification preferences, read from the settings store."""

    timezone: str = ""                   # empty → application default
    notify_tasks: NotificationMode = NotificationMode.MORNING_DIGEST
    notify_meetings: NotificationMode = NotificationMode.MORNING_DIGEST
    notify_people: NotificationMode = NotificationMode.MORNING_DIGEST
    notify_growth: NotificationMode = NotificationMode.MORNING_DIGEST
    notify_streaks: NotificationMode = NotificationMode.EVENING_DIGEST
    morning_digest_time: str = "07:00"
    evening_digest_time: str = "21:00"
    important_dates_advance_days: int = 1
    monthly_export_opt_in: bool = False
    quiet_hours_start: str = "22:00"
    quiet_hours_end: str = "07:00"
    max_daily_push: int | None = None    # None → application default

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        if v:
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"Unknown timezone {v!r}") from exc
        return v

    @field_validator(
        "morning_digest_time", "evening_digest_time",
        "quiet_hours_start", "quiet_hours_end",
    )
    @classmethod
    def check_hhmm(cls, v: str) -> str:
        hour, minute = (int(p) for p in v.split(":"))
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"Hour/minute out of range: {v}")
        return f"{hour:02d}:{minute:02d}"

    @field_validator("important_dates_advance_days", "max_daily_push")
    @classmethod
    def check_non_negative(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("must be >= 0")
        return v

    @classmethod
    def from_record(cls, raw: dict | None) -> NotificationSettings:
        """Build settings from a raw store record, falling back per field.

        A missing record yields all defaults; a malformed value is dropped
        so that its default applies, and the rest of the record is kept.
        """
        if not raw:
            return cls()
        data = {k: v for k, v in raw.items() if k in cls.model_fields and v is not None}
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            bad = {err["loc"][0] for err in exc.errors() if err["loc"]}
            logger.warning("Malformed settings fields %s, using defaults", sorted(bad))
            return cls.model_validate({k: v for k, v in data.items() if k not in bad})
