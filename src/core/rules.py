"""
LifeOS Reminders — Domain Rule Evaluators.

One rule per source domain. Each rule reads its store, decides which items
need attention "today" (the owner's local calendar day), and asks the
Deduplicator to create one reminder per item. Creation inside a rule is
strictly one-at-a-time so the dedup check for item N+1 sees item N.

Rules never touch each other's reminders and never mutate source data.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Awaitable, Callable

from src.core.timeutil import add_days, days_between
from src.data.models import (
    DeliveryChannel,
    EntityKind,
    NotificationMode,
    ReminderDraft,
    ReminderKind,
    SourceDomain,
)

if TYPE_CHECKING:
    from src.core.dedup import Deduplicator
    from src.data.models import (
        ImportantDate,
        NotificationSettings,
        Person,
        Reminder,
        Task,
    )
    from src.ports.reminder_port import ReminderStore
    from src.ports.source_port import Sources

logger = logging.getLogger(__name__)

OVERDUE_TASK_CAP = 10
MILESTONE_LOOKAHEAD_DAYS = 3
MILESTONE_OVERDUE_LIFETIME_CAP = 2

_OPEN_TASK_STATUS = "pending"
_ACTIVE_PLAN_STATUS = "active"
_OPEN_MILESTONE_STATUSES = frozenset({"not_started", "in_progress"})

# Modes that send by push. Only meetings treat "both" as push.
PUSH_ONLY = frozenset({NotificationMode.PUSH})
PUSH_OR_BOTH = frozenset({NotificationMode.PUSH, NotificationMode.BOTH})


@dataclass
class RuleContext:
    """Everything a rule needs for one owner and one run."""

    owner: int
    settings: NotificationSettings
    today: date
    tomorrow: date
    sources: Sources
    dedup: Deduplicator
    store: ReminderStore


RuleFn = Callable[[RuleContext], Awaitable[list["Reminder"]]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def channel_for(
    mode: NotificationMode,
    push_modes: frozenset[NotificationMode] = PUSH_ONLY,
) -> DeliveryChannel:
    """Delivery channel selected by a category's notification mode."""
    if mode is NotificationMode.OFF:
        raise ValueError("Disabled categories have no delivery channel")
    if mode in push_modes:
        return DeliveryChannel.PUSH
    if mode is NotificationMode.EVENING_DIGEST:
        return DeliveryChannel.EVENING_DIGEST
    return DeliveryChannel.MORNING_DIGEST


def parse_day(value: str | None) -> date | None:
    """Parse an ISO date (or the date part of a timestamp); None if unusable."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.warning("Ignoring malformed date %r", value)
        return None


def _is_open_top_level(task: Task) -> bool:
    return (
        task.status == _OPEN_TASK_STATUS
        and not task.archived
        and task.parent_id is None
    )


def anchor_important_date(important: ImportantDate, today: date) -> date | None:
    """Resolve the next occurrence of an important date.

    Recurring dates keep their month/day and take the current year; if that
    day has already passed they roll to next year. Feb 29 falls back to
    Feb 28 in non-leap years.
    """
    parsed = parse_day(important.date)
    if parsed is None or not important.recurring:
        return parsed

    def _in_year(year: int) -> date:
        try:
            return parsed.replace(year=year)
        except ValueError:
            return date(year, 2, 28)

    anchored = _in_year(today.year)
    if anchored < today:
        anchored = _in_year(today.year + 1)
    return anchored


def important_date_title(label: str, person_name: str, days_until: int) -> str:
    if days_until == 0:
        return f"Today: {label} — {person_name}"
    plural = "s" if days_until != 1 else ""
    return f"In {days_until} day{plural}: {label} — {person_name}"


def _meeting_label(meeting_type: str, person_name: str | None) -> str:
    label = meeting_type.replace("_", " ")
    return f"{label} with {person_name}" if person_name else label


async def _create_each(ctx: RuleContext, drafts: list[ReminderDraft]) -> list[Reminder]:
    """Create drafts sequentially, collecting the ones not deduplicated."""
    created = []
    for draft in drafts:
        reminder = await ctx.dedup.create(draft)
        if reminder is not None:
            created.append(reminder)
    return created


# ---------------------------------------------------------------------------
# 1-2. Tasks
# ---------------------------------------------------------------------------


async def task_due_rule(ctx: RuleContext) -> list[Reminder]:
    """Top-level pending tasks due today, one reminder each."""
    mode = ctx.settings.notify_tasks
    if mode is NotificationMode.OFF:
        return []

    tasks = await ctx.sources.tasks.list_tasks(ctx.owner)
    drafts = [
        ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.TASK_DUE,
            title=task.title,
            channel=channel_for(mode),
            related_entity_kind=EntityKind.TASK,
            related_entity_id=task.id,
            source_domain=SourceDomain.TASKS,
            metadata={"due_date": task.due_date},
        )
        for task in tasks
        if _is_open_top_level(task) and parse_day(task.due_date) == ctx.today
    ]
    return await _create_each(ctx, drafts)


async def task_overdue_rule(ctx: RuleContext) -> list[Reminder]:
    """Top-level pending tasks past due, oldest first, capped per run.

    Always digest-only; dedup keeps one reminder per task across runs.
    """
    if ctx.settings.notify_tasks is NotificationMode.OFF:
        return []

    tasks = await ctx.sources.tasks.list_tasks(ctx.owner)
    overdue = []
    for task in tasks:
        due = parse_day(task.due_date)
        if _is_open_top_level(task) and due is not None and due < ctx.today:
            overdue.append((due, task))
    overdue.sort(key=lambda pair: pair[0])

    drafts = [
        ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.TASK_OVERDUE,
            title=f"Overdue: {task.title}",
            channel=DeliveryChannel.MORNING_DIGEST,
            related_entity_kind=EntityKind.TASK,
            related_entity_id=task.id,
            source_domain=SourceDomain.TASKS,
            metadata={"due_date": task.due_date},
        )
        for _, task in overdue[:OVERDUE_TASK_CAP]
    ]
    return await _create_each(ctx, drafts)


# ---------------------------------------------------------------------------
# 3. Meetings
# ---------------------------------------------------------------------------


async def meeting_rule(ctx: RuleContext) -> list[Reminder]:
    """Meetings due today (due reminder) or tomorrow (day-before reminder)."""
    mode = ctx.settings.notify_meetings
    if mode is NotificationMode.OFF:
        return []

    meetings = await ctx.sources.meetings.list_meetings(ctx.owner)
    due_today = []
    due_tomorrow = []
    for meeting in meetings:
        if not meeting.active:
            continue
        due = parse_day(meeting.next_due_date)
        if due == ctx.today:
            due_today.append(meeting)
        elif due == ctx.tomorrow:
            due_tomorrow.append(meeting)

    person_ids = sorted({
        m.related_person_id for m in due_today + due_tomorrow if m.related_person_id
    })
    names = await ctx.sources.people.get_names(ctx.owner, person_ids) if person_ids else {}

    drafts = []
    for meeting in due_today:
        person_name = names.get(meeting.related_person_id) if meeting.related_person_id else None
        drafts.append(ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.MEETING_DUE,
            title=_meeting_label(meeting.meeting_type, person_name),
            channel=channel_for(mode, PUSH_OR_BOTH),
            related_entity_kind=EntityKind.MEETING_SCHEDULE,
            related_entity_id=meeting.id,
            source_domain=SourceDomain.MEETINGS,
            metadata={"meeting_type": meeting.meeting_type, "person_name": person_name},
        ))
    for meeting in due_tomorrow:
        person_name = names.get(meeting.related_person_id) if meeting.related_person_id else None
        drafts.append(ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.MEETING_DAY_BEFORE,
            title=f"Tomorrow: {_meeting_label(meeting.meeting_type, person_name)}",
            channel=DeliveryChannel.MORNING_DIGEST,
            related_entity_kind=EntityKind.MEETING_SCHEDULE,
            related_entity_id=meeting.id,
            source_domain=SourceDomain.MEETINGS,
            metadata={"meeting_type": meeting.meeting_type, "person_name": person_name},
        ))
    return await _create_each(ctx, drafts)


# ---------------------------------------------------------------------------
# 4. Important dates
# ---------------------------------------------------------------------------


def _important_date_drafts(
    ctx: RuleContext, person: Person, mode: NotificationMode,
) -> list[ReminderDraft]:
    window = ctx.settings.important_dates_advance_days
    drafts = []
    for important in person.important_dates:
        event_date = anchor_important_date(important, ctx.today)
        if event_date is None:
            continue
        days_until = days_between(ctx.today, event_date)
        if not 0 <= days_until <= window:
            continue

        is_today = days_until == 0
        drafts.append(ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.IMPORTANT_DATE,
            title=important_date_title(important.label, person.name, days_until),
            channel=(
                DeliveryChannel.PUSH if is_today and mode in PUSH_ONLY
                else DeliveryChannel.MORNING_DIGEST
            ),
            related_entity_kind=EntityKind.PERSON,
            related_entity_id=person.id,
            source_domain=SourceDomain.PEOPLE,
            metadata={
                "person_name": person.name,
                "date_label": important.label,
                "event_date": event_date.isoformat(),
                "primary": person.is_primary,
            },
        ))
    return drafts


async def important_date_rule(ctx: RuleContext) -> list[Reminder]:
    """Birthdays, anniversaries and other dated events within the notice window."""
    mode = ctx.settings.notify_people
    if mode is NotificationMode.OFF:
        return []

    people = await ctx.sources.people.list_people(ctx.owner)
    drafts = []
    for person in people:
        if person.archived:
            continue
        drafts.extend(_important_date_drafts(ctx, person, mode))
    return await _create_each(ctx, drafts)


# ---------------------------------------------------------------------------
# 5. Change-plan check-ins
# ---------------------------------------------------------------------------


async def change_plan_rule(ctx: RuleContext) -> list[Reminder]:
    """Active change plans whose next check-in has arrived."""
    if ctx.settings.notify_growth is NotificationMode.OFF:
        return []

    plans = await ctx.sources.change_plans.list_change_plans(ctx.owner)
    drafts = []
    for plan in plans:
        checkin = parse_day(plan.next_checkin_date)
        if plan.status != _ACTIVE_PLAN_STATUS or checkin is None or checkin > ctx.today:
            continue
        drafts.append(ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.CHANGE_PLAN_CHECKIN,
            title=f"Check-in due: {plan.title}",
            channel=DeliveryChannel.MORNING_DIGEST,
            related_entity_kind=EntityKind.CHANGE_PLAN,
            related_entity_id=plan.id,
            source_domain=SourceDomain.CHANGE_PLANS,
            metadata={"plan_title": plan.title, "next_checkin_date": plan.next_checkin_date},
        ))
    return await _create_each(ctx, drafts)


# ---------------------------------------------------------------------------
# 6. Project milestones
# ---------------------------------------------------------------------------


async def milestone_rule(ctx: RuleContext) -> list[Reminder]:
    """Approaching and overdue milestones of active projects.

    Overdue nudges stop after MILESTONE_OVERDUE_LIFETIME_CAP reminders per
    milestone, counted over every status so a dismissed nudge still counts.
    """
    if ctx.settings.notify_growth is NotificationMode.OFF:
        return []

    projects = [
        p for p in await ctx.sources.projects.list_projects(ctx.owner)
        if p.status == _ACTIVE_PLAN_STATUS
    ]
    if not projects:
        return []
    plan_map = {p.id: p for p in projects}

    milestones = await ctx.sources.projects.list_milestones(ctx.owner, list(plan_map))
    horizon = add_days(ctx.today, MILESTONE_LOOKAHEAD_DAYS)

    approaching = []
    overdue = []
    for ms in milestones:
        plan = plan_map.get(ms.plan_id)
        target = parse_day(ms.target_date)
        if plan is None or target is None or ms.status not in _OPEN_MILESTONE_STATUSES:
            continue
        if ctx.today <= target <= horizon and plan.nudge_approaching:
            approaching.append((ms, plan))
        elif target < ctx.today and plan.nudge_overdue:
            overdue.append((ms, plan))

    drafts = [
        ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.MILESTONE_APPROACHING,
            title=f"Milestone approaching: {ms.title}",
            body=f"Plan: {plan.title}",
            channel=DeliveryChannel.MORNING_DIGEST,
            related_entity_kind=EntityKind.MILESTONE,
            related_entity_id=ms.id,
            source_domain=SourceDomain.PROJECTS,
            metadata={"plan_title": plan.title, "target_date": ms.target_date},
        )
        for ms, plan in approaching
    ]

    # Lifetime counts are independent reads; creation stays sequential.
    counts = await asyncio.gather(*(
        ctx.store.count_for_entity(ctx.owner, ReminderKind.MILESTONE_OVERDUE, ms.id)
        for ms, _ in overdue
    ))
    for (ms, plan), count in zip(overdue, counts):
        if count >= MILESTONE_OVERDUE_LIFETIME_CAP:
            logger.debug("Milestone %s already nudged %d times, skipping", ms.id, count)
            continue
        drafts.append(ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.MILESTONE_OVERDUE,
            title=f"Overdue milestone: {ms.title}",
            body=f"Plan: {plan.title}",
            channel=DeliveryChannel.MORNING_DIGEST,
            related_entity_kind=EntityKind.MILESTONE,
            related_entity_id=ms.id,
            source_domain=SourceDomain.PROJECTS,
            metadata={"plan_title": plan.title, "target_date": ms.target_date},
        ))
    return await _create_each(ctx, drafts)


# ---------------------------------------------------------------------------
# 7. Streaks
# ---------------------------------------------------------------------------


async def streak_rule(ctx: RuleContext) -> list[Reminder]:
    """Recurring tasks still pending today put their streak at risk."""
    if ctx.settings.notify_streaks is NotificationMode.OFF:
        return []

    tasks = await ctx.sources.tasks.list_tasks(ctx.owner)
    drafts = [
        ReminderDraft(
            owner=ctx.owner,
            kind=ReminderKind.STREAK_AT_RISK,
            title=f"Your {task.title} streak — don't forget today",
            channel=DeliveryChannel.EVENING_DIGEST,
            related_entity_kind=EntityKind.TASK,
            related_entity_id=task.id,
            source_domain=SourceDomain.STREAKS,
        )
        for task in tasks
        if task.recurrence_rule
        and task.status == _OPEN_TASK_STATUS
        and not task.archived
        and parse_day(task.due_date) == ctx.today
    ]
    return await _create_each(ctx, drafts)


# ---------------------------------------------------------------------------
# 8. Monthly export
# ---------------------------------------------------------------------------


async def monthly_export_rule(ctx: RuleContext) -> list[Reminder]:
    """On the first of the month, offer last month's journal export."""
    if not ctx.settings.monthly_export_opt_in or ctx.today.day != 1:
        return []

    last_month = add_days(ctx.today, -1)
    draft = ReminderDraft(
        owner=ctx.owner,
        kind=ReminderKind.MONTHLY_EXPORT,
        title="Monthly journal export available",
        body="Export last month's journal entries from Settings.",
        channel=DeliveryChannel.MORNING_DIGEST,
        related_entity_kind=EntityKind.EXPORT_PERIOD,
        related_entity_id=ctx.today.strftime("%Y-%m"),
        source_domain=SourceDomain.JOURNAL,
        metadata={"export_month": last_month.strftime("%Y-%m")},
    )
    return await _create_each(ctx, [draft])


# Evaluation order for one generation run
RULES: list[tuple[str, RuleFn]] = [
    ("task_due", task_due_rule),
    ("task_overdue", task_overdue_rule),
    ("meetings", meeting_rule),
    ("important_dates", important_date_rule),
    ("change_plans", change_plan_rule),
    ("milestones", milestone_rule),
    ("streaks", streak_rule),
    ("monthly_export", monthly_export_rule),
]
