"""
LifeOS Reminders — Lifecycle Controller.

Owns the reminder state machine:

    pending  → delivered | snoozed | dismissed | acted_on
    delivered → snoozed | dismissed | acted_on
    snoozed  → snoozed (re-snooze) | dismissed | acted_on
    any non-archived → archived

Archived is terminal. Dismissed and acted-on reminders are never revived by
a snooze or a delivery. Every transition is a single-record update scoped
to the owner; concurrent updates are last-write-wins.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable
from zoneinfo import ZoneInfo

from src.core.timeutil import snooze_until, to_iso, utc_now
from src.data.models import ACTIVE_STATUSES, ReminderStatus, SnoozePreset
from src.ports.reminder_port import ReminderNotFoundError

if TYPE_CHECKING:
    from src.data.models import Reminder
    from src.ports.reminder_port import ReminderStore

logger = logging.getLogger(__name__)

# Successful reschedules allowed per reminder; the next snooze dismisses.
MAX_SNOOZES = 2

_SNOOZABLE = ACTIVE_STATUSES
_DELIVERABLE = frozenset({ReminderStatus.PENDING, ReminderStatus.SNOOZED})
_NOT_ARCHIVED = frozenset(ReminderStatus) - {ReminderStatus.ARCHIVED}


class InvalidTransitionError(Exception):
    """Raised when a transition is not allowed from the current status."""


class LifecycleController:
    """Applies user-driven transitions to single reminders."""

    def __init__(
        self,
        store: ReminderStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def _load(
        self,
        owner: int,
        reminder_id: int,
        allowed: frozenset[ReminderStatus] = _NOT_ARCHIVED,
    ) -> Reminder:
        reminder = await self._store.get(owner, reminder_id)
        if reminder is None:
            raise ReminderNotFoundError(f"Reminder {reminder_id} not found")
        if reminder.status not in allowed:
            raise InvalidTransitionError(
                f"Reminder {reminder_id} is {reminder.status.value} and can no longer change"
            )
        return reminder

    async def _set_status(
        self,
        owner: int,
        reminder_id: int,
        status: ReminderStatus,
        allowed: frozenset[ReminderStatus] = _NOT_ARCHIVED,
    ) -> Reminder:
        await self._load(owner, reminder_id, allowed)
        updated = await self._store.update(
            owner, reminder_id, to_iso(self._clock()), status=status,
        )
        logger.info("Reminder #%d → %s", reminder_id, status.value)
        return updated

    async def dismiss(self, owner: int, reminder_id: int) -> Reminder:
        return await self._set_status(owner, reminder_id, ReminderStatus.DISMISSED)

    async def act_on(self, owner: int, reminder_id: int) -> Reminder:
        """The user performed the underlying action (e.g. opened the task)."""
        return await self._set_status(owner, reminder_id, ReminderStatus.ACTED_ON)

    async def mark_delivered(self, owner: int, reminder_id: int) -> Reminder:
        """A digest or push surface showed the reminder to the user."""
        return await self._set_status(
            owner, reminder_id, ReminderStatus.DELIVERED, _DELIVERABLE,
        )

    async def snooze(
        self,
        owner: int,
        reminder_id: int,
        preset: SnoozePreset,
        morning_time: str = "07:00",
        tz: ZoneInfo | None = None,
    ) -> Reminder:
        """Hide a reminder until the preset's target time.

        Once MAX_SNOOZES reschedules have happened, the request dismisses the
        reminder instead and leaves snooze_count unchanged.
        """
        reminder = await self._load(owner, reminder_id, _SNOOZABLE)
        if reminder.snooze_count >= MAX_SNOOZES:
            logger.info(
                "Reminder #%d snoozed %d times already, dismissing",
                reminder_id, reminder.snooze_count,
            )
            return await self._set_status(owner, reminder_id, ReminderStatus.DISMISSED)

        now = self._clock()
        until = snooze_until(preset, now, morning_time, tz)
        updated = await self._store.update(
            owner,
            reminder_id,
            to_iso(now),
            status=ReminderStatus.SNOOZED,
            snoozed_until=to_iso(until),
            snooze_count=reminder.snooze_count + 1,
        )
        logger.info(
            "Reminder #%d snoozed (%s) until %s, count %d",
            reminder_id, preset.value, updated.snoozed_until, updated.snooze_count,
        )
        return updated

    async def archive(self, owner: int, reminder_id: int) -> Reminder:
        now = to_iso(self._clock())
        await self._load(owner, reminder_id)
        updated = await self._store.update(
            owner, reminder_id, now, status=ReminderStatus.ARCHIVED, archived_at=now,
        )
        logger.info("Reminder #%d archived", reminder_id)
        return updated
