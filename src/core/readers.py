"""Batch readers — the pending list and the two daily digests.

Pure reads: nothing here changes a reminder's status. A snoozed reminder
stays hidden from every reader until its snoozed_until has passed.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Callable

from src.core.timeutil import to_iso, utc_now
from src.data.models import VISIBLE_STATUSES, DeliveryChannel

if TYPE_CHECKING:
    from src.data.models import Reminder
    from src.ports.reminder_port import ReminderStore


def is_visible(reminder: Reminder, now_iso: str) -> bool:
    """Snooze-expiry filter shared by every reader."""
    return not reminder.is_snoozed_at(now_iso)


def _is_due(reminder: Reminder, now_iso: str) -> bool:
    return reminder.scheduled_at is None or reminder.scheduled_at <= now_iso


class BatchReader:
    """Owner-scoped read views over the reminder store."""

    def __init__(
        self,
        store: ReminderStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def pending(
        self, owner: int, channel: DeliveryChannel | None = None,
    ) -> list[Reminder]:
        """Pending and expired-snooze reminders, by scheduled_at (unscheduled first)."""
        now_iso = to_iso(self._clock())
        reminders = await self._store.list_reminders(owner, VISIBLE_STATUSES, channel)
        visible = [r for r in reminders if is_visible(r, now_iso)]
        visible.sort(key=lambda r: (r.scheduled_at is not None, r.scheduled_at or ""))
        return visible

    async def _digest(self, owner: int, channel: DeliveryChannel) -> list[Reminder]:
        now_iso = to_iso(self._clock())
        reminders = await self._store.list_reminders(owner, VISIBLE_STATUSES, channel)
        return [
            r for r in reminders
            if _is_due(r, now_iso) and is_visible(r, now_iso)
        ]

    async def morning_digest(self, owner: int) -> list[Reminder]:
        """Morning digest items in creation order."""
        return await self._digest(owner, DeliveryChannel.MORNING_DIGEST)

    async def evening_digest(self, owner: int) -> list[Reminder]:
        """Evening digest items in creation order."""
        return await self._digest(owner, DeliveryChannel.EVENING_DIGEST)
