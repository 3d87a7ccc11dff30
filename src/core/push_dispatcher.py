"""
LifeOS Reminders — Push Dispatcher.

Hands due push-channel reminders to the NotificationPort and marks them
delivered. Nothing is sent during the owner's quiet hours or after the
daily push budget is spent; deferred reminders simply stay pending for the
next pass. A transport failure leaves that reminder pending as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from src.core.readers import BatchReader
from src.core.timeutil import is_in_quiet_hours, start_of_local_day, to_iso, utc_now
from src.data.models import DeliveryChannel, ReminderStatus

if TYPE_CHECKING:
    from zoneinfo import ZoneInfo

    from src.data.models import NotificationSettings
    from src.ports.notification_port import NotificationPort
    from src.ports.reminder_port import ReminderStore

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    owner: int
    sent: int = 0
    failed: int = 0
    deferred_reason: str = ""    # "" | "quiet_hours" | "frequency_cap"


def daily_push_cap(notification_settings: NotificationSettings) -> int:
    """The owner's push budget per local day, or the application default."""
    if notification_settings.max_daily_push is not None:
        return notification_settings.max_daily_push
    from src.config import settings
    return settings.MAX_DAILY_PUSH


async def dispatch_push(
    store: ReminderStore,
    notifier: NotificationPort,
    owner: int,
    notification_settings: NotificationSettings,
    tz: ZoneInfo,
    clock: Callable[[], datetime] = utc_now,
) -> DispatchReport:
    """Send due push reminders for one owner, respecting quiet hours and the cap."""
    report = DispatchReport(owner=owner)
    now = clock()

    if is_in_quiet_hours(
        now, notification_settings.quiet_hours_start, notification_settings.quiet_hours_end, tz,
    ):
        report.deferred_reason = "quiet_hours"
        logger.info("Push for owner %d deferred: quiet hours", owner)
        return report

    sent_today = await store.count_delivered_since(
        owner, DeliveryChannel.PUSH, to_iso(start_of_local_day(tz, now)),
    )
    budget = daily_push_cap(notification_settings) - sent_today
    if budget <= 0:
        report.deferred_reason = "frequency_cap"
        logger.info("Push for owner %d deferred: %d sent today", owner, sent_today)
        return report

    now_iso = to_iso(now)
    reader = BatchReader(store, clock)
    due = [
        r for r in await reader.pending(owner, DeliveryChannel.PUSH)
        if r.scheduled_at is None or r.scheduled_at <= now_iso
    ]

    for reminder in due[:budget]:
        try:
            await notifier.send_reminder(owner, reminder)
        except Exception as exc:
            logger.warning("Push of reminder #%d failed: %s", reminder.id, exc)
            report.failed += 1
            continue
        await store.update(owner, reminder.id, now_iso, status=ReminderStatus.DELIVERED)
        report.sent += 1

    if len(due) > budget:
        report.deferred_reason = "frequency_cap"

    logger.info(
        "Push for owner %d: %d sent, %d failed, %d deferred",
        owner, report.sent, report.failed, max(len(due) - budget, 0),
    )
    return report
