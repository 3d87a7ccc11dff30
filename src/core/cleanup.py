"""Cleanup sweep — periodic housekeeping over one owner's reminders.

Archives delivered reminders nobody has touched for a while and dismisses
reminders that were snoozed past the force-dismiss threshold.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from src.core.timeutil import to_iso, utc_now

if TYPE_CHECKING:
    from src.ports.reminder_port import ReminderStore

logger = logging.getLogger(__name__)

STALE_DELIVERED_DAYS = 30

# TODO: decide whether this should share MAX_SNOOZES with the lifecycle
# controller, which dismisses one snooze earlier.
FORCE_DISMISS_SNOOZES = 3


@dataclass
class CleanupReport:
    owner: int
    archived: int = 0
    dismissed: int = 0


async def run_cleanup(
    store: ReminderStore,
    owner: int,
    clock: Callable[[], datetime] = utc_now,
    stale_days: int = STALE_DELIVERED_DAYS,
) -> CleanupReport:
    """Archive stale delivered reminders and force-dismiss over-snoozed ones."""
    now = clock()
    now_iso = to_iso(now)
    cutoff = to_iso(now - timedelta(days=stale_days))

    archived = await store.archive_delivered_before(owner, cutoff, now_iso)
    dismissed = await store.dismiss_snoozed_at_least(owner, FORCE_DISMISS_SNOOZES, now_iso)

    logger.info(
        "Cleanup for owner %d: %d archived, %d force-dismissed",
        owner, archived, dismissed,
    )
    return CleanupReport(owner=owner, archived=archived, dismissed=dismissed)
