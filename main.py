"""
LifeOS Reminders — Entry Point.

`python main.py` runs one reminder pass for every configured owner:
cleanup, generation, then push dispatch when a Telegram token is set.
Safe to run as often as you like; every step is idempotent.
"""

import asyncio
import logging

from src.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from telegram import Bot

from src.adapters.telegram_notifier import TelegramNotifier
from src.core.reminder_service import ReminderService
from src.data.db import ReminderDB, SourceDB
from src.ports.source_port import Sources

logger = logging.getLogger(__name__)


async def _run_owners(source_db: SourceDB, notifier: TelegramNotifier | None) -> None:
    sources = Sources(
        tasks=source_db,
        meetings=source_db,
        people=source_db,
        change_plans=source_db,
        projects=source_db,
        settings=source_db,
    )
    service = ReminderService(
        ReminderDB(), sources, notifier=notifier, stale_days=settings.STALE_DELIVERED_DAYS,
    )

    owners = settings.OWNER_IDS or await source_db.list_owners()
    if not owners:
        logger.warning("No owners configured; set OWNER_IDS or add user_settings rows")
        return

    for owner in owners:
        cleanup = await service.cleanup(owner)
        logger.info("Owner %d cleanup: %s", owner, cleanup.message)

        report = await service.generate(owner)
        if not report.ok:
            logger.warning("Owner %d: %s", owner, report.error_message)

        dispatch = await service.dispatch_push(owner)
        logger.info("Owner %d push: %s", owner, dispatch.message)


async def run_once() -> None:
    source_db = SourceDB()
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.info("TELEGRAM_BOT_TOKEN not set; push reminders stay pending")
        await _run_owners(source_db, None)
        return

    async with Bot(settings.TELEGRAM_BOT_TOKEN) as bot:
        await _run_owners(source_db, TelegramNotifier(bot))


if __name__ == "__main__":
    asyncio.run(run_once())
