"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance and renders a reminder as a short message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from telegram import Bot

if TYPE_CHECKING:
    from src.data.models import Reminder

logger = logging.getLogger(__name__)


def format_reminder(reminder: Reminder) -> str:
    """Title in bold, optional body on the next line."""
    text = f"*{reminder.title}*"
    if reminder.body:
        text += f"\n{reminder.body}"
    return text


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_reminder(self, user_id: int, reminder: Reminder) -> None:
        await self._bot.send_message(
            chat_id=user_id,
            text=format_reminder(reminder),
            parse_mode="Markdown",
        )
        logger.debug("Reminder #%d pushed to %d", reminder.id, user_id)
