"""Notification port — abstract interface for pushing reminders to a device.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.data.models import Reminder


class NotificationPort(Protocol):
    """Abstract push transport used by the push dispatcher."""

    async def send_reminder(self, user_id: int, reminder: Reminder) -> None: ...
