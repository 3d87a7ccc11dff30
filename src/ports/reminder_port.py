"""Reminder store port — abstract interface for reminder persistence.

Core modules depend on this protocol, never on a specific database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.data.models import (
        DeliveryChannel,
        EntityKind,
        Reminder,
        ReminderDraft,
        ReminderKind,
        ReminderStatus,
    )


class ReminderStoreError(Exception):
    """Raised when a reminder persistence operation fails."""


class ReminderNotFoundError(ReminderStoreError):
    """Raised when a reminder id does not exist for the owner."""


class ReminderStore(Protocol):
    """Abstract reminder store used by core modules.

    Every call is scoped to an owner. Rows are never deleted.
    """

    async def insert(self, draft: ReminderDraft, now: str) -> Reminder | None:
        """Persist a new pending reminder.

        Returns None when an active reminder already holds the same
        dedup key.
        """
        ...

    async def get(self, owner: int, reminder_id: int) -> Reminder | None: ...

    async def find_active(
        self,
        owner: int,
        kind: ReminderKind,
        entity_kind: EntityKind,
        entity_id: str,
    ) -> Reminder | None: ...

    async def count_for_entity(
        self, owner: int, kind: ReminderKind, entity_id: str,
    ) -> int:
        """Count reminders of a kind ever created for an entity, any status."""
        ...

    async def list_reminders(
        self,
        owner: int,
        statuses: frozenset[ReminderStatus],
        channel: DeliveryChannel | None = None,
    ) -> list[Reminder]:
        """Non-archived reminders in the given statuses, oldest first."""
        ...

    async def update(
        self, owner: int, reminder_id: int, now: str, **fields: object,
    ) -> Reminder:
        """Apply a partial update and bump updated_at."""
        ...

    async def archive_delivered_before(
        self, owner: int, cutoff: str, now: str,
    ) -> int: ...

    async def dismiss_snoozed_at_least(
        self, owner: int, snooze_count: int, now: str,
    ) -> int: ...

    async def count_delivered_since(
        self, owner: int, channel: DeliveryChannel, since: str,
    ) -> int: ...
