"""Deduplicator — one active reminder per (owner, kind, related entity).

The store's unique index rejects the same duplicates, which covers two
sessions racing between the check and the insert.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from src.core.timeutil import to_iso, utc_now

if TYPE_CHECKING:
    from src.data.models import EntityKind, Reminder, ReminderDraft, ReminderKind
    from src.ports.reminder_port import ReminderStore

logger = logging.getLogger(__name__)


class Deduplicator:
    """Check-then-create over a ReminderStore."""

    def __init__(
        self,
        store: ReminderStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def exists(
        self,
        owner: int,
        kind: ReminderKind,
        entity_kind: EntityKind | None,
        entity_id: str | None,
    ) -> bool:
        """True if an active reminder already covers the tuple.

        Reminders without a related entity are never deduplicated.
        """
        if entity_kind is None or not entity_id:
            return False
        found = await self._store.find_active(owner, kind, entity_kind, entity_id)
        return found is not None

    async def create(self, draft: ReminderDraft) -> Reminder | None:
        """Create the reminder unless an active duplicate exists.

        Returns the new reminder, or None when it was deduplicated.
        """
        if await self.exists(
            draft.owner, draft.kind, draft.related_entity_kind, draft.related_entity_id,
        ):
            logger.debug(
                "Skipping duplicate %s for %s/%s",
                draft.kind.value,
                draft.related_entity_kind.value if draft.related_entity_kind else None,
                draft.related_entity_id,
            )
            return None
        return await self._store.insert(draft, to_iso(self._clock()))
