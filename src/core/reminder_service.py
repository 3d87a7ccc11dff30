"""
LifeOS Reminders — UI-Agnostic Reminder Service.

The single entry point for whatever renders reminder cards: generation,
the pending list and digests, lifecycle actions, custom reminders,
housekeeping and push dispatch. Returns structured response objects and
never raises for store failures; the message on an ErrorResponse is safe
to show to the user and the action can be retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable

from src.core.cleanup import STALE_DELIVERED_DAYS, CleanupReport, run_cleanup
from src.core.dedup import Deduplicator
from src.core.generator import (
    GenerationReport,
    ReminderGenerator,
    owner_timezone,
    resolve_settings,
)
from src.core.lifecycle import InvalidTransitionError, LifecycleController
from src.core.push_dispatcher import DispatchReport, dispatch_push
from src.core.readers import BatchReader
from src.core.timeutil import parse_iso, to_iso, utc_now
from src.data.models import (
    DeliveryChannel,
    ReminderDraft,
    ReminderKind,
    ReminderStatus,
    SourceDomain,
)
from src.ports.reminder_port import ReminderNotFoundError, ReminderStoreError

if TYPE_CHECKING:
    from src.data.models import EntityKind, NotificationSettings, Reminder, SnoozePreset
    from src.ports.notification_port import NotificationPort
    from src.ports.reminder_port import ReminderStore
    from src.ports.source_port import Sources

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    NOT_FOUND = "not_found"
    NO_ACTION = "no_action"
    QUERY_RESULT = "query_result"


@dataclass
class ServiceResponse:
    kind: ResponseKind
    message: str


@dataclass
class ReminderResponse(ServiceResponse):
    reminder: Reminder | None = None


@dataclass
class ReminderListResponse(ServiceResponse):
    reminders: list[Reminder] = field(default_factory=list)


@dataclass
class CleanupResponse(ServiceResponse):
    report: CleanupReport | None = None


@dataclass
class DispatchResponse(ServiceResponse):
    report: DispatchReport | None = None


@dataclass
class ErrorResponse(ServiceResponse):
    pass


@dataclass
class NoActionResponse(ServiceResponse):
    pass


_STORE_ERROR_MESSAGE = "Reminders are unavailable right now. Please try again."


# ---------------------------------------------------------------------------
# ReminderService
# ---------------------------------------------------------------------------


class ReminderService:
    """Facade over the reminder engine for one host application."""

    def __init__(
        self,
        store: ReminderStore,
        sources: Sources,
        notifier: NotificationPort | None = None,
        clock: Callable[[], datetime] = utc_now,
        stale_days: int = STALE_DELIVERED_DAYS,
    ) -> None:
        self._store = store
        self._sources = sources
        self._notifier = notifier
        self._clock = clock
        self._stale_days = stale_days
        self._generator = ReminderGenerator(store, sources, clock)
        self._lifecycle = LifecycleController(store, clock)
        self._reader = BatchReader(store, clock)
        self._dedup = Deduplicator(store, clock)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        owner: int,
        notification_settings: NotificationSettings | None = None,
    ) -> GenerationReport:
        """Run every domain rule once. Failures are reported per rule."""
        return await self._generator.generate(owner, notification_settings)

    async def create_custom(
        self,
        owner: int,
        title: str,
        body: str | None = None,
        scheduled_at: datetime | str | None = None,
        related_entity_kind: EntityKind | None = None,
        related_entity_id: str | None = None,
    ) -> ServiceResponse:
        """Create a user-authored reminder.

        Scheduled reminders go out by push; unscheduled ones land in the
        morning digest. Deduplicated only when a related entity is given.
        """
        if not title or not title.strip():
            return ErrorResponse(kind=ResponseKind.ERROR, message="A reminder needs a title.")

        scheduled_iso = None
        if scheduled_at is not None:
            try:
                raw = scheduled_at if isinstance(scheduled_at, str) else scheduled_at.isoformat()
                scheduled_iso = to_iso(parse_iso(raw))
            except ValueError:
                return ErrorResponse(
                    kind=ResponseKind.ERROR,
                    message=f"Could not understand the time '{scheduled_at}'.",
                )

        draft = ReminderDraft(
            owner=owner,
            kind=ReminderKind.CUSTOM,
            title=title.strip(),
            body=body or None,
            channel=DeliveryChannel.PUSH if scheduled_iso else DeliveryChannel.MORNING_DIGEST,
            scheduled_at=scheduled_iso,
            related_entity_kind=related_entity_kind if related_entity_id else None,
            related_entity_id=related_entity_id if related_entity_kind else None,
            source_domain=SourceDomain.USER,
        )
        try:
            reminder = await self._dedup.create(draft)
        except ReminderStoreError as exc:
            logger.error("Custom reminder failed for owner %d: %s", owner, exc)
            return ErrorResponse(kind=ResponseKind.ERROR, message=_STORE_ERROR_MESSAGE)

        if reminder is None:
            return NoActionResponse(
                kind=ResponseKind.NO_ACTION,
                message="A reminder for this already exists.",
            )
        return ReminderResponse(
            kind=ResponseKind.SUCCESS, message="Reminder created.", reminder=reminder,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read(self, fetch) -> ServiceResponse:
        try:
            reminders = await fetch()
        except ReminderStoreError as exc:
            logger.error("Reminder read failed: %s", exc)
            return ErrorResponse(kind=ResponseKind.ERROR, message=_STORE_ERROR_MESSAGE)
        return ReminderListResponse(
            kind=ResponseKind.QUERY_RESULT,
            message=f"{len(reminders)} reminder(s)",
            reminders=reminders,
        )

    async def pending(
        self, owner: int, channel: DeliveryChannel | None = None,
    ) -> ServiceResponse:
        return await self._read(lambda: self._reader.pending(owner, channel))

    async def morning_digest(self, owner: int) -> ServiceResponse:
        return await self._read(lambda: self._reader.morning_digest(owner))

    async def evening_digest(self, owner: int) -> ServiceResponse:
        return await self._read(lambda: self._reader.evening_digest(owner))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _transition(self, reminder_id: int, action, success_message: str) -> ServiceResponse:
        try:
            reminder = await action()
        except ReminderNotFoundError:
            return ErrorResponse(
                kind=ResponseKind.NOT_FOUND,
                message=f"Reminder {reminder_id} was not found.",
            )
        except InvalidTransitionError as exc:
            return ErrorResponse(kind=ResponseKind.ERROR, message=f"{exc}.")
        except ReminderStoreError as exc:
            logger.error("Transition of reminder #%d failed: %s", reminder_id, exc)
            return ErrorResponse(kind=ResponseKind.ERROR, message=_STORE_ERROR_MESSAGE)
        return ReminderResponse(
            kind=ResponseKind.SUCCESS, message=success_message, reminder=reminder,
        )

    async def dismiss(self, owner: int, reminder_id: int) -> ServiceResponse:
        return await self._transition(
            reminder_id, lambda: self._lifecycle.dismiss(owner, reminder_id), "Dismissed.",
        )

    async def act_on(self, owner: int, reminder_id: int) -> ServiceResponse:
        return await self._transition(
            reminder_id, lambda: self._lifecycle.act_on(owner, reminder_id), "Done.",
        )

    async def mark_delivered(self, owner: int, reminder_id: int) -> ServiceResponse:
        return await self._transition(
            reminder_id,
            lambda: self._lifecycle.mark_delivered(owner, reminder_id),
            "Delivered.",
        )

    async def archive(self, owner: int, reminder_id: int) -> ServiceResponse:
        return await self._transition(
            reminder_id, lambda: self._lifecycle.archive(owner, reminder_id), "Archived.",
        )

    async def snooze(
        self, owner: int, reminder_id: int, preset: SnoozePreset,
    ) -> ServiceResponse:
        """Snooze using the owner's morning-digest time and timezone."""
        notification_settings = await resolve_settings(self._sources, owner)
        response = await self._transition(
            reminder_id,
            lambda: self._lifecycle.snooze(
                owner,
                reminder_id,
                preset,
                morning_time=notification_settings.morning_digest_time,
                tz=owner_timezone(notification_settings),
            ),
            "Snoozed.",
        )
        if isinstance(response, ReminderResponse) and (
            response.reminder.status is ReminderStatus.DISMISSED
        ):
            response.message = "Snoozed too many times, so it was dismissed."
        return response

    # ------------------------------------------------------------------
    # Housekeeping and delivery
    # ------------------------------------------------------------------

    async def cleanup(self, owner: int) -> ServiceResponse:
        try:
            report = await run_cleanup(self._store, owner, self._clock, self._stale_days)
        except ReminderStoreError as exc:
            logger.error("Cleanup failed for owner %d: %s", owner, exc)
            return ErrorResponse(kind=ResponseKind.ERROR, message=_STORE_ERROR_MESSAGE)
        return CleanupResponse(
            kind=ResponseKind.SUCCESS,
            message=f"{report.archived} archived, {report.dismissed} dismissed",
            report=report,
        )

    async def dispatch_push(self, owner: int) -> ServiceResponse:
        if self._notifier is None:
            return NoActionResponse(
                kind=ResponseKind.NO_ACTION, message="No push transport configured.",
            )
        notification_settings = await resolve_settings(self._sources, owner)
        try:
            report = await dispatch_push(
                self._store,
                self._notifier,
                owner,
                notification_settings,
                owner_timezone(notification_settings),
                self._clock,
            )
        except ReminderStoreError as exc:
            logger.error("Push dispatch failed for owner %d: %s", owner, exc)
            return ErrorResponse(kind=ResponseKind.ERROR, message=_STORE_ERROR_MESSAGE)
        return DispatchResponse(
            kind=ResponseKind.SUCCESS,
            message=f"{report.sent} sent",
            report=report,
        )
