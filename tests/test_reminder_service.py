"""Tests for src.core.reminder_service — the UI-facing facade."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.core.reminder_service import (
    CleanupResponse,
    DispatchResponse,
    ErrorResponse,
    NoActionResponse,
    ReminderListResponse,
    ReminderResponse,
    ReminderService,
    ResponseKind,
)
from src.data.models import (
    DeliveryChannel,
    EntityKind,
    ReminderKind,
    ReminderStatus,
    SnoozePreset,
    Task,
)
from src.ports.reminder_port import ReminderStoreError

from conftest import OWNER


class TestCreateCustom:
    @pytest.mark.asyncio
    async def test_unscheduled_goes_to_morning_digest(self, service):
        response = await service.create_custom(OWNER, "  Buy flowers  ", body="For Dana")
        assert isinstance(response, ReminderResponse)
        assert response.kind == ResponseKind.SUCCESS
        assert response.reminder.title == "Buy flowers"
        assert response.reminder.kind is ReminderKind.CUSTOM
        assert response.reminder.channel is DeliveryChannel.MORNING_DIGEST

    @pytest.mark.asyncio
    async def test_scheduled_goes_to_push(self, service):
        when = datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)
        response = await service.create_custom(OWNER, "Call Avi", scheduled_at=when)
        assert response.reminder.channel is DeliveryChannel.PUSH
        assert response.reminder.scheduled_at == "2026-03-10T18:00:00+00:00"

    @pytest.mark.asyncio
    async def test_string_schedule_normalized_to_utc(self, service):
        response = await service.create_custom(
            OWNER, "Call Avi", scheduled_at="2026-03-10T13:00:00-05:00",
        )
        assert response.reminder.scheduled_at == "2026-03-10T18:00:00+00:00"

    @pytest.mark.asyncio
    async def test_bad_schedule(self, service):
        response = await service.create_custom(OWNER, "Call Avi", scheduled_at="whenever")
        assert isinstance(response, ErrorResponse)
        assert response.kind == ResponseKind.ERROR

    @pytest.mark.asyncio
    async def test_empty_title(self, service):
        response = await service.create_custom(OWNER, "   ")
        assert response.kind == ResponseKind.ERROR

    @pytest.mark.asyncio
    async def test_dedup_with_related_entity(self, service):
        kwargs = dict(related_entity_kind=EntityKind.TASK, related_entity_id="t1")
        first = await service.create_custom(OWNER, "Follow up", **kwargs)
        second = await service.create_custom(OWNER, "Follow up", **kwargs)
        assert first.kind == ResponseKind.SUCCESS
        assert isinstance(second, NoActionResponse)
        assert second.kind == ResponseKind.NO_ACTION

    @pytest.mark.asyncio
    async def test_no_dedup_without_entity(self, service):
        await service.create_custom(OWNER, "Drink water")
        second = await service.create_custom(OWNER, "Drink water")
        assert second.kind == ResponseKind.SUCCESS

    @pytest.mark.asyncio
    async def test_store_error_becomes_error_response(self, fake_sources, clock):
        store = AsyncMock()
        store.find_active.side_effect = ReminderStoreError("disk I/O error")
        store.insert.side_effect = ReminderStoreError("disk I/O error")
        svc = ReminderService(store, fake_sources.as_sources(), clock=clock)

        response = await svc.create_custom(
            OWNER, "Follow up", related_entity_kind=EntityKind.TASK, related_entity_id="t1",
        )
        assert response.kind == ResponseKind.ERROR
        assert "try again" in response.message


class TestReads:
    @pytest.mark.asyncio
    async def test_pay_rent_flow_with_snooze(self, service, fake_sources, clock):
        fake_sources.settings_record = {"morning_digest_time": "06:30"}
        fake_sources.tasks = [Task(id="t1", title="Pay rent", due_date="2026-03-10")]

        await service.generate(OWNER)
        digest = await service.morning_digest(OWNER)
        assert isinstance(digest, ReminderListResponse)
        assert digest.kind == ResponseKind.QUERY_RESULT
        [reminder] = digest.reminders
        assert reminder.related_entity_id == "t1"

        snoozed = await service.snooze(OWNER, reminder.id, SnoozePreset.TOMORROW)
        assert snoozed.reminder.snoozed_until == "2026-03-11T06:30:00+00:00"
        assert snoozed.reminder.snooze_count == 1

        assert (await service.morning_digest(OWNER)).reminders == []
        clock.now = datetime(2026, 3, 11, 6, 30, tzinfo=timezone.utc)
        assert len((await service.morning_digest(OWNER)).reminders) == 1

    @pytest.mark.asyncio
    async def test_evening_and_pending(self, service):
        await service.create_custom(OWNER, "Drink water")
        assert len((await service.pending(OWNER)).reminders) == 1
        assert (await service.evening_digest(OWNER)).reminders == []

    @pytest.mark.asyncio
    async def test_read_store_error(self, fake_sources, clock):
        store = AsyncMock()
        store.list_reminders.side_effect = ReminderStoreError("database is locked")
        svc = ReminderService(store, fake_sources.as_sources(), clock=clock)

        response = await svc.pending(OWNER)
        assert isinstance(response, ErrorResponse)


class TestTransitions:
    @pytest.mark.asyncio
    async def test_dismiss(self, service):
        created = await service.create_custom(OWNER, "Drink water")
        response = await service.dismiss(OWNER, created.reminder.id)
        assert response.kind == ResponseKind.SUCCESS
        assert response.reminder.status is ReminderStatus.DISMISSED

    @pytest.mark.asyncio
    async def test_act_on_and_mark_delivered(self, service):
        a = await service.create_custom(OWNER, "A")
        b = await service.create_custom(OWNER, "B")
        assert (await service.act_on(OWNER, a.reminder.id)).reminder.status is ReminderStatus.ACTED_ON
        assert (
            (await service.mark_delivered(OWNER, b.reminder.id)).reminder.status
            is ReminderStatus.DELIVERED
        )

    @pytest.mark.asyncio
    async def test_not_found(self, service):
        response = await service.dismiss(OWNER, 404)
        assert response.kind == ResponseKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_archived_is_error(self, service):
        created = await service.create_custom(OWNER, "Drink water")
        await service.archive(OWNER, created.reminder.id)
        response = await service.dismiss(OWNER, created.reminder.id)
        assert response.kind == ResponseKind.ERROR
        assert "archived" in response.message

    @pytest.mark.asyncio
    async def test_dismissed_cannot_be_snoozed(self, service):
        created = await service.create_custom(OWNER, "Call the bank")
        await service.dismiss(OWNER, created.reminder.id)
        response = await service.snooze(OWNER, created.reminder.id, SnoozePreset.ONE_HOUR)
        assert response.kind == ResponseKind.ERROR
        assert "dismissed" in response.message

    @pytest.mark.asyncio
    async def test_third_snooze_dismisses(self, service):
        created = await service.create_custom(OWNER, "Stretch")
        rid = created.reminder.id
        await service.snooze(OWNER, rid, SnoozePreset.ONE_HOUR)
        await service.snooze(OWNER, rid, SnoozePreset.ONE_HOUR)

        response = await service.snooze(OWNER, rid, SnoozePreset.ONE_HOUR)
        assert response.kind == ResponseKind.SUCCESS
        assert response.reminder.status is ReminderStatus.DISMISSED
        assert response.reminder.snooze_count == 2
        assert "dismissed" in response.message


class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_cleanup(self, service):
        response = await service.cleanup(OWNER)
        assert isinstance(response, CleanupResponse)
        assert response.report.archived == 0

    @pytest.mark.asyncio
    async def test_dispatch_without_notifier(self, service):
        response = await service.dispatch_push(OWNER)
        assert response.kind == ResponseKind.NO_ACTION

    @pytest.mark.asyncio
    async def test_dispatch_with_notifier(self, reminder_db, fake_sources, clock):
        notifier = AsyncMock()
        svc = ReminderService(reminder_db, fake_sources.as_sources(), notifier, clock)
        await svc.create_custom(
            OWNER, "Call Avi", scheduled_at="2026-03-10T13:00:00+00:00",
        )

        response = await svc.dispatch_push(OWNER)
        assert isinstance(response, DispatchResponse)
        assert response.report.sent == 1
        notifier.send_reminder.assert_awaited_once()
