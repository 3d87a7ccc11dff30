"""
LifeOS Reminders — Daily Generator.

Runs every domain rule once for an owner. Each rule is its own unit of
work: a failing rule is recorded in the report and the remaining rules
still run. Re-running is always safe because creation is deduplicated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable
from zoneinfo import ZoneInfo

from src.core.dedup import Deduplicator
from src.core.rules import RULES, RuleContext, RuleFn
from src.core.timeutil import local_today, tomorrow, utc_now
from src.data.models import NotificationSettings

if TYPE_CHECKING:
    from src.data.models import Reminder
    from src.ports.reminder_port import ReminderStore
    from src.ports.source_port import Sources

logger = logging.getLogger(__name__)


@dataclass
class RuleFailure:
    rule: str
    message: str


@dataclass
class GenerationReport:
    """Outcome of one generation run for one owner."""

    owner: int
    today: str
    created: list[Reminder] = field(default_factory=list)
    rules_run: list[str] = field(default_factory=list)
    failures: list[RuleFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def error_message(self) -> str:
        """Human-readable summary of failed rules, empty when all succeeded."""
        if self.ok:
            return ""
        names = ", ".join(f.rule for f in self.failures)
        return (
            f"Some reminders could not be generated ({names}). "
            "They will be retried the next time reminders refresh."
        )


async def resolve_settings(
    sources: Sources, owner: int,
) -> NotificationSettings:
    """Read the owner's settings record, falling back to defaults.

    A missing store, missing record or failed read all mean defaults.
    """
    if sources.settings is None:
        return NotificationSettings()
    try:
        raw = await sources.settings.get_settings(owner)
    except Exception as exc:
        logger.warning("Settings lookup failed for owner %d, using defaults: %s", owner, exc)
        return NotificationSettings()
    return NotificationSettings.from_record(raw)


def owner_timezone(notification_settings: NotificationSettings) -> ZoneInfo:
    """The owner's zone, or the application default."""
    if notification_settings.timezone:
        return ZoneInfo(notification_settings.timezone)
    from src.config import settings
    return ZoneInfo(settings.TIMEZONE)


class ReminderGenerator:
    """Evaluates every domain rule for one owner per call."""

    def __init__(
        self,
        store: ReminderStore,
        sources: Sources,
        clock: Callable[[], datetime] = utc_now,
        rules: list[tuple[str, RuleFn]] | None = None,
    ) -> None:
        self._store = store
        self._sources = sources
        self._clock = clock
        self._rules = rules if rules is not None else RULES
        self._dedup = Deduplicator(store, clock)

    async def generate(
        self,
        owner: int,
        notification_settings: NotificationSettings | None = None,
    ) -> GenerationReport:
        """Run all rules once. Idempotent against unchanged source data.

        Args:
            owner: The user whose reminders are generated.
            notification_settings: Explicit settings; read from the settings
                store when omitted.
        """
        if notification_settings is None:
            notification_settings = await resolve_settings(self._sources, owner)

        tz = owner_timezone(notification_settings)
        today = local_today(tz, self._clock())
        ctx = RuleContext(
            owner=owner,
            settings=notification_settings,
            today=today,
            tomorrow=tomorrow(today),
            sources=self._sources,
            dedup=self._dedup,
            store=self._store,
        )
        report = GenerationReport(owner=owner, today=today.isoformat())

        for name, rule in self._rules:
            try:
                created = await rule(ctx)
            except Exception as exc:
                logger.error("Rule '%s' failed for owner %d: %s", name, owner, exc)
                report.failures.append(RuleFailure(rule=name, message=str(exc)))
                continue
            report.rules_run.append(name)
            report.created.extend(created)
            if created:
                logger.info(
                    "Rule '%s' created %d reminder(s) for owner %d",
                    name, len(created), owner,
                )

        logger.info(
            "Generation for owner %d on %s: %d created, %d rule failure(s)",
            owner, report.today, len(report.created), len(report.failures),
        )
        return report
