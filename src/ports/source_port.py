"""Source ports — read-only interfaces to the stores the rules scan.

Each domain (tasks, meetings, people, change plans, projects, settings)
belongs to another subsystem. The engine only reads from them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.data.models import (
        ChangePlan,
        MeetingSchedule,
        Milestone,
        Person,
        ProjectPlan,
        Task,
    )


class SourceError(Exception):
    """Raised when a source store cannot be read."""


class TaskSource(Protocol):
    async def list_tasks(self, owner: int) -> list[Task]: ...


class MeetingSource(Protocol):
    async def list_meetings(self, owner: int) -> list[MeetingSchedule]: ...


class PeopleSource(Protocol):
    async def list_people(self, owner: int) -> list[Person]: ...

    async def get_names(self, owner: int, person_ids: list[str]) -> dict[str, str]:
        """Batch lookup: person id → display name."""
        ...


class ChangePlanSource(Protocol):
    async def list_change_plans(self, owner: int) -> list[ChangePlan]: ...


class ProjectSource(Protocol):
    async def list_projects(self, owner: int) -> list[ProjectPlan]: ...

    async def list_milestones(
        self, owner: int, plan_ids: list[str],
    ) -> list[Milestone]: ...


class SettingsSource(Protocol):
    async def get_settings(self, owner: int) -> dict | None:
        """Raw settings record, or None when the owner has none yet."""
        ...


@dataclass
class Sources:
    """The bundle of source stores handed to the rule evaluators."""

    tasks: TaskSource
    meetings: MeetingSource
    people: PeopleSource
    change_plans: ChangePlanSource
    projects: ProjectSource
    settings: SettingsSource | None = None
