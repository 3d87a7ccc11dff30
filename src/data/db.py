"""
LifeOS Reminders — SQLite storage.

ReminderDB is the Reminder Store: the only table this engine writes to.
SourceDB is a read-only adapter over the host application's tables
(tasks, meetings, people, change plans, projects, settings) for deployments
that keep them in the same SQLite file.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from src.data.models import (
    ChangePlan,
    DeliveryChannel,
    EntityKind,
    ImportantDate,
    MeetingSchedule,
    Milestone,
    Person,
    ProjectPlan,
    Reminder,
    ReminderDraft,
    ReminderKind,
    ReminderStatus,
    SourceDomain,
    Task,
)
from src.ports.reminder_port import ReminderNotFoundError, ReminderStoreError
from src.ports.source_port import SourceError

logger = logging.getLogger(__name__)

# Columns a lifecycle update may touch
_UPDATABLE = frozenset({"status", "snooze_count", "snoozed_until", "archived_at"})


def _default_db_path() -> str:
    from src.config import settings
    return settings.DATABASE_PATH


class ReminderDB:
    """SQLite-backed reminder store.

    The dedup invariant lives in the schema: a partial unique index over
    (owner, kind, related entity) restricted to active statuses, combined
    with INSERT OR IGNORE, so two concurrent generators cannot both insert.
    """

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            db_path = _default_db_path()

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Reminder store failure: %s", exc)
            raise ReminderStoreError(f"Reminder storage failed: {exc}") from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create the reminders table and its indexes if they don't exist."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner               INTEGER NOT NULL,
                    kind                TEXT    NOT NULL,
                    title               TEXT    NOT NULL,
                    body                TEXT,
                    channel             TEXT    NOT NULL DEFAULT 'morning_digest',
                    scheduled_at        TEXT,
                    status              TEXT    NOT NULL DEFAULT 'pending',
                    related_entity_kind TEXT,
                    related_entity_id   TEXT,
                    source_domain       TEXT    NOT NULL,
                    snooze_count        INTEGER NOT NULL DEFAULT 0,
                    snoozed_until       TEXT,
                    created_at          TEXT    NOT NULL,
                    updated_at          TEXT    NOT NULL,
                    metadata            TEXT    NOT NULL DEFAULT '{}',
                    archived_at         TEXT
                )
            """)
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS reminders_active_dedup
                ON reminders (owner, kind, related_entity_kind, related_entity_id)
                WHERE status IN ('pending', 'delivered', 'snoozed')
                  AND related_entity_id IS NOT NULL
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS reminders_owner_status
                ON reminders (owner, status, channel)
            """)
        logger.debug("Reminders table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        entity_kind = row["related_entity_kind"]
        return Reminder(
            id=row["id"],
            owner=row["owner"],
            kind=ReminderKind(row["kind"]),
            title=row["title"],
            body=row["body"],
            channel=DeliveryChannel(row["channel"]),
            scheduled_at=row["scheduled_at"],
            status=ReminderStatus(row["status"]),
            related_entity_kind=EntityKind(entity_kind) if entity_kind else None,
            related_entity_id=row["related_entity_id"],
            source_domain=SourceDomain(row["source_domain"]),
            metadata=json.loads(row["metadata"] or "{}"),
            snooze_count=row["snooze_count"],
            snoozed_until=row["snoozed_until"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            archived_at=row["archived_at"],
        )

    async def insert(self, draft: ReminderDraft, now: str) -> Reminder | None:
        """Insert a pending reminder. Returns None if the dedup index blocks it."""
        entity_kind = draft.related_entity_kind.value if draft.related_entity_kind else None
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO reminders
                    (owner, kind, title, body, channel, scheduled_at, status,
                     related_entity_kind, related_entity_id, source_domain,
                     metadata, snooze_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    draft.owner, draft.kind.value, draft.title, draft.body,
                    draft.channel.value, draft.scheduled_at,
                    entity_kind, draft.related_entity_id or None,
                    draft.source_domain.value, json.dumps(draft.metadata),
                    now, now,
                ),
            )
            if cursor.rowcount == 0:
                logger.debug(
                    "Duplicate suppressed by store: %s %s/%s",
                    draft.kind.value, entity_kind, draft.related_entity_id,
                )
                return None
            reminder_id = cursor.lastrowid

        reminder = Reminder(
            id=reminder_id,
            owner=draft.owner,
            kind=draft.kind,
            title=draft.title,
            body=draft.body,
            channel=draft.channel,
            scheduled_at=draft.scheduled_at,
            status=ReminderStatus.PENDING,
            related_entity_kind=draft.related_entity_kind,
            related_entity_id=draft.related_entity_id or None,
            source_domain=draft.source_domain,
            metadata=dict(draft.metadata),
            created_at=now,
            updated_at=now,
        )
        logger.info(
            "Reminder added: #%d %s '%s' via %s",
            reminder_id, draft.kind.value, draft.title, draft.channel.value,
        )
        return reminder

    async def get(self, owner: int, reminder_id: int) -> Reminder | None:
        """Fetch a single reminder by ID, scoped to its owner."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM reminders WHERE id = ? AND owner = ?",
                (reminder_id, owner),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_reminder(row)

    async def find_active(
        self,
        owner: int,
        kind: ReminderKind,
        entity_kind: EntityKind,
        entity_id: str,
    ) -> Reminder | None:
        """Return the active reminder holding a dedup key, if any."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM reminders
                WHERE owner = ? AND kind = ?
                  AND related_entity_kind = ? AND related_entity_id = ?
                  AND status IN ('pending', 'delivered', 'snoozed')
                  AND archived_at IS NULL
                LIMIT 1
                """,
                (owner, kind.value, entity_kind.value, entity_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_reminder(row)

    async def count_for_entity(
        self, owner: int, kind: ReminderKind, entity_id: str,
    ) -> int:
        """Count reminders of a kind ever created for an entity (any status)."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM reminders
                WHERE owner = ? AND kind = ? AND related_entity_id = ?
                """,
                (owner, kind.value, entity_id),
            ).fetchone()
        return row[0]

    async def list_reminders(
        self,
        owner: int,
        statuses: frozenset[ReminderStatus],
        channel: DeliveryChannel | None = None,
    ) -> list[Reminder]:
        """List non-archived reminders in the given statuses, oldest first."""
        status_values = sorted(s.value for s in statuses)
        placeholders = ", ".join("?" for _ in status_values)
        query = (
            "SELECT * FROM reminders "
            f"WHERE owner = ? AND archived_at IS NULL AND status IN ({placeholders})"
        )
        params: list = [owner, *status_values]
        if channel is not None:
            query += " AND channel = ?"
            params.append(channel.value)
        query += " ORDER BY created_at, id"

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_reminder(r) for r in rows]

    async def update(
        self, owner: int, reminder_id: int, now: str, **fields: object,
    ) -> Reminder:
        """Apply a partial update to one reminder and bump updated_at."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update reminder columns: {sorted(unknown)}")

        assignments = ["updated_at = ?"]
        params: list = [now]
        for column, value in fields.items():
            if isinstance(value, ReminderStatus):
                value = value.value
            assignments.append(f"{column} = ?")
            params.append(value)
        params.extend([reminder_id, owner])

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE reminders SET {', '.join(assignments)} WHERE id = ? AND owner = ?",
                params,
            )
            if cursor.rowcount == 0:
                raise ReminderNotFoundError(f"Reminder {reminder_id} not found")
            row = conn.execute(
                "SELECT * FROM reminders WHERE id = ?", (reminder_id,),
            ).fetchone()

        return self._row_to_reminder(row)

    async def archive_delivered_before(
        self, owner: int, cutoff: str, now: str,
    ) -> int:
        """Archive delivered reminders last touched before cutoff."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE reminders
                SET status = 'archived', archived_at = ?, updated_at = ?
                WHERE owner = ? AND status = 'delivered' AND updated_at < ?
                """,
                (now, now, owner, cutoff),
            )
        return cursor.rowcount

    async def dismiss_snoozed_at_least(
        self, owner: int, snooze_count: int, now: str,
    ) -> int:
        """Dismiss snoozed reminders that reached a snooze count."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE reminders
                SET status = 'dismissed', updated_at = ?
                WHERE owner = ? AND status = 'snoozed' AND snooze_count >= ?
                """,
                (now, owner, snooze_count),
            )
        return cursor.rowcount

    async def count_delivered_since(
        self, owner: int, channel: DeliveryChannel, since: str,
    ) -> int:
        """Count reminders on a channel marked delivered at or after since."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM reminders
                WHERE owner = ? AND channel = ? AND status = 'delivered'
                  AND updated_at >= ?
                """,
                (owner, channel.value, since),
            ).fetchone()
        return row[0]


class SourceDB:
    """Read-only SQLite adapter implementing every source port.

    The host application owns these tables; they are created here only so
    that a fresh database file is usable.
    """

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            db_path = _default_db_path()

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch(self, query: str, params: list | tuple = ()) -> list[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            logger.error("Source read failed: %s", exc)
            raise SourceError(f"Source read failed: {exc}") from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS tasks (
                        id              TEXT PRIMARY KEY,
                        owner           INTEGER NOT NULL,
                        title           TEXT NOT NULL,
                        due_date        TEXT,
                        status          TEXT NOT NULL DEFAULT 'pending',
                        archived        INTEGER NOT NULL DEFAULT 0,
                        parent_id       TEXT,
                        recurrence_rule TEXT
                    );
                    CREATE TABLE IF NOT EXISTS meeting_schedules (
                        id                TEXT PRIMARY KEY,
                        owner             INTEGER NOT NULL,
                        meeting_type      TEXT NOT NULL,
                        related_person_id TEXT,
                        next_due_date     TEXT,
                        active            INTEGER NOT NULL DEFAULT 1
                    );
                    CREATE TABLE IF NOT EXISTS people (
                        id              TEXT PRIMARY KEY,
                        owner           INTEGER NOT NULL,
                        name            TEXT NOT NULL,
                        important_dates TEXT NOT NULL DEFAULT '[]',
                        is_primary      INTEGER NOT NULL DEFAULT 0,
                        archived        INTEGER NOT NULL DEFAULT 0
                    );
                    CREATE TABLE IF NOT EXISTS change_plans (
                        id                TEXT PRIMARY KEY,
                        owner             INTEGER NOT NULL,
                        title             TEXT NOT NULL,
                        status            TEXT NOT NULL DEFAULT 'active',
                        next_checkin_date TEXT
                    );
                    CREATE TABLE IF NOT EXISTS project_plans (
                        id                TEXT PRIMARY KEY,
                        owner             INTEGER NOT NULL,
                        title             TEXT NOT NULL,
                        status            TEXT NOT NULL DEFAULT 'active',
                        nudge_approaching INTEGER NOT NULL DEFAULT 1,
                        nudge_overdue     INTEGER NOT NULL DEFAULT 1
                    );
                    CREATE TABLE IF NOT EXISTS milestones (
                        id          TEXT PRIMARY KEY,
                        owner       INTEGER NOT NULL,
                        plan_id     TEXT NOT NULL,
                        title       TEXT NOT NULL,
                        status      TEXT NOT NULL DEFAULT 'not_started',
                        target_date TEXT
                    );
                    CREATE TABLE IF NOT EXISTS user_settings (
                        owner         INTEGER PRIMARY KEY,
                        settings_json TEXT NOT NULL DEFAULT '{}'
                    );
                """)
        finally:
            conn.close()
        logger.debug("Source tables initialized at %s", self._db_path)

    async def list_tasks(self, owner: int) -> list[Task]:
        rows = self._fetch("SELECT * FROM tasks WHERE owner = ? ORDER BY due_date", (owner,))
        return [
            Task(
                id=r["id"],
                title=r["title"],
                due_date=r["due_date"],
                status=r["status"],
                archived=bool(r["archived"]),
                parent_id=r["parent_id"],
                recurrence_rule=r["recurrence_rule"],
            )
            for r in rows
        ]

    async def list_meetings(self, owner: int) -> list[MeetingSchedule]:
        rows = self._fetch("SELECT * FROM meeting_schedules WHERE owner = ?", (owner,))
        return [
            MeetingSchedule(
                id=r["id"],
                meeting_type=r["meeting_type"],
                next_due_date=r["next_due_date"],
                related_person_id=r["related_person_id"],
                active=bool(r["active"]),
            )
            for r in rows
        ]

    async def list_people(self, owner: int) -> list[Person]:
        rows = self._fetch("SELECT * FROM people WHERE owner = ? ORDER BY name", (owner,))
        people = []
        for r in rows:
            try:
                raw_dates = json.loads(r["important_dates"] or "[]")
            except json.JSONDecodeError:
                logger.warning("Person %s has malformed important_dates, skipping them", r["id"])
                raw_dates = []
            dates = [
                ImportantDate(
                    label=d.get("label", ""),
                    date=d.get("date", ""),
                    recurring=bool(d.get("recurring", False)),
                )
                for d in raw_dates
                if isinstance(d, dict)
            ]
            people.append(Person(
                id=r["id"],
                name=r["name"],
                important_dates=dates,
                is_primary=bool(r["is_primary"]),
                archived=bool(r["archived"]),
            ))
        return people

    async def get_names(self, owner: int, person_ids: list[str]) -> dict[str, str]:
        if not person_ids:
            return {}
        placeholders = ", ".join("?" for _ in person_ids)
        rows = self._fetch(
            f"SELECT id, name FROM people WHERE owner = ? AND id IN ({placeholders})",
            [owner, *person_ids],
        )
        return {r["id"]: r["name"] for r in rows}

    async def list_change_plans(self, owner: int) -> list[ChangePlan]:
        rows = self._fetch("SELECT * FROM change_plans WHERE owner = ?", (owner,))
        return [
            ChangePlan(
                id=r["id"],
                title=r["title"],
                next_checkin_date=r["next_checkin_date"],
                status=r["status"],
            )
            for r in rows
        ]

    async def list_projects(self, owner: int) -> list[ProjectPlan]:
        rows = self._fetch("SELECT * FROM project_plans WHERE owner = ?", (owner,))
        return [
            ProjectPlan(
                id=r["id"],
                title=r["title"],
                status=r["status"],
                nudge_approaching=bool(r["nudge_approaching"]),
                nudge_overdue=bool(r["nudge_overdue"]),
            )
            for r in rows
        ]

    async def list_milestones(self, owner: int, plan_ids: list[str]) -> list[Milestone]:
        if not plan_ids:
            return []
        placeholders = ", ".join("?" for _ in plan_ids)
        rows = self._fetch(
            f"SELECT * FROM milestones WHERE owner = ? AND plan_id IN ({placeholders}) "
            "ORDER BY target_date",
            [owner, *plan_ids],
        )
        return [
            Milestone(
                id=r["id"],
                plan_id=r["plan_id"],
                title=r["title"],
                target_date=r["target_date"],
                status=r["status"],
            )
            for r in rows
        ]

    async def get_settings(self, owner: int) -> dict | None:
        rows = self._fetch(
            "SELECT settings_json FROM user_settings WHERE owner = ?", (owner,),
        )
        if not rows:
            return None
        try:
            raw = json.loads(rows[0]["settings_json"])
        except json.JSONDecodeError:
            logger.warning("Settings for owner %d are not valid JSON, using defaults", owner)
            return None
        return raw if isinstance(raw, dict) else None

    async def list_owners(self) -> list[int]:
        """Owners that have a settings record."""
        rows = self._fetch("SELECT owner FROM user_settings ORDER BY owner")
        return [r["owner"] for r in rows]
