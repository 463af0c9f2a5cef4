"""SQLite implementation of the analytics-store repositories."""
from __future__ import annotations

import logging
from typing import Any

import aiosqlite

from taskforge.date_utils import utc_now_iso
from taskforge.db.locks import write_lock

logger = logging.getLogger("taskforge.db.analytics")

_GROUP_COLUMNS = {"status": "status", "user": "assigned_to"}
_METRIC_ORDER_COLUMNS = {"created_at", "updated_at", "time_spent"}


class SqliteProjectAnalyticsRepository:
    """Per-project analytics snapshot plus the grouped project writes."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, project_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM project_analytics WHERE project_id = ?", (project_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def upsert(self, row: dict) -> None:
        now = utc_now_iso()
        async with write_lock(self.db):
            await self.db.execute(
                """INSERT INTO project_analytics (
                    project_id, total_tasks, completed_tasks, in_progress_tasks,
                    pending_tasks, overdue_tasks, total_members, total_comments,
                    completion_rate, created_at, last_updated
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(project_id) DO UPDATE SET
                    total_tasks=excluded.total_tasks, completed_tasks=excluded.completed_tasks,
                    in_progress_tasks=excluded.in_progress_tasks, pending_tasks=excluded.pending_tasks,
                    overdue_tasks=excluded.overdue_tasks, total_members=excluded.total_members,
                    total_comments=excluded.total_comments, completion_rate=excluded.completion_rate,
                    last_updated=excluded.last_updated
                """,
                (
                    row["project_id"],
                    row.get("total_tasks", 0),
                    row.get("completed_tasks", 0),
                    row.get("in_progress_tasks", 0),
                    row.get("pending_tasks", 0),
                    row.get("overdue_tasks", 0),
                    row.get("total_members", 0),
                    row.get("total_comments", 0),
                    row.get("completion_rate", 0.0),
                    row.get("created_at") or now,
                    row.get("last_updated") or now,
                ),
            )
            await self.db.commit()

    async def touch(self, project_id: str) -> None:
        now = utc_now_iso()
        async with write_lock(self.db):
            await self.db.execute(
                """INSERT INTO project_analytics (project_id, created_at, last_updated)
                   VALUES (?, ?, ?)
                   ON CONFLICT(project_id) DO UPDATE SET last_updated=excluded.last_updated""",
                (project_id, now, now),
            )
            await self.db.commit()

    async def initialize_project(self, project_id: str, owner_id: str) -> None:
        """Create the zeroed snapshot and the owner membership row atomically."""
        now = utc_now_iso()
        async with write_lock(self.db):
            try:
                await self.db.execute(
                    """INSERT INTO project_analytics (
                        project_id, total_members, created_at, last_updated
                    ) VALUES (?, 1, ?, ?)
                    ON CONFLICT(project_id) DO NOTHING""",
                    (project_id, now, now),
                )
                await self.db.execute(
                    """INSERT INTO project_members (project_id, user_id, role, joined_at)
                       VALUES (?, ?, 'owner', ?)
                       ON CONFLICT(project_id, user_id) DO UPDATE SET role='owner'""",
                    (project_id, owner_id, now),
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

    async def purge_project(self, project_id: str, task_ids: list[str]) -> None:
        """Delete every analytics row owned by a project in one transaction."""
        async with write_lock(self.db):
            try:
                await self.db.execute("DELETE FROM project_analytics WHERE project_id = ?", (project_id,))
                await self.db.execute("DELETE FROM task_metrics WHERE project_id = ?", (project_id,))
                if task_ids:
                    await self.db.execute(
                        f"DELETE FROM task_metrics WHERE task_id IN ({','.join(['?'] * len(task_ids))})",
                        task_ids,
                    )
                await self.db.execute("DELETE FROM project_members WHERE project_id = ?", (project_id,))
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise


class SqliteTaskMetricsRepository:
    """One mirror row per operational task."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(self, row: dict) -> None:
        now = utc_now_iso()
        async with write_lock(self.db):
            await self.db.execute(
                """INSERT INTO task_metrics (
                    task_id, project_id, assigned_to, status, priority, time_spent,
                    is_completed, due_date, completed_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(task_id) DO UPDATE SET
                    project_id=excluded.project_id, assigned_to=excluded.assigned_to,
                    status=excluded.status, priority=excluded.priority,
                    time_spent=excluded.time_spent, is_completed=excluded.is_completed,
                    due_date=excluded.due_date, completed_at=excluded.completed_at,
                    updated_at=excluded.updated_at
                """,
                (
                    row["task_id"],
                    row["project_id"],
                    row.get("assigned_to"),
                    row.get("status", "todo"),
                    row.get("priority", "medium"),
                    row.get("time_spent", 0.0),
                    1 if row.get("is_completed") else 0,
                    row.get("due_date"),
                    row.get("completed_at"),
                    row.get("created_at") or now,
                    row.get("updated_at") or now,
                ),
            )
            await self.db.commit()

    async def get(self, task_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM task_metrics WHERE task_id = ?", (task_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def delete(self, task_id: str) -> bool:
        async with write_lock(self.db):
            async with self.db.execute("DELETE FROM task_metrics WHERE task_id = ?", (task_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        return deleted > 0

    async def delete_many(self, task_ids: list[str]) -> int:
        if not task_ids:
            return 0
        async with write_lock(self.db):
            async with self.db.execute(
                f"DELETE FROM task_metrics WHERE task_id IN ({','.join(['?'] * len(task_ids))})",
                task_ids,
            ) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        return deleted

    @staticmethod
    def _filters(
        project_id: str | None,
        assigned_to: str | None,
        status: str | None,
        date_from: str | None,
        date_to: str | None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if project_id:
            clauses.append("project_id = ?")
            params.append(project_id)
        if assigned_to:
            clauses.append("assigned_to = ?")
            params.append(assigned_to)
        if status:
            clauses.append("status = ?")
            params.append(status)
        if date_from:
            clauses.append("julianday(created_at) >= julianday(?)")
            params.append(date_from)
        if date_to:
            clauses.append("julianday(created_at) <= julianday(?)")
            params.append(date_to)
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return where, params

    async def list_for_project(
        self,
        project_id: str,
        *,
        status: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        order_by: str = "created_at",
        limit: int | None = None,
    ) -> list[dict]:
        where, params = self._filters(project_id, None, status, date_from, date_to)
        column = order_by if order_by in _METRIC_ORDER_COLUMNS else "created_at"
        query = f"SELECT * FROM task_metrics{where} ORDER BY {column} DESC, task_id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        async with self.db.execute(query, params) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def summarize(
        self,
        *,
        project_id: str | None = None,
        assigned_to: str | None = None,
        status: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        group_by: str | None = None,
    ) -> list[dict[str, Any]]:
        """Count and time aggregates, optionally grouped by status or user."""
        where, params = self._filters(project_id, assigned_to, status, date_from, date_to)
        group_column = _GROUP_COLUMNS.get(group_by or "")
        key_expr = group_column or "NULL"
        query = f"""
            SELECT {key_expr} AS group_key,
                   COUNT(*) AS count,
                   SUM(CASE WHEN is_completed = 1 THEN 1 ELSE 0 END) AS completed,
                   COALESCE(SUM(time_spent), 0) AS total_time_spent,
                   COALESCE(AVG(time_spent), 0) AS avg_time_spent,
                   AVG(CASE WHEN is_completed = 1 AND completed_at IS NOT NULL
                            THEN (julianday(completed_at) - julianday(created_at)) * 24
                       END) AS avg_completion_hours
            FROM task_metrics{where}
        """
        if group_column:
            query += f" GROUP BY {group_column} ORDER BY count DESC, group_key ASC"
        async with self.db.execute(query, params) as cur:
            rows = [dict(r) for r in await cur.fetchall()]
        if not group_column:
            # An ungrouped aggregate always yields one row, even over zero tasks.
            return [r for r in rows if r["count"]]
        return rows


class SqliteUserStatsRepository:
    """Per-user task rollups."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, user_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM user_stats WHERE user_id = ?", (user_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def get_many(self, user_ids: list[str]) -> list[dict]:
        if not user_ids:
            return []
        async with self.db.execute(
            f"SELECT * FROM user_stats WHERE user_id IN ({','.join(['?'] * len(user_ids))})",
            user_ids,
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def upsert(self, row: dict) -> None:
        async with write_lock(self.db):
            await self.db.execute(
                """INSERT INTO user_stats (
                    user_id, tasks_created, tasks_assigned, tasks_completed,
                    tasks_in_progress, total_time_spent, avg_completion_time,
                    productivity_score, last_activity_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    tasks_created=excluded.tasks_created, tasks_assigned=excluded.tasks_assigned,
                    tasks_completed=excluded.tasks_completed, tasks_in_progress=excluded.tasks_in_progress,
                    total_time_spent=excluded.total_time_spent,
                    avg_completion_time=excluded.avg_completion_time,
                    productivity_score=excluded.productivity_score,
                    last_activity_at=excluded.last_activity_at, updated_at=excluded.updated_at
                """,
                (
                    row["user_id"],
                    row.get("tasks_created", 0),
                    row.get("tasks_assigned", 0),
                    row.get("tasks_completed", 0),
                    row.get("tasks_in_progress", 0),
                    row.get("total_time_spent", 0.0),
                    row.get("avg_completion_time", 0.0),
                    row.get("productivity_score", 0.0),
                    row.get("last_activity_at"),
                    utc_now_iso(),
                ),
            )
            await self.db.commit()


class SqliteProjectMemberRepository:
    """Denormalized mirror of Project.members."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(self, project_id: str, user_id: str, role: str = "member") -> None:
        async with write_lock(self.db):
            await self.db.execute(
                """INSERT INTO project_members (project_id, user_id, role, joined_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(project_id, user_id) DO UPDATE SET role=excluded.role""",
                (project_id, user_id, role, utc_now_iso()),
            )
            await self.db.commit()

    async def delete(self, project_id: str, user_id: str) -> bool:
        async with write_lock(self.db):
            async with self.db.execute(
                "DELETE FROM project_members WHERE project_id = ? AND user_id = ?",
                (project_id, user_id),
            ) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        return deleted > 0

    async def list_for_project(self, project_id: str) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM project_members WHERE project_id = ? ORDER BY joined_at ASC, user_id ASC",
            (project_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]
