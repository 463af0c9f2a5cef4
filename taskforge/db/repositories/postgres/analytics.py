"""PostgreSQL implementation of the analytics-store repositories."""
from __future__ import annotations

from typing import Any

import asyncpg

from taskforge.date_utils import utc_now_iso

_GROUP_COLUMNS = {"status": "status", "user": "assigned_to"}
_METRIC_ORDER_COLUMNS = {"created_at", "updated_at", "time_spent"}


class PostgresProjectAnalyticsRepository:
    """PostgreSQL-backed project snapshot."""

    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def get(self, project_id: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM project_analytics WHERE project_id = $1", project_id)
        return dict(row) if row else None

    async def upsert(self, row: dict) -> None:
        now = utc_now_iso()
        await self.db.execute(
            """
            INSERT INTO project_analytics (
                project_id, total_tasks, completed_tasks, in_progress_tasks,
                pending_tasks, overdue_tasks, total_members, total_comments,
                completion_rate, created_at, last_updated
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            ON CONFLICT (project_id) DO UPDATE SET
                total_tasks=EXCLUDED.total_tasks, completed_tasks=EXCLUDED.completed_tasks,
                in_progress_tasks=EXCLUDED.in_progress_tasks, pending_tasks=EXCLUDED.pending_tasks,
                overdue_tasks=EXCLUDED.overdue_tasks, total_members=EXCLUDED.total_members,
                total_comments=EXCLUDED.total_comments, completion_rate=EXCLUDED.completion_rate,
                last_updated=EXCLUDED.last_updated
            """,
            row["project_id"],
            row.get("total_tasks", 0),
            row.get("completed_tasks", 0),
            row.get("in_progress_tasks", 0),
            row.get("pending_tasks", 0),
            row.get("overdue_tasks", 0),
            row.get("total_members", 0),
            row.get("total_comments", 0),
            float(row.get("completion_rate", 0.0)),
            row.get("created_at") or now,
            row.get("last_updated") or now,
        )

    async def touch(self, project_id: str) -> None:
        now = utc_now_iso()
        await self.db.execute(
            """
            INSERT INTO project_analytics (project_id, created_at, last_updated)
            VALUES ($1, $2, $3)
            ON CONFLICT (project_id) DO UPDATE SET last_updated = EXCLUDED.last_updated
            """,
            project_id, now, now,
        )

    async def initialize_project(self, project_id: str, owner_id: str) -> None:
        now = utc_now_iso()
        async with self.db.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO project_analytics (project_id, total_members, created_at, last_updated)
                    VALUES ($1, 1, $2, $3)
                    ON CONFLICT (project_id) DO NOTHING
                    """,
                    project_id, now, now,
                )
                await conn.execute(
                    """
                    INSERT INTO project_members (project_id, user_id, role, joined_at)
                    VALUES ($1, $2, 'owner', $3)
                    ON CONFLICT (project_id, user_id) DO UPDATE SET role = 'owner'
                    """,
                    project_id, owner_id, now,
                )

    async def purge_project(self, project_id: str, task_ids: list[str]) -> None:
        async with self.db.acquire() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM project_analytics WHERE project_id = $1", project_id)
                await conn.execute(
                    "DELETE FROM task_metrics WHERE project_id = $1 OR task_id = ANY($2::text[])",
                    project_id, task_ids,
                )
                await conn.execute("DELETE FROM project_members WHERE project_id = $1", project_id)


class PostgresTaskMetricsRepository:
    """PostgreSQL-backed per-task mirror."""

    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def upsert(self, row: dict) -> None:
        now = utc_now_iso()
        await self.db.execute(
            """
            INSERT INTO task_metrics (
                task_id, project_id, assigned_to, status, priority, time_spent,
                is_completed, due_date, completed_at, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            ON CONFLICT (task_id) DO UPDATE SET
                project_id=EXCLUDED.project_id, assigned_to=EXCLUDED.assigned_to,
                status=EXCLUDED.status, priority=EXCLUDED.priority,
                time_spent=EXCLUDED.time_spent, is_completed=EXCLUDED.is_completed,
                due_date=EXCLUDED.due_date, completed_at=EXCLUDED.completed_at,
                updated_at=EXCLUDED.updated_at
            """,
            row["task_id"],
            row["project_id"],
            row.get("assigned_to"),
            row.get("status", "todo"),
            row.get("priority", "medium"),
            float(row.get("time_spent", 0.0)),
            1 if row.get("is_completed") else 0,
            row.get("due_date"),
            row.get("completed_at"),
            row.get("created_at") or now,
            row.get("updated_at") or now,
        )

    async def get(self, task_id: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM task_metrics WHERE task_id = $1", task_id)
        return dict(row) if row else None

    async def delete(self, task_id: str) -> bool:
        result = await self.db.execute("DELETE FROM task_metrics WHERE task_id = $1", task_id)
        return result != "DELETE 0"

    async def delete_many(self, task_ids: list[str]) -> int:
        if not task_ids:
            return 0
        result = await self.db.execute(
            "DELETE FROM task_metrics WHERE task_id = ANY($1::text[])", task_ids
        )
        return int(result.split()[-1])

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
        for clause, value in (
            ("project_id = ${}", project_id),
            ("assigned_to = ${}", assigned_to),
            ("status = ${}", status),
            ("created_at::timestamptz >= ${}::timestamptz", date_from),
            ("created_at::timestamptz <= ${}::timestamptz", date_to),
        ):
            if value:
                params.append(value)
                clauses.append(clause.format(len(params)))
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
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        rows = await self.db.fetch(query, *params)
        return [dict(r) for r in rows]

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
        where, params = self._filters(project_id, assigned_to, status, date_from, date_to)
        group_column = _GROUP_COLUMNS.get(group_by or "")
        key_expr = group_column or "NULL::text"
        query = f"""
            SELECT {key_expr} AS group_key,
                   COUNT(*) AS count,
                   SUM(CASE WHEN is_completed = 1 THEN 1 ELSE 0 END) AS completed,
                   COALESCE(SUM(time_spent), 0) AS total_time_spent,
                   COALESCE(AVG(time_spent), 0) AS avg_time_spent,
                   AVG(CASE WHEN is_completed = 1 AND completed_at IS NOT NULL
                            THEN EXTRACT(EPOCH FROM (completed_at::timestamptz - created_at::timestamptz)) / 3600
                       END) AS avg_completion_hours
            FROM task_metrics{where}
        """
        if group_column:
            query += f" GROUP BY {group_column} ORDER BY count DESC, group_key ASC"
        rows = [dict(r) for r in await self.db.fetch(query, *params)]
        if not group_column:
            return [r for r in rows if r["count"]]
        return rows


class PostgresUserStatsRepository:
    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def get(self, user_id: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM user_stats WHERE user_id = $1", user_id)
        return dict(row) if row else None

    async def get_many(self, user_ids: list[str]) -> list[dict]:
        if not user_ids:
            return []
        rows = await self.db.fetch("SELECT * FROM user_stats WHERE user_id = ANY($1::text[])", user_ids)
        return [dict(r) for r in rows]

    async def upsert(self, row: dict) -> None:
        await self.db.execute(
            """
            INSERT INTO user_stats (
                user_id, tasks_created, tasks_assigned, tasks_completed,
                tasks_in_progress, total_time_spent, avg_completion_time,
                productivity_score, last_activity_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            ON CONFLICT (user_id) DO UPDATE SET
                tasks_created=EXCLUDED.tasks_created, tasks_assigned=EXCLUDED.tasks_assigned,
                tasks_completed=EXCLUDED.tasks_completed, tasks_in_progress=EXCLUDED.tasks_in_progress,
                total_time_spent=EXCLUDED.total_time_spent,
                avg_completion_time=EXCLUDED.avg_completion_time,
                productivity_score=EXCLUDED.productivity_score,
                last_activity_at=EXCLUDED.last_activity_at, updated_at=EXCLUDED.updated_at
            """,
            row["user_id"],
            row.get("tasks_created", 0),
            row.get("tasks_assigned", 0),
            row.get("tasks_completed", 0),
            row.get("tasks_in_progress", 0),
            float(row.get("total_time_spent", 0.0)),
            float(row.get("avg_completion_time", 0.0)),
            float(row.get("productivity_score", 0.0)),
            row.get("last_activity_at"),
            utc_now_iso(),
        )


class PostgresProjectMemberRepository:
    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def upsert(self, project_id: str, user_id: str, role: str = "member") -> None:
        await self.db.execute(
            """
            INSERT INTO project_members (project_id, user_id, role, joined_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (project_id, user_id) DO UPDATE SET role = EXCLUDED.role
            """,
            project_id, user_id, role, utc_now_iso(),
        )

    async def delete(self, project_id: str, user_id: str) -> bool:
        result = await self.db.execute(
            "DELETE FROM project_members WHERE project_id = $1 AND user_id = $2",
            project_id, user_id,
        )
        return result != "DELETE 0"

    async def list_for_project(self, project_id: str) -> list[dict]:
        rows = await self.db.fetch(
            "SELECT * FROM project_members WHERE project_id = $1 ORDER BY joined_at ASC, user_id ASC",
            project_id,
        )
        return [dict(r) for r in rows]
