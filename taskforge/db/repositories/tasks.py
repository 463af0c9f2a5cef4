"""SQLite implementation of TaskRepository (JSON documents)."""
from __future__ import annotations

import json
from typing import Any

import aiosqlite

from taskforge.date_utils import utc_now_iso
from taskforge.db.locks import write_lock

_SORT_COLUMNS = {
    "order": "sort_order",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "dueDate": "due_date",
    "priority": "priority",
    "status": "status",
}

_INSERT = """INSERT INTO tasks (
        id, project_id, status, priority, assigned_to, created_by,
        parent_task_id, due_date, sort_order, created_at, updated_at, data_json
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_UPSERT = _INSERT + """    ON CONFLICT(id) DO UPDATE SET
        project_id=excluded.project_id, status=excluded.status,
        priority=excluded.priority, assigned_to=excluded.assigned_to,
        created_by=excluded.created_by, parent_task_id=excluded.parent_task_id,
        due_date=excluded.due_date, sort_order=excluded.sort_order,
        updated_at=excluded.updated_at, data_json=excluded.data_json
"""


def _params(doc: dict) -> tuple:
    return (
        doc["id"],
        doc["projectId"],
        doc.get("status", "todo"),
        doc.get("priority", "medium"),
        doc.get("assignedTo"),
        doc.get("createdBy"),
        doc.get("parentTaskId"),
        doc.get("dueDate"),
        doc.get("order", 0),
        doc.get("createdAt", ""),
        doc.get("updatedAt", ""),
        json.dumps(doc),
    )


def _placeholders(values: list[Any]) -> str:
    return ",".join(["?"] * len(values))


class SqliteTaskRepository:
    """SQLite-backed task documents."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def insert(self, doc: dict) -> dict:
        async with write_lock(self.db):
            await self.db.execute(_INSERT, _params(doc))
            await self.db.commit()
        return doc

    async def insert_many(self, docs: list[dict]) -> list[dict]:
        if not docs:
            return []
        async with write_lock(self.db):
            try:
                await self.db.executemany(_INSERT, [_params(doc) for doc in docs])
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        return docs

    async def get_by_id(self, task_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT data_json FROM tasks WHERE id = ?", (task_id,)
        ) as cur:
            row = await cur.fetchone()
            return json.loads(row[0]) if row else None

    async def get_many(self, task_ids: list[str]) -> list[dict]:
        if not task_ids:
            return []
        async with self.db.execute(
            f"SELECT data_json FROM tasks WHERE id IN ({_placeholders(task_ids)})",
            task_ids,
        ) as cur:
            return [json.loads(row[0]) for row in await cur.fetchall()]

    async def list_by_project(
        self,
        project_id: str,
        *,
        status: str | None = None,
        priority: str | None = None,
        assigned_to: str | None = None,
        sort_by: str = "order",
        sort_order: str = "asc",
        offset: int = 0,
        limit: int | None = None,
    ) -> list[dict]:
        query = "SELECT data_json FROM tasks WHERE project_id = ?"
        params: list[Any] = [project_id]
        if status:
            query += " AND status = ?"
            params.append(status)
        if priority:
            query += " AND priority = ?"
            params.append(priority)
        if assigned_to:
            query += " AND assigned_to = ?"
            params.append(assigned_to)
        column = _SORT_COLUMNS.get(sort_by, "sort_order")
        direction = "DESC" if sort_order.lower() == "desc" else "ASC"
        query += f" ORDER BY {column} {direction}, created_at ASC"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        async with self.db.execute(query, params) as cur:
            return [json.loads(row[0]) for row in await cur.fetchall()]

    async def count(
        self,
        *,
        project_id: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assigned_to: str | None = None,
        created_by: str | None = None,
    ) -> int:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("project_id", project_id),
            ("status", status),
            ("priority", priority),
            ("assigned_to", assigned_to),
            ("created_by", created_by),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        query = "SELECT COUNT(*) FROM tasks"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
            return int(row[0] or 0) if row else 0

    async def list_status_snapshot(self, project_id: str) -> list[dict]:
        async with self.db.execute(
            "SELECT id, status, due_date FROM tasks WHERE project_id = ?",
            (project_id,),
        ) as cur:
            return [
                {"id": row[0], "status": row[1], "dueDate": row[2]}
                for row in await cur.fetchall()
            ]

    async def update(self, task_id: str, patch: dict) -> dict | None:
        async with write_lock(self.db):
            doc = await self.get_by_id(task_id)
            if doc is None:
                return None
            doc.update(patch)
            if "updatedAt" not in patch:
                doc["updatedAt"] = utc_now_iso()
            await self.db.execute(_UPSERT, _params(doc))
            await self.db.commit()
        return doc

    async def update_many(self, patches: dict[str, dict]) -> list[dict]:
        async with write_lock(self.db):
            docs = await self.get_many(list(patches))
            if not docs:
                return []
            now = utc_now_iso()
            for doc in docs:
                doc.update(patches[doc["id"]])
                if "updatedAt" not in patches[doc["id"]]:
                    doc["updatedAt"] = now
            try:
                await self.db.executemany(_UPSERT, [_params(doc) for doc in docs])
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
        return docs

    async def delete(self, task_id: str) -> dict | None:
        async with write_lock(self.db):
            doc = await self.get_by_id(task_id)
            if doc is None:
                return None
            await self.db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            await self.db.commit()
        return doc

    async def delete_many(self, task_ids: list[str]) -> list[dict]:
        async with write_lock(self.db):
            docs = await self.get_many(task_ids)
            if not docs:
                return []
            ids = [doc["id"] for doc in docs]
            await self.db.execute(f"DELETE FROM tasks WHERE id IN ({_placeholders(ids)})", ids)
            await self.db.commit()
        return docs

    async def delete_by_project(self, project_id: str) -> int:
        async with write_lock(self.db):
            async with self.db.execute("DELETE FROM tasks WHERE project_id = ?", (project_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        return deleted
