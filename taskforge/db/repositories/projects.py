"""SQLite implementation of ProjectRepository (JSON documents)."""
from __future__ import annotations

import json
from typing import Any

import aiosqlite

from taskforge.date_utils import utc_now_iso
from taskforge.db.locks import write_lock
from taskforge.models import normalize_project_document

_SORT_COLUMNS = {
    "updatedAt": "updated_at",
    "createdAt": "created_at",
    "name": "name",
    "dueDate": "due_date",
    "status": "status",
}

_MEMBER_FILTER = """(owner = ? OR EXISTS (
    SELECT 1 FROM json_each(projects.members_json) WHERE json_each.value = ?
))"""


class SqliteProjectRepository:
    """SQLite-backed project documents."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def _write(self, doc: dict, *, replace: bool) -> None:
        normalize_project_document(doc)
        query = """INSERT INTO projects (
                id, owner, status, name, members_json, due_date,
                created_at, updated_at, data_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"""
        if replace:
            query += """
            ON CONFLICT(id) DO UPDATE SET
                owner=excluded.owner, status=excluded.status, name=excluded.name,
                members_json=excluded.members_json, due_date=excluded.due_date,
                updated_at=excluded.updated_at, data_json=excluded.data_json"""
        await self.db.execute(
            query,
            (
                doc["id"],
                doc["owner"],
                doc.get("status", "active"),
                doc.get("name", ""),
                json.dumps(doc["members"]),
                doc.get("dueDate"),
                doc.get("createdAt", ""),
                doc.get("updatedAt", ""),
                json.dumps(doc),
            ),
        )
        await self.db.commit()

    async def insert(self, doc: dict) -> dict:
        async with write_lock(self.db):
            await self._write(doc, replace=False)
        return doc

    async def get_by_id(self, project_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT data_json FROM projects WHERE id = ?", (project_id,)
        ) as cur:
            row = await cur.fetchone()
            return json.loads(row[0]) if row else None

    async def list_ids(self) -> list[str]:
        async with self.db.execute("SELECT id FROM projects ORDER BY created_at") as cur:
            return [row[0] for row in await cur.fetchall()]

    async def list_for_user(
        self,
        user_id: str,
        *,
        status: str | None = None,
        sort_by: str = "updatedAt",
        sort_order: str = "desc",
        offset: int = 0,
        limit: int = 10,
    ) -> list[dict]:
        query = f"SELECT data_json FROM projects WHERE {_MEMBER_FILTER}"
        params: list[Any] = [user_id, user_id]
        if status:
            query += " AND status = ?"
            params.append(status)
        column = _SORT_COLUMNS.get(sort_by, "updated_at")
        direction = "ASC" if sort_order.lower() == "asc" else "DESC"
        query += f" ORDER BY {column} {direction}, id ASC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        async with self.db.execute(query, params) as cur:
            return [json.loads(row[0]) for row in await cur.fetchall()]

    async def count_for_user(self, user_id: str, *, status: str | None = None) -> int:
        query = f"SELECT COUNT(*) FROM projects WHERE {_MEMBER_FILTER}"
        params: list[Any] = [user_id, user_id]
        if status:
            query += " AND status = ?"
            params.append(status)
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
            return int(row[0] or 0) if row else 0

    async def update(self, project_id: str, patch: dict) -> dict | None:
        async with write_lock(self.db):
            doc = await self.get_by_id(project_id)
            if doc is None:
                return None
            doc.update(patch)
            if "updatedAt" not in patch:
                doc["updatedAt"] = utc_now_iso()
            await self._write(doc, replace=True)
        return doc

    async def set_task_stats(self, project_id: str, task_count: int, completed_tasks: int) -> None:
        async with write_lock(self.db):
            doc = await self.get_by_id(project_id)
            if doc is None:
                return
            stats = dict(doc.get("stats") or {})
            stats["taskCount"] = task_count
            stats["completedTasks"] = completed_tasks
            doc["stats"] = stats
            await self._write(doc, replace=True)

    async def add_member(self, project_id: str, user_id: str) -> dict | None:
        async with write_lock(self.db):
            doc = await self.get_by_id(project_id)
            if doc is None:
                return None
            if user_id not in doc.get("members", []):
                doc["members"] = [*doc.get("members", []), user_id]
                doc["updatedAt"] = utc_now_iso()
                await self._write(doc, replace=True)
        return doc

    async def remove_member(self, project_id: str, user_id: str) -> dict | None:
        async with write_lock(self.db):
            doc = await self.get_by_id(project_id)
            if doc is None:
                return None
            if user_id in doc.get("members", []):
                doc["members"] = [m for m in doc["members"] if m != user_id]
                doc["updatedAt"] = utc_now_iso()
                await self._write(doc, replace=True)
        return doc

    async def delete(self, project_id: str) -> bool:
        async with write_lock(self.db):
            async with self.db.execute("DELETE FROM projects WHERE id = ?", (project_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        return deleted > 0
