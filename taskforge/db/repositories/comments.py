"""SQLite implementation of CommentRepository."""
from __future__ import annotations

import json

import aiosqlite

from taskforge.db.locks import write_lock


class SqliteCommentRepository:
    """Comments attached to a task and/or a project."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def insert(self, doc: dict) -> dict:
        async with write_lock(self.db):
            await self.db.execute(
                """INSERT INTO comments (id, author, task_id, project_id, created_at, data_json)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    doc["id"],
                    doc["author"],
                    doc.get("taskId"),
                    doc.get("projectId"),
                    doc.get("createdAt", ""),
                    json.dumps(doc),
                ),
            )
            await self.db.commit()
        return doc

    async def get_by_id(self, comment_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT data_json FROM comments WHERE id = ?", (comment_id,)
        ) as cur:
            row = await cur.fetchone()
            return json.loads(row[0]) if row else None

    async def list_by_task(self, task_id: str) -> list[dict]:
        async with self.db.execute(
            "SELECT data_json FROM comments WHERE task_id = ? ORDER BY created_at ASC",
            (task_id,),
        ) as cur:
            return [json.loads(row[0]) for row in await cur.fetchall()]

    async def count_by_project(self, project_id: str) -> int:
        async with self.db.execute(
            "SELECT COUNT(*) FROM comments WHERE project_id = ?", (project_id,)
        ) as cur:
            row = await cur.fetchone()
            return int(row[0] or 0) if row else 0

    async def delete(self, comment_id: str) -> bool:
        async with write_lock(self.db):
            async with self.db.execute("DELETE FROM comments WHERE id = ?", (comment_id,)) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        return deleted > 0

    async def delete_by_project(self, project_id: str, task_ids: list[str]) -> int:
        query = "DELETE FROM comments WHERE project_id = ?"
        params: list[str] = [project_id]
        if task_ids:
            query += f" OR task_id IN ({','.join(['?'] * len(task_ids))})"
            params.extend(task_ids)
        async with write_lock(self.db):
            async with self.db.execute(query, params) as cur:
                deleted = cur.rowcount
            await self.db.commit()
        return deleted
