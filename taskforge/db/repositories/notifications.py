"""SQLite implementation of NotificationRepository."""
from __future__ import annotations

import json

import aiosqlite

from taskforge.db.locks import write_lock


class SqliteNotificationRepository:
    """Per-user in-app notifications."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def _write(self, doc: dict) -> None:
        await self.db.execute(
            """INSERT INTO notifications (id, user_id, seen, created_at, data_json)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   seen=excluded.seen, data_json=excluded.data_json""",
            (
                doc["id"],
                doc["user"],
                1 if doc.get("seen") else 0,
                doc.get("createdAt", ""),
                json.dumps(doc),
            ),
        )
        await self.db.commit()

    async def insert(self, doc: dict) -> dict:
        async with write_lock(self.db):
            await self._write(doc)
        return doc

    async def get_by_id(self, notification_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT data_json FROM notifications WHERE id = ?", (notification_id,)
        ) as cur:
            row = await cur.fetchone()
            return json.loads(row[0]) if row else None

    async def list_for_user(self, user_id: str, *, unseen_only: bool = False, limit: int = 50) -> list[dict]:
        query = "SELECT data_json FROM notifications WHERE user_id = ?"
        if unseen_only:
            query += " AND seen = 0"
        query += " ORDER BY created_at DESC LIMIT ?"
        async with self.db.execute(query, (user_id, limit)) as cur:
            return [json.loads(row[0]) for row in await cur.fetchall()]

    async def count_unseen(self, user_id: str) -> int:
        async with self.db.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND seen = 0", (user_id,)
        ) as cur:
            row = await cur.fetchone()
            return int(row[0] or 0) if row else 0

    async def mark_seen(self, notification_id: str) -> dict | None:
        async with write_lock(self.db):
            doc = await self.get_by_id(notification_id)
            if doc is None:
                return None
            doc["seen"] = True
            await self._write(doc)
        return doc
