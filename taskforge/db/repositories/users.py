"""SQLite implementation of UserRepository (profile reference data)."""
from __future__ import annotations

import aiosqlite

from taskforge.date_utils import utc_now_iso
from taskforge.db.locks import write_lock


class SqliteUserRepository:
    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(self, user: dict) -> None:
        async with write_lock(self.db):
            await self.db.execute(
                """INSERT INTO users (id, username, email, full_name, avatar, role, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       username=excluded.username, email=excluded.email,
                       full_name=excluded.full_name, avatar=excluded.avatar, role=excluded.role""",
                (
                    user["id"],
                    user["username"],
                    user.get("email", ""),
                    user.get("fullName", ""),
                    user.get("avatar"),
                    user.get("role", "user"),
                    user.get("createdAt") or utc_now_iso(),
                ),
            )
            await self.db.commit()

    async def get_by_id(self, user_id: str) -> dict | None:
        async with self.db.execute("SELECT * FROM users WHERE id = ?", (user_id,)) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def get_many(self, user_ids: list[str]) -> list[dict]:
        if not user_ids:
            return []
        async with self.db.execute(
            f"SELECT * FROM users WHERE id IN ({','.join(['?'] * len(user_ids))})",
            user_ids,
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]
