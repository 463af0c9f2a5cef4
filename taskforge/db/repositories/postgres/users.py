"""PostgreSQL implementation of UserRepository."""
from __future__ import annotations

import asyncpg

from taskforge.date_utils import utc_now_iso


class PostgresUserRepository:
    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def upsert(self, user: dict) -> None:
        await self.db.execute(
            """
            INSERT INTO users (id, username, email, full_name, avatar, role, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (id) DO UPDATE SET
                username=EXCLUDED.username, email=EXCLUDED.email,
                full_name=EXCLUDED.full_name, avatar=EXCLUDED.avatar, role=EXCLUDED.role
            """,
            user["id"],
            user["username"],
            user.get("email", ""),
            user.get("fullName", ""),
            user.get("avatar"),
            user.get("role", "user"),
            user.get("createdAt") or utc_now_iso(),
        )

    async def get_by_id(self, user_id: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        return dict(row) if row else None

    async def get_many(self, user_ids: list[str]) -> list[dict]:
        if not user_ids:
            return []
        rows = await self.db.fetch("SELECT * FROM users WHERE id = ANY($1::text[])", user_ids)
        return [dict(r) for r in rows]
