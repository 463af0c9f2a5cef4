"""PostgreSQL schema for the analytics store."""
from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger("taskforge.db")

SCHEMA_VERSION = 1

_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS users (
    id          TEXT PRIMARY KEY,
    username    TEXT NOT NULL UNIQUE,
    email       TEXT NOT NULL DEFAULT '',
    full_name   TEXT NOT NULL DEFAULT '',
    avatar      TEXT,
    role        TEXT NOT NULL DEFAULT 'user',
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_analytics (
    project_id        TEXT PRIMARY KEY,
    total_tasks       INTEGER DEFAULT 0,
    completed_tasks   INTEGER DEFAULT 0,
    in_progress_tasks INTEGER DEFAULT 0,
    pending_tasks     INTEGER DEFAULT 0,
    overdue_tasks     INTEGER DEFAULT 0,
    total_members     INTEGER DEFAULT 0,
    total_comments    INTEGER DEFAULT 0,
    completion_rate   DOUBLE PRECISION DEFAULT 0.0,
    created_at        TEXT NOT NULL,
    last_updated      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS task_metrics (
    task_id       TEXT PRIMARY KEY,
    project_id    TEXT NOT NULL,
    assigned_to   TEXT,
    status        TEXT NOT NULL DEFAULT 'todo',
    priority      TEXT NOT NULL DEFAULT 'medium',
    time_spent    DOUBLE PRECISION DEFAULT 0.0,
    is_completed  INTEGER DEFAULT 0,
    due_date      TEXT,
    completed_at  TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_task_metrics_project  ON task_metrics(project_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_task_metrics_assignee ON task_metrics(assigned_to);

CREATE TABLE IF NOT EXISTS user_stats (
    user_id             TEXT PRIMARY KEY,
    tasks_created       INTEGER DEFAULT 0,
    tasks_assigned      INTEGER DEFAULT 0,
    tasks_completed     INTEGER DEFAULT 0,
    tasks_in_progress   INTEGER DEFAULT 0,
    total_time_spent    DOUBLE PRECISION DEFAULT 0.0,
    avg_completion_time DOUBLE PRECISION DEFAULT 0.0,
    productivity_score  DOUBLE PRECISION DEFAULT 0.0,
    last_activity_at    TEXT,
    updated_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_members (
    project_id  TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    role        TEXT NOT NULL DEFAULT 'member',
    joined_at   TEXT NOT NULL,
    PRIMARY KEY (project_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_project_members_user ON project_members(user_id);
"""


async def run_migrations(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.execute(_TABLES)
            current = await conn.fetchval("SELECT MAX(version) FROM schema_version") or 0
            if current < SCHEMA_VERSION:
                await conn.execute("INSERT INTO schema_version (version) VALUES ($1)", SCHEMA_VERSION)
                logger.info("Schema version stamped: %s -> %s", current, SCHEMA_VERSION)
