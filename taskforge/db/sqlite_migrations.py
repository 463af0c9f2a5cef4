"""SQLite schema creation and versioning.

The document tables keep each entity as a JSON document plus a handful of
indexed key columns used for filtering; the analytics tables are plain
relational rows. Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("taskforge.db")

DOCUMENT_SCHEMA_VERSION = 1
ANALYTICS_SCHEMA_VERSION = 1

_DOCUMENT_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── Projects ───────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS projects (
    id           TEXT PRIMARY KEY,
    owner        TEXT NOT NULL,
    status       TEXT NOT NULL DEFAULT 'active',
    name         TEXT NOT NULL,
    members_json TEXT NOT NULL DEFAULT '[]',
    due_date     TEXT,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    data_json    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(owner, updated_at DESC);

-- ── Tasks ──────────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS tasks (
    id             TEXT PRIMARY KEY,
    project_id     TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'todo',
    priority       TEXT NOT NULL DEFAULT 'medium',
    assigned_to    TEXT,
    created_by     TEXT,
    parent_task_id TEXT,
    due_date       TEXT,
    sort_order     INTEGER DEFAULT 0,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    data_json      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_project  ON tasks(project_id, status);
CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assigned_to, status);
CREATE INDEX IF NOT EXISTS idx_tasks_creator  ON tasks(created_by);

-- ── Comments ───────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS comments (
    id          TEXT PRIMARY KEY,
    author      TEXT NOT NULL,
    task_id     TEXT,
    project_id  TEXT,
    created_at  TEXT NOT NULL,
    data_json   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_comments_task    ON comments(task_id, created_at);
CREATE INDEX IF NOT EXISTS idx_comments_project ON comments(project_id);

-- ── Notifications ──────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS notifications (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    seen        INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL,
    data_json   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, seen, created_at DESC);
"""

_ANALYTICS_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── Users (profile reference data) ─────────────────────────────────
CREATE TABLE IF NOT EXISTS users (
    id          TEXT PRIMARY KEY,
    username    TEXT NOT NULL UNIQUE,
    email       TEXT NOT NULL DEFAULT '',
    full_name   TEXT NOT NULL DEFAULT '',
    avatar      TEXT,
    role        TEXT NOT NULL DEFAULT 'user',
    created_at  TEXT NOT NULL
);

-- ── Project analytics snapshot ─────────────────────────────────────
CREATE TABLE IF NOT EXISTS project_analytics (
    project_id        TEXT PRIMARY KEY,
    total_tasks       INTEGER DEFAULT 0,
    completed_tasks   INTEGER DEFAULT 0,
    in_progress_tasks INTEGER DEFAULT 0,
    pending_tasks     INTEGER DEFAULT 0,
    overdue_tasks     INTEGER DEFAULT 0,
    total_members     INTEGER DEFAULT 0,
    total_comments    INTEGER DEFAULT 0,
    completion_rate   REAL DEFAULT 0.0,
    created_at        TEXT NOT NULL,
    last_updated      TEXT NOT NULL
);

-- ── Per-task mirror ────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS task_metrics (
    task_id       TEXT PRIMARY KEY,
    project_id    TEXT NOT NULL,
    assigned_to   TEXT,
    status        TEXT NOT NULL DEFAULT 'todo',
    priority      TEXT NOT NULL DEFAULT 'medium',
    time_spent    REAL DEFAULT 0.0,
    is_completed  INTEGER DEFAULT 0,
    due_date      TEXT,
    completed_at  TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_task_metrics_project  ON task_metrics(project_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_task_metrics_assignee ON task_metrics(assigned_to);

-- ── Per-user rollup ────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS user_stats (
    user_id             TEXT PRIMARY KEY,
    tasks_created       INTEGER DEFAULT 0,
    tasks_assigned      INTEGER DEFAULT 0,
    tasks_completed     INTEGER DEFAULT 0,
    tasks_in_progress   INTEGER DEFAULT 0,
    total_time_spent    REAL DEFAULT 0.0,
    avg_completion_time REAL DEFAULT 0.0,
    productivity_score  REAL DEFAULT 0.0,
    last_activity_at    TEXT,
    updated_at          TEXT NOT NULL
);

-- ── Membership mirror ──────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS project_members (
    project_id  TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    role        TEXT NOT NULL DEFAULT 'member',
    joined_at   TEXT NOT NULL,
    PRIMARY KEY (project_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_project_members_user ON project_members(user_id);
"""


async def _stamp_version(db: aiosqlite.Connection, version: int) -> None:
    async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
        row = await cur.fetchone()
        current = row[0] if row and row[0] is not None else 0
    if current < version:
        await db.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
        logger.info("Schema version stamped: %s -> %s", current, version)


async def run_document_migrations(db: aiosqlite.Connection) -> None:
    """Create the document-store tables."""
    await db.executescript(_DOCUMENT_TABLES)
    await _stamp_version(db, DOCUMENT_SCHEMA_VERSION)
    await db.commit()


async def run_analytics_migrations(db: aiosqlite.Connection) -> None:
    """Create the analytics-store tables."""
    await db.executescript(_ANALYTICS_TABLES)
    await _stamp_version(db, ANALYTICS_SCHEMA_VERSION)
    await db.commit()
