"""Repository factory to abstract the store backends.

The document store is SQLite or MongoDB; the analytics store is SQLite or Postgres.
"""
from __future__ import annotations

from typing import Any
import aiosqlite

from taskforge.db.repositories.projects import SqliteProjectRepository
from taskforge.db.repositories.tasks import SqliteTaskRepository
from taskforge.db.repositories.comments import SqliteCommentRepository
from taskforge.db.repositories.notifications import SqliteNotificationRepository
from taskforge.db.repositories.users import SqliteUserRepository
from taskforge.db.repositories.analytics import (
    SqliteProjectAnalyticsRepository,
    SqliteTaskMetricsRepository,
    SqliteUserStatsRepository,
    SqliteProjectMemberRepository,
)

# Document store

def get_project_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteProjectRepository(db)
    from taskforge.db.repositories.mongo.projects import MongoProjectRepository
    return MongoProjectRepository(db)

def get_task_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteTaskRepository(db)
    from taskforge.db.repositories.mongo.tasks import MongoTaskRepository
    return MongoTaskRepository(db)

def get_comment_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteCommentRepository(db)
    from taskforge.db.repositories.mongo.comments import MongoCommentRepository
    return MongoCommentRepository(db)

def get_notification_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteNotificationRepository(db)
    from taskforge.db.repositories.mongo.notifications import MongoNotificationRepository
    return MongoNotificationRepository(db)

# Analytics store

def get_user_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteUserRepository(db)
    from taskforge.db.repositories.postgres.users import PostgresUserRepository
    return PostgresUserRepository(db)

def get_project_analytics_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteProjectAnalyticsRepository(db)
    from taskforge.db.repositories.postgres.analytics import PostgresProjectAnalyticsRepository
    return PostgresProjectAnalyticsRepository(db)

def get_task_metrics_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteTaskMetricsRepository(db)
    from taskforge.db.repositories.postgres.analytics import PostgresTaskMetricsRepository
    return PostgresTaskMetricsRepository(db)

def get_user_stats_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteUserStatsRepository(db)
    from taskforge.db.repositories.postgres.analytics import PostgresUserStatsRepository
    return PostgresUserStatsRepository(db)

def get_project_member_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteProjectMemberRepository(db)
    from taskforge.db.repositories.postgres.analytics import PostgresProjectMemberRepository
    return PostgresProjectMemberRepository(db)
