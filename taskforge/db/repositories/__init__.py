"""Repository package for database access."""

from .projects import SqliteProjectRepository
from .tasks import SqliteTaskRepository
from .comments import SqliteCommentRepository
from .notifications import SqliteNotificationRepository
from .users import SqliteUserRepository
from .analytics import (
    SqliteProjectAnalyticsRepository,
    SqliteProjectMemberRepository,
    SqliteTaskMetricsRepository,
    SqliteUserStatsRepository,
)

__all__ = [
    "SqliteProjectRepository",
    "SqliteTaskRepository",
    "SqliteCommentRepository",
    "SqliteNotificationRepository",
    "SqliteUserRepository",
    "SqliteProjectAnalyticsRepository",
    "SqliteProjectMemberRepository",
    "SqliteTaskMetricsRepository",
    "SqliteUserStatsRepository",
]
