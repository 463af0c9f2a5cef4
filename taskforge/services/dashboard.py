"""User dashboard composition over the task, project and notification reads."""
from __future__ import annotations

import asyncio
from typing import Any

from taskforge.services.notifications import NotificationService
from taskforge.services.projects import ProjectService
from taskforge.services.tasks import TaskService

_RECENT_NOTIFICATIONS = 10


class DashboardAggregator:
    """Stateless; every call reads both stores afresh."""

    def __init__(self, document_db: Any, analytics_db: Any):
        self.projects = ProjectService(document_db, analytics_db)
        self.tasks = TaskService(document_db, analytics_db)
        self.notifications = NotificationService(document_db)

    async def get_user_dashboard(self, user_id: str, project_id: str | None = None) -> dict[str, Any]:
        reads = [
            self.projects.get_user_projects(user_id, page=1),
            self.tasks.get_user_task_stats(user_id),
            self.notifications.get_user_notifications(user_id, limit=_RECENT_NOTIFICATIONS),
            self.notifications.count_unseen(user_id),
        ]
        if project_id:
            reads.append(self.projects.get_project_dashboard_data(project_id))
        results = await asyncio.gather(*reads)
        projects, task_stats, notifications, unread = results[:4]
        return {
            "projects": projects,
            "taskStats": task_stats,
            "notifications": notifications,
            "unreadNotifications": unread,
            "project": results[4] if project_id else None,
        }
