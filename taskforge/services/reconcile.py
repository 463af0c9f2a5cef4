"""Drift reconciliation between the operational store and the analytics cache.

The sweep is idempotent: a second run over an unchanged project reports zero
drift. It repairs four kinds of drift per project:

* TaskMetrics rows that are missing, stale, or orphaned (task no longer exists)
* the cached ProjectAnalytics counters
* the ``stats.taskCount``/``stats.completedTasks`` cached on the project document
* ProjectMember rows that no longer mirror ``Project.members``
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from taskforge.db.factory import (
    get_comment_repository,
    get_project_analytics_repository,
    get_project_member_repository,
    get_project_repository,
    get_task_metrics_repository,
    get_task_repository,
)
from taskforge.errors import AppError, NotFoundError, translate_store_errors
from taskforge.observability import record_reconcile, start_span
from taskforge.services.analytics import (
    build_project_analytics_row,
    compute_status_counts,
    metrics_row_matches,
    task_metrics_row,
)
from taskforge.services.tasks import TaskService

logger = logging.getLogger("taskforge.reconcile")

_ANALYTICS_COUNTERS = (
    ("total_tasks", "total"),
    ("completed_tasks", "completed"),
    ("in_progress_tasks", "in_progress"),
    ("pending_tasks", "pending"),
    ("overdue_tasks", "overdue"),
)


def _analytics_drifted(cached: dict[str, Any] | None, expected: dict[str, Any]) -> bool:
    if not cached:
        return True
    for column, _ in _ANALYTICS_COUNTERS:
        if int(cached.get(column) or 0) != expected[column]:
            return True
    return (
        int(cached.get("total_members") or 0) != expected["total_members"]
        or int(cached.get("total_comments") or 0) != expected["total_comments"]
    )


class ReconciliationService:
    def __init__(self, document_db: Any, analytics_db: Any):
        self.project_repo = get_project_repository(document_db)
        self.task_repo = get_task_repository(document_db)
        self.comment_repo = get_comment_repository(document_db)
        self.project_analytics_repo = get_project_analytics_repository(analytics_db)
        self.metrics_repo = get_task_metrics_repository(analytics_db)
        self.member_repo = get_project_member_repository(analytics_db)
        self.tasks = TaskService(document_db, analytics_db)

    async def _reconcile_metrics(self, project_id: str, tasks: list[dict[str, Any]]) -> dict[str, Any]:
        rows = await self.metrics_repo.list_for_project(project_id)
        rows_by_task = {row["task_id"]: row for row in rows}
        task_ids = {task["id"] for task in tasks}

        missing = [task for task in tasks if task["id"] not in rows_by_task]
        stale = [
            task for task in tasks
            if task["id"] in rows_by_task and not metrics_row_matches(rows_by_task[task["id"]], task)
        ]
        orphaned = sorted(tid for tid in rows_by_task if tid not in task_ids)

        for task in [*missing, *stale]:
            await self.metrics_repo.upsert(task_metrics_row(task))
        if orphaned:
            await self.metrics_repo.delete_many(orphaned)

        touched_users = {
            user_id
            for user_id in [
                *(task.get("assignedTo") for task in [*missing, *stale]),
                *(rows_by_task[tid].get("assigned_to") for tid in orphaned),
                *(rows_by_task[task["id"]].get("assigned_to") for task in stale),
            ]
            if user_id
        }
        return {
            "missingMetrics": len(missing),
            "staleMetrics": len(stale),
            "orphanedMetrics": len(orphaned),
            "touchedUsers": sorted(touched_users),
        }

    async def _reconcile_members(self, project: dict[str, Any]) -> tuple[int, int]:
        rows = await self.member_repo.list_for_project(project["id"])
        mirrored = {row["user_id"]: row for row in rows}
        members = list(project.get("members") or [])
        added = 0
        for user_id in members:
            expected_role = "owner" if user_id == project["owner"] else None
            row = mirrored.get(user_id)
            if row is None or (expected_role and row.get("role") != expected_role):
                await self.member_repo.upsert(project["id"], user_id, expected_role or "member")
                added += 1
        removed = 0
        for user_id in mirrored:
            if user_id not in members:
                await self.member_repo.delete(project["id"], user_id)
                removed += 1
        return added, removed

    @translate_store_errors
    async def reconcile_project(self, project_id: str) -> dict[str, Any]:
        with start_span("reconcile.project", {"project.id": project_id}):
            project, tasks, total_comments, cached = await asyncio.gather(
                self.project_repo.get_by_id(project_id),
                self.task_repo.list_by_project(project_id),
                self.comment_repo.count_by_project(project_id),
                self.project_analytics_repo.get(project_id),
            )
            if project is None:
                raise NotFoundError("Project", project_id)

            metrics = await self._reconcile_metrics(project_id, tasks)
            members_added, members_removed = await self._reconcile_members(project)

            counts = compute_status_counts(tasks)
            expected = build_project_analytics_row(
                project_id,
                counts,
                total_members=len(project.get("members") or []),
                total_comments=total_comments,
            )
            analytics_repaired = _analytics_drifted(cached, expected)
            if analytics_repaired:
                await self.project_analytics_repo.upsert(expected)

            stats = project.get("stats") or {}
            stats_repaired = (
                int(stats.get("taskCount") or 0) != counts["total"]
                or int(stats.get("completedTasks") or 0) != counts["completed"]
            )
            if stats_repaired:
                await self.project_repo.set_task_stats(project_id, counts["total"], counts["completed"])

            for user_id in metrics["touchedUsers"]:
                await self.tasks.update_user_stats(user_id)

        drift = (
            metrics["missingMetrics"]
            + metrics["staleMetrics"]
            + metrics["orphanedMetrics"]
            + members_added
            + members_removed
            + int(analytics_repaired)
            + int(stats_repaired)
        )
        record_reconcile("ok", drift, project_id=project_id)
        if drift:
            logger.info("Reconciled project %s: %d drifted rows repaired", project_id, drift)
        return {
            "projectId": project_id,
            "missingMetrics": metrics["missingMetrics"],
            "staleMetrics": metrics["staleMetrics"],
            "orphanedMetrics": metrics["orphanedMetrics"],
            "membersAdded": members_added,
            "membersRemoved": members_removed,
            "analyticsRepaired": analytics_repaired,
            "projectStatsRepaired": stats_repaired,
            "userStatsRefreshed": len(metrics["touchedUsers"]),
            "drift": drift,
        }

    @translate_store_errors
    async def reconcile_all(self) -> dict[str, Any]:
        """Sweep every project; one failing project does not stop the sweep."""
        project_ids = await self.project_repo.list_ids()
        reports: list[dict[str, Any]] = []
        failed: list[str] = []
        for project_id in project_ids:
            try:
                reports.append(await self.reconcile_project(project_id))
            except AppError as exc:
                logger.warning("Reconciliation failed for project %s: %s", project_id, exc)
                record_reconcile("error", 0, project_id=project_id)
                failed.append(project_id)
        return {
            "projects": len(project_ids),
            "drift": sum(report["drift"] for report in reports),
            "failed": failed,
            "reports": reports,
        }


async def run_reconcile_loop(document_db: Any, analytics_db: Any, interval_seconds: int) -> None:
    """Run ``reconcile_all`` every ``interval_seconds`` until cancelled."""
    service = ReconciliationService(document_db, analytics_db)
    interval = max(1, int(interval_seconds))
    while True:
        await asyncio.sleep(interval)
        try:
            summary = await service.reconcile_all()
        except AppError as exc:
            logger.warning("Reconciliation sweep failed: %s", exc)
            continue
        logger.info(
            "Reconciliation sweep finished: projects=%d drift=%d failed=%d",
            summary["projects"],
            summary["drift"],
            len(summary["failed"]),
        )
