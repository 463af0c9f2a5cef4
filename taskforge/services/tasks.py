"""Task service: operational task writes plus best-effort analytics sync.

Every mutation writes the task document first. The analytics side effects
(TaskMetrics mirror, ProjectAnalytics touch, assignee UserStats, project task
counts) run afterwards through ``run_side_effects`` and can only be logged,
never surfaced to the caller.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from taskforge.date_utils import normalize_iso_date, utc_now_iso
from taskforge.db.factory import (
    get_notification_repository,
    get_project_repository,
    get_task_metrics_repository,
    get_task_repository,
    get_project_analytics_repository,
    get_user_stats_repository,
)
from taskforge.errors import NotFoundError, ValidationError, translate_store_errors, validate_payload
from taskforge.models import DONE_STATUS, IN_PROGRESS_STATUS, TaskCreate, TaskPatch
from taskforge.services.analytics import (
    productivity_score,
    summary_group_from_row,
    task_metrics_from_row,
    task_metrics_row,
    user_stats_from_row,
)
from taskforge.services.notifications import new_notification_document
from taskforge.services.pagination import envelope, page_window
from taskforge.services.sync import run_side_effects

logger = logging.getLogger("taskforge.services.tasks")

# Changes to these fields ripple into project and user analytics.
SYNC_TRACKED_FIELDS = ("status", "assignedTo", "dueDate")
_NULLABLE_FIELDS = {"assignedTo", "dueDate", "parentTaskId"}
_ANALYTICS_GROUPS = {"status", "user"}


def _new_task_document(payload: TaskCreate) -> dict[str, Any]:
    now = utc_now_iso()
    doc = payload.model_dump()
    doc.update(
        id=uuid.uuid4().hex,
        completedAt=now if payload.status == DONE_STATUS else None,
        createdAt=now,
        updatedAt=now,
    )
    return doc


def _patch_changes(data: Any, prefix: str = "") -> dict[str, Any]:
    payload = validate_payload(TaskPatch, data, prefix)
    changes = payload.model_dump(exclude_unset=True)
    return {
        key: value
        for key, value in changes.items()
        if value is not None or key in _NULLABLE_FIELDS
    }


def _with_completion(existing: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Maintain ``completedAt`` when the status enters or leaves ``done``."""
    if "status" not in changes:
        return changes
    was_done = existing.get("status") == DONE_STATUS
    if changes["status"] == DONE_STATUS:
        if not was_done:
            changes["completedAt"] = utc_now_iso()
    else:
        changes["completedAt"] = None
    return changes


def _tracked_change(before: dict[str, Any], after: dict[str, Any]) -> bool:
    return any(before.get(field) != after.get(field) for field in SYNC_TRACKED_FIELDS)


def _assignees(*docs: dict[str, Any]) -> list[str]:
    return sorted({doc.get("assignedTo") for doc in docs if doc.get("assignedTo")})


class TaskService:
    def __init__(self, document_db: Any, analytics_db: Any):
        self.task_repo = get_task_repository(document_db)
        self.project_repo = get_project_repository(document_db)
        self.notification_repo = get_notification_repository(document_db)
        self.metrics_repo = get_task_metrics_repository(analytics_db)
        self.project_analytics_repo = get_project_analytics_repository(analytics_db)
        self.user_stats_repo = get_user_stats_repository(analytics_db)

    # ── Sync helpers ───────────────────────────────────────────────

    async def refresh_project_task_stats(self, project_id: str) -> None:
        """Recompute the project's cached task counters with count queries."""
        total, completed = await asyncio.gather(
            self.task_repo.count(project_id=project_id),
            self.task_repo.count(project_id=project_id, status=DONE_STATUS),
        )
        await self.project_repo.set_task_stats(project_id, total, completed)

    async def _sync_task(
        self,
        task: dict[str, Any],
        *,
        label: str,
        assignees: list[str],
        refresh_counts: bool,
    ) -> dict[str, bool]:
        project_id = task["projectId"]
        branches: dict[str, Any] = {
            "task_metrics": self.metrics_repo.upsert(task_metrics_row(task)),
            "project_analytics": self.project_analytics_repo.touch(project_id),
        }
        for user_id in assignees:
            branches[f"user_stats:{user_id}"] = self.update_user_stats(user_id)
        if refresh_counts:
            branches["project_stats"] = self.refresh_project_task_stats(project_id)
        return await run_side_effects(label, task["id"], branches, project_id=project_id)

    async def _require_projects(self, project_ids: set[str]) -> None:
        ordered = sorted(project_ids)
        projects = await asyncio.gather(*(self.project_repo.get_by_id(pid) for pid in ordered))
        for project_id, project in zip(ordered, projects):
            if project is None:
                raise NotFoundError("Project", project_id)

    # ── Single-task operations ─────────────────────────────────────

    @translate_store_errors
    async def create_task(self, data: Any) -> dict[str, Any]:
        payload = validate_payload(TaskCreate, data)
        await self._require_projects({payload.projectId})

        doc = _new_task_document(payload)
        await self.task_repo.insert(doc)
        logger.info("Task %s created in project %s", doc["id"], doc["projectId"])

        await self._sync_task(
            doc,
            label="task.create",
            assignees=_assignees(doc),
            refresh_counts=True,
        )
        return doc

    @translate_store_errors
    async def get_task_by_id(self, task_id: str) -> dict[str, Any]:
        task = await self.task_repo.get_by_id(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    @translate_store_errors
    async def get_tasks_by_project(
        self,
        project_id: str,
        *,
        status: str | None = None,
        priority: str | None = None,
        assigned_to: str | None = None,
        sort_by: str = "order",
        sort_order: str = "asc",
        page: int | None = 1,
        limit: int | None = None,
    ) -> dict[str, Any]:
        page, limit, offset = page_window(page, limit)
        items, total = await asyncio.gather(
            self.task_repo.list_by_project(
                project_id,
                status=status,
                priority=priority,
                assigned_to=assigned_to,
                sort_by=sort_by,
                sort_order=sort_order,
                offset=offset,
                limit=limit,
            ),
            self.task_repo.count(
                project_id=project_id,
                status=status,
                priority=priority,
                assigned_to=assigned_to,
            ),
        )
        return envelope(items, total, page, limit)

    @translate_store_errors
    async def update_task(self, task_id: str, patch: Any) -> dict[str, Any]:
        changes = _patch_changes(patch)
        existing = await self.task_repo.get_by_id(task_id)
        if existing is None:
            raise NotFoundError("Task", task_id)

        updated = await self.task_repo.update(task_id, _with_completion(existing, changes))
        if updated is None:
            raise NotFoundError("Task", task_id)

        if _tracked_change(existing, updated):
            await self._sync_task(
                updated,
                label="task.update",
                assignees=_assignees(existing, updated),
                refresh_counts=existing.get("status") != updated.get("status"),
            )
        else:
            await run_side_effects(
                "task.update",
                task_id,
                {"task_metrics": self.metrics_repo.upsert(task_metrics_row(updated))},
                project_id=updated["projectId"],
            )
        return updated

    @translate_store_errors
    async def delete_task(self, task_id: str) -> bool:
        deleted = await self.task_repo.delete(task_id)
        if deleted is None:
            raise NotFoundError("Task", task_id)
        project_id = deleted["projectId"]
        logger.info("Task %s deleted from project %s", task_id, project_id)

        await run_side_effects(
            "task.delete",
            task_id,
            {"task_metrics": self.metrics_repo.delete(task_id)},
            project_id=project_id,
        )
        branches: dict[str, Any] = {"project_stats": self.refresh_project_task_stats(project_id)}
        for user_id in _assignees(deleted):
            branches[f"user_stats:{user_id}"] = self.update_user_stats(user_id)
        await run_side_effects("task.delete", task_id, branches, project_id=project_id)
        return True

    async def assign_task_to_user(self, task_id: str, user_id: str) -> dict[str, Any]:
        if not (user_id or "").strip():
            raise ValidationError("Validation failed.", [{"field": "userId", "message": "Field required"}])
        task = await self.update_task(task_id, {"assignedTo": user_id})
        notification = new_notification_document(
            user_id,
            f"You have been assigned to task: {task['title']}",
            link=f"/projects/{task['projectId']}/tasks/{task_id}",
        )
        await run_side_effects(
            "task.assign",
            task_id,
            {"notification": self.notification_repo.insert(notification)},
            project_id=task["projectId"],
        )
        return task

    async def unassign_task(self, task_id: str) -> dict[str, Any]:
        return await self.update_task(task_id, {"assignedTo": None})

    # ── Batch operations ───────────────────────────────────────────

    async def _sync_batch(
        self,
        label: str,
        docs: list[dict[str, Any]],
        *,
        touch_projects: set[str],
        count_projects: set[str],
        assignees: set[str],
    ) -> None:
        # Mirror rows land first so the user time aggregates below can see them.
        await asyncio.gather(*(
            run_side_effects(
                label,
                doc["id"],
                {"task_metrics": self.metrics_repo.upsert(task_metrics_row(doc))},
                project_id=doc["projectId"],
            )
            for doc in docs
        ))
        branches: dict[str, Any] = {}
        for project_id in sorted(touch_projects):
            branches[f"project_analytics:{project_id}"] = self.project_analytics_repo.touch(project_id)
        for project_id in sorted(count_projects):
            branches[f"project_stats:{project_id}"] = self.refresh_project_task_stats(project_id)
        for user_id in sorted(assignees):
            branches[f"user_stats:{user_id}"] = self.update_user_stats(user_id)
        await run_side_effects(label, f"batch:{len(docs)}", branches)

    @translate_store_errors
    async def batch_create_tasks(self, items: list[Any]) -> list[dict[str, Any]]:
        payloads: list[TaskCreate] = []
        errors: list[dict[str, str]] = []
        for index, item in enumerate(items or []):
            try:
                payloads.append(validate_payload(TaskCreate, item, prefix=f"tasks.{index}"))
            except ValidationError as exc:
                errors.extend(exc.errors)
        if errors:
            raise ValidationError("Validation failed.", errors)
        if not payloads:
            return []
        await self._require_projects({p.projectId for p in payloads})

        docs = [_new_task_document(p) for p in payloads]
        await self.task_repo.insert_many(docs)
        logger.info("Batch created %d tasks", len(docs))

        project_ids = {doc["projectId"] for doc in docs}
        await self._sync_batch(
            "task.batch_create",
            docs,
            touch_projects=project_ids,
            count_projects=project_ids,
            assignees=set(_assignees(*docs)),
        )
        return docs

    @translate_store_errors
    async def batch_update_tasks(self, updates: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Apply ``[{"id": ..., <patch fields>}, ...]`` in one bulk write."""
        requested: dict[str, dict[str, Any]] = {}
        errors: list[dict[str, str]] = []
        for index, item in enumerate(updates or []):
            body = dict(item or {})
            task_id = str(body.pop("id", "") or "").strip()
            if not task_id:
                errors.append({"field": f"updates.{index}.id", "message": "Field required"})
                continue
            try:
                requested[task_id] = _patch_changes(body, prefix=f"updates.{index}")
            except ValidationError as exc:
                errors.extend(exc.errors)
        if errors:
            raise ValidationError("Validation failed.", errors)
        if not requested:
            return []

        existing = {doc["id"]: doc for doc in await self.task_repo.get_many(list(requested))}
        for task_id in requested:
            if task_id not in existing:
                raise NotFoundError("Task", task_id)

        patches = {
            task_id: _with_completion(existing[task_id], changes)
            for task_id, changes in requested.items()
        }
        updated = await self.task_repo.update_many(patches)
        logger.info("Batch updated %d tasks", len(updated))

        touch_projects: set[str] = set()
        count_projects: set[str] = set()
        assignees: set[str] = set()
        for doc in updated:
            before = existing[doc["id"]]
            if not _tracked_change(before, doc):
                continue
            touch_projects.add(doc["projectId"])
            assignees.update(_assignees(before, doc))
            if before.get("status") != doc.get("status"):
                count_projects.add(doc["projectId"])
        await self._sync_batch(
            "task.batch_update",
            updated,
            touch_projects=touch_projects,
            count_projects=count_projects,
            assignees=assignees,
        )
        return updated

    @translate_store_errors
    async def batch_delete_tasks(self, task_ids: list[str]) -> dict[str, Any]:
        ids = [tid for tid in dict.fromkeys(task_ids or []) if tid]
        if not ids:
            return {"deleted": 0, "ids": []}
        deleted = await self.task_repo.delete_many(ids)
        deleted_ids = [doc["id"] for doc in deleted]
        logger.info("Batch deleted %d of %d tasks", len(deleted_ids), len(ids))
        if not deleted:
            return {"deleted": 0, "ids": []}

        await run_side_effects(
            "task.batch_delete",
            f"batch:{len(deleted_ids)}",
            {"task_metrics": self.metrics_repo.delete_many(deleted_ids)},
        )
        branches: dict[str, Any] = {}
        for project_id in sorted({doc["projectId"] for doc in deleted}):
            branches[f"project_stats:{project_id}"] = self.refresh_project_task_stats(project_id)
        for user_id in _assignees(*deleted):
            branches[f"user_stats:{user_id}"] = self.update_user_stats(user_id)
        await run_side_effects("task.batch_delete", f"batch:{len(deleted_ids)}", branches)
        return {"deleted": len(deleted_ids), "ids": deleted_ids}

    # ── Analytics reads ────────────────────────────────────────────

    @translate_store_errors
    async def get_task_analytics(
        self,
        project_id: str,
        *,
        group_by: str | None = None,
        status: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[dict[str, Any]]:
        errors = []
        if group_by and group_by not in _ANALYTICS_GROUPS:
            errors.append({"field": "groupBy", "message": "must be one of: status, user"})
        bounds: dict[str, str | None] = {}
        for field, value in (("dateFrom", date_from), ("dateTo", date_to)):
            normalized = normalize_iso_date(value) if value else None
            if value and not normalized:
                errors.append({"field": field, "message": "must be an ISO-8601 date"})
            bounds[field] = normalized or None
        if errors:
            raise ValidationError("Validation failed.", errors)

        if group_by:
            rows = await self.metrics_repo.summarize(
                project_id=project_id,
                status=status,
                date_from=bounds["dateFrom"],
                date_to=bounds["dateTo"],
                group_by=group_by,
            )
            return [summary_group_from_row(row, group_by) for row in rows]
        rows = await self.metrics_repo.list_for_project(
            project_id,
            status=status,
            date_from=bounds["dateFrom"],
            date_to=bounds["dateTo"],
            order_by="created_at",
        )
        return [task_metrics_from_row(row) for row in rows]

    @translate_store_errors
    async def get_user_task_stats(self, user_id: str) -> dict[str, Any]:
        return user_stats_from_row(await self.user_stats_repo.get(user_id), user_id)

    @translate_store_errors
    async def update_user_stats(self, user_id: str) -> dict[str, Any]:
        """Recompute a user's rollup.

        Counts come from the operational store; time aggregates come from the
        TaskMetrics mirror through the same ``summarize`` call that backs
        ``get_task_analytics``.
        """
        created, assigned, completed, in_progress, summary = await asyncio.gather(
            self.task_repo.count(created_by=user_id),
            self.task_repo.count(assigned_to=user_id),
            self.task_repo.count(assigned_to=user_id, status=DONE_STATUS),
            self.task_repo.count(assigned_to=user_id, status=IN_PROGRESS_STATUS),
            self.metrics_repo.summarize(assigned_to=user_id),
        )
        totals = summary[0] if summary else {}
        row = {
            "user_id": user_id,
            "tasks_created": created,
            "tasks_assigned": assigned,
            "tasks_completed": completed,
            "tasks_in_progress": in_progress,
            "total_time_spent": round(float(totals.get("total_time_spent") or 0.0), 2),
            "avg_completion_time": round(float(totals.get("avg_completion_hours") or 0.0), 2),
            "productivity_score": productivity_score(completed, assigned),
            "last_activity_at": utc_now_iso(),
        }
        await self.user_stats_repo.upsert(row)
        return user_stats_from_row(row, user_id)
