"""Project service: project documents, membership mirror and project analytics."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from taskforge import config
from taskforge.date_utils import utc_now_iso
from taskforge.db.factory import (
    get_comment_repository,
    get_project_analytics_repository,
    get_project_member_repository,
    get_project_repository,
    get_task_metrics_repository,
    get_task_repository,
    get_user_repository,
    get_user_stats_repository,
)
from taskforge.errors import AppError, NotFoundError, ValidationError, translate_store_errors, validate_payload
from taskforge.models import DONE_STATUS, ProjectCreate, ProjectDashboard, ProjectPatch
from taskforge.services.analytics import (
    build_project_analytics_row,
    completion_rate,
    compute_status_counts,
    empty_project_analytics,
    project_analytics_from_row,
    project_member_from_row,
    task_metrics_from_row,
    user_profile_from_row,
)
from taskforge.services.pagination import envelope, page_window
from taskforge.services.sync import run_side_effects
from taskforge.services.tasks import TaskService

logger = logging.getLogger("taskforge.services.projects")

ARCHIVED_STATUS = "archived"
_ASSIGNABLE_ROLES = {"admin", "member", "viewer"}


def _with_archive_marker(existing: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Maintain ``archivedAt`` when the status enters or leaves ``archived``."""
    if "status" not in changes:
        return changes
    if changes["status"] == ARCHIVED_STATUS:
        if existing.get("status") != ARCHIVED_STATUS:
            changes["archivedAt"] = utc_now_iso()
    else:
        changes["archivedAt"] = None
    return changes


class ProjectService:
    def __init__(self, document_db: Any, analytics_db: Any):
        self.project_repo = get_project_repository(document_db)
        self.task_repo = get_task_repository(document_db)
        self.comment_repo = get_comment_repository(document_db)
        self.user_repo = get_user_repository(analytics_db)
        self.project_analytics_repo = get_project_analytics_repository(analytics_db)
        self.metrics_repo = get_task_metrics_repository(analytics_db)
        self.user_stats_repo = get_user_stats_repository(analytics_db)
        self.member_repo = get_project_member_repository(analytics_db)
        self.tasks = TaskService(document_db, analytics_db)

    async def _require_project(self, project_id: str) -> dict[str, Any]:
        project = await self.project_repo.get_by_id(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    # ── CRUD ───────────────────────────────────────────────────────

    @translate_store_errors
    async def create_project(self, data: Any, owner_id: str) -> dict[str, Any]:
        if not (owner_id or "").strip():
            raise ValidationError("Validation failed.", [{"field": "owner", "message": "Field required"}])
        payload = validate_payload(ProjectCreate, data)

        now = utc_now_iso()
        doc = payload.model_dump()
        doc.update(
            id=uuid.uuid4().hex,
            owner=owner_id,
            members=[owner_id, *payload.members],
            createdAt=now,
            updatedAt=now,
            archivedAt=now if payload.status == ARCHIVED_STATUS else None,
            stats={},
        )
        await self.project_repo.insert(doc)
        project_id = doc["id"]
        logger.info("Project %s created by %s", project_id, owner_id)

        outcome = await run_side_effects(
            "project.create",
            project_id,
            {"analytics_init": self.project_analytics_repo.initialize_project(project_id, owner_id)},
            project_id=project_id,
        )
        extra_members = [m for m in doc["members"] if m != owner_id]
        if extra_members and outcome.get("analytics_init"):
            await run_side_effects(
                "project.create",
                project_id,
                {f"project_member:{m}": self.member_repo.upsert(project_id, m, "member") for m in extra_members},
                project_id=project_id,
            )
            await run_side_effects(
                "project.create",
                project_id,
                {"project_analytics": self.update_project_analytics(project_id)},
                project_id=project_id,
            )
        return doc

    @translate_store_errors
    async def get_project_by_id(
        self,
        project_id: str,
        *,
        include_users: bool = False,
        include_analytics: bool = False,
    ) -> dict[str, Any]:
        project = await self._require_project(project_id)
        result = dict(project)

        if include_users:
            user_ids = list(dict.fromkeys([project["owner"], *project.get("members", [])]))
            profiles = {
                row["id"]: user_profile_from_row(row)
                for row in await self.user_repo.get_many(user_ids)
            }
            result["ownerProfile"] = profiles.get(project["owner"])
            result["memberProfiles"] = [profiles[m] for m in project.get("members", []) if m in profiles]

        if include_analytics:
            try:
                result["analytics"] = await self.update_project_analytics(project_id)
            except AppError as exc:
                logger.warning("Fresh analytics unavailable for project %s: %s", project_id, exc)
                result["analytics"] = empty_project_analytics(project_id)
        return result

    @translate_store_errors
    async def get_user_projects(
        self,
        user_id: str,
        *,
        page: int | None = 1,
        limit: int | None = None,
        status: str | None = None,
        sort_by: str = "updatedAt",
        sort_order: str = "desc",
    ) -> dict[str, Any]:
        page, limit, offset = page_window(page, limit)
        items, total = await asyncio.gather(
            self.project_repo.list_for_user(
                user_id,
                status=status,
                sort_by=sort_by,
                sort_order=sort_order,
                offset=offset,
                limit=limit,
            ),
            self.project_repo.count_for_user(user_id, status=status),
        )
        return envelope(items, total, page, limit)

    @translate_store_errors
    async def update_project(self, project_id: str, patch: Any) -> dict[str, Any]:
        payload = validate_payload(ProjectPatch, patch)
        changes = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key == "dueDate"
        }
        existing = await self._require_project(project_id)
        updated = await self.project_repo.update(project_id, _with_archive_marker(existing, changes))
        if updated is None:
            raise NotFoundError("Project", project_id)

        await run_side_effects(
            "project.update",
            project_id,
            {"project_analytics": self.update_project_analytics(project_id)},
            project_id=project_id,
        )
        return updated

    @translate_store_errors
    async def delete_project(self, project_id: str) -> bool:
        await self._require_project(project_id)
        tasks = await self.task_repo.list_by_project(project_id)
        task_ids = [t["id"] for t in tasks]
        affected_users = sorted({
            user_id
            for task in tasks
            for user_id in (task.get("assignedTo"), task.get("createdBy"))
            if user_id
        })

        # Analytics purge is one transaction; the operational deletes below are not part of it.
        await run_side_effects(
            "project.delete",
            project_id,
            {"analytics_purge": self.project_analytics_repo.purge_project(project_id, task_ids)},
            project_id=project_id,
        )
        deleted_tasks, deleted_comments, _ = await asyncio.gather(
            self.task_repo.delete_by_project(project_id),
            self.comment_repo.delete_by_project(project_id, task_ids),
            self.project_repo.delete(project_id),
        )
        logger.info(
            "Project %s deleted (tasks=%d comments=%d)",
            project_id,
            deleted_tasks,
            deleted_comments,
        )
        if affected_users:
            await run_side_effects(
                "project.delete",
                project_id,
                {f"user_stats:{user_id}": self.tasks.update_user_stats(user_id) for user_id in affected_users},
                project_id=project_id,
            )
        return True

    # ── Membership ─────────────────────────────────────────────────

    @translate_store_errors
    async def add_member_to_project(self, project_id: str, user_id: str, role: str = "member") -> dict[str, Any]:
        if role not in _ASSIGNABLE_ROLES:
            raise ValidationError(
                "Validation failed.",
                [{"field": "role", "message": f"must be one of: {', '.join(sorted(_ASSIGNABLE_ROLES))}"}],
            )
        project, user = await asyncio.gather(
            self.project_repo.get_by_id(project_id),
            self.user_repo.get_by_id(user_id),
        )
        if project is None:
            raise NotFoundError("Project", project_id)
        if user is None:
            raise NotFoundError("User", user_id)

        member_role = "owner" if user_id == project["owner"] else role
        updated, _ = await asyncio.gather(
            self.project_repo.add_member(project_id, user_id),
            run_side_effects(
                "project.add_member",
                project_id,
                {"project_member": self.member_repo.upsert(project_id, user_id, member_role)},
                project_id=project_id,
            ),
        )
        if updated is None:
            raise NotFoundError("Project", project_id)
        await run_side_effects(
            "project.add_member",
            project_id,
            {"project_analytics": self.update_project_analytics(project_id)},
            project_id=project_id,
        )
        return updated

    @translate_store_errors
    async def remove_member_from_project(self, project_id: str, user_id: str) -> dict[str, Any]:
        project = await self._require_project(project_id)
        if user_id == project["owner"]:
            raise ValidationError(
                "Validation failed.",
                [{"field": "userId", "message": "The project owner cannot be removed."}],
            )
        if user_id not in project.get("members", []):
            raise NotFoundError("ProjectMember", user_id)

        updated, _ = await asyncio.gather(
            self.project_repo.remove_member(project_id, user_id),
            run_side_effects(
                "project.remove_member",
                project_id,
                {"project_member": self.member_repo.delete(project_id, user_id)},
                project_id=project_id,
            ),
        )
        if updated is None:
            raise NotFoundError("Project", project_id)
        await run_side_effects(
            "project.remove_member",
            project_id,
            {"project_analytics": self.update_project_analytics(project_id)},
            project_id=project_id,
        )
        return updated

    # ── Analytics ──────────────────────────────────────────────────

    @translate_store_errors
    async def update_project_analytics(self, project_id: str) -> dict[str, Any]:
        """Recompute the ProjectAnalytics row from the operational store."""
        project, snapshot, total_comments = await asyncio.gather(
            self.project_repo.get_by_id(project_id),
            self.task_repo.list_status_snapshot(project_id),
            self.comment_repo.count_by_project(project_id),
        )
        if project is None:
            raise NotFoundError("Project", project_id)

        counts = compute_status_counts(snapshot)
        row = build_project_analytics_row(
            project_id,
            counts,
            total_members=len(project.get("members") or []),
            total_comments=total_comments,
        )
        await self.project_analytics_repo.upsert(row)
        stored = await self.project_analytics_repo.get(project_id)
        return project_analytics_from_row(stored or row, project_id)

    @translate_store_errors
    async def get_project_analytics(self, project_id: str) -> dict[str, Any]:
        return project_analytics_from_row(await self.project_analytics_repo.get(project_id), project_id)

    @translate_store_errors
    async def get_project_dashboard_data(self, project_id: str) -> dict[str, Any]:
        """Read-only composite of cached analytics, task metrics and team stats."""
        project = await self._require_project(project_id)
        analytics, top_tasks, recent, members, by_status, overall = await asyncio.gather(
            self.project_analytics_repo.get(project_id),
            self.metrics_repo.list_for_project(
                project_id, order_by="time_spent", limit=config.DASHBOARD_TOP_TASKS
            ),
            self.metrics_repo.list_for_project(
                project_id, order_by="updated_at", limit=config.DASHBOARD_RECENT_TASKS
            ),
            self.member_repo.list_for_project(project_id),
            self.metrics_repo.summarize(project_id=project_id, group_by="status"),
            self.metrics_repo.summarize(project_id=project_id),
        )
        member_ids = [row["user_id"] for row in members] or list(project.get("members") or [])
        member_stats = await self.user_stats_repo.get_many(member_ids)

        tasks_by_status = {str(row["group_key"]): int(row["count"] or 0) for row in by_status}
        total = sum(tasks_by_status.values())
        completed = tasks_by_status.get(DONE_STATUS, 0)
        scores = [float(row.get("productivity_score") or 0.0) for row in member_stats]
        totals = overall[0] if overall else {}

        dashboard = ProjectDashboard(
            projectId=project_id,
            analytics=project_analytics_from_row(analytics, project_id),
            summary={
                "totalTasks": total,
                "completedTasks": completed,
                "completionRate": completion_rate(completed, total),
                "productivity": round(sum(scores) / len(scores), 2) if scores else 0.0,
                "avgCompletionTime": round(float(totals.get("avg_completion_hours") or 0.0), 2),
                "teamSize": len(member_ids),
            },
            tasksByStatus=tasks_by_status,
            topTasks=[task_metrics_from_row(row) for row in top_tasks],
            recentActivity=[task_metrics_from_row(row) for row in recent],
            members=[project_member_from_row(row) for row in members],
        )
        return dashboard.model_dump()
