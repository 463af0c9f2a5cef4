"""Shared analytics recomputation helpers.

Status vocabulary: ``done`` is completed, ``in-progress`` is in progress and
every other status counts as pending. Overdue tasks have a past ``dueDate``
and are not done.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from taskforge.date_utils import is_past, utc_now_iso
from taskforge.models import (
    DONE_STATUS,
    IN_PROGRESS_STATUS,
    ProjectAnalytics,
    ProjectMember,
    TaskMetrics,
    UserProfile,
    UserStats,
)


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        if value is None:
            return default
        return int(value)
    except (TypeError, ValueError):
        return default


def percentage(part: int, total: int) -> float:
    if not total:
        return 0.0
    return round(part / total * 100, 2)


def completion_rate(completed: int, total: int) -> float:
    return percentage(completed, total)


def productivity_score(completed: int, total: int) -> float:
    return percentage(completed, total)


def is_completed_status(status: str | None) -> bool:
    return (status or "") == DONE_STATUS


def compute_status_counts(
    snapshot: list[dict[str, Any]],
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    """Bucket ``{status, dueDate}`` snapshots into the analytics counters."""
    counts = {"total": 0, "completed": 0, "in_progress": 0, "pending": 0, "overdue": 0}
    for task in snapshot:
        status = task.get("status") or "todo"
        counts["total"] += 1
        if status == DONE_STATUS:
            counts["completed"] += 1
        elif status == IN_PROGRESS_STATUS:
            counts["in_progress"] += 1
        else:
            counts["pending"] += 1
        if status != DONE_STATUS and is_past(task.get("dueDate"), now=now):
            counts["overdue"] += 1
    return counts


def build_project_analytics_row(
    project_id: str,
    counts: dict[str, int],
    *,
    total_members: int,
    total_comments: int,
) -> dict[str, Any]:
    return {
        "project_id": project_id,
        "total_tasks": counts["total"],
        "completed_tasks": counts["completed"],
        "in_progress_tasks": counts["in_progress"],
        "pending_tasks": counts["pending"],
        "overdue_tasks": counts["overdue"],
        "total_members": total_members,
        "total_comments": total_comments,
        "completion_rate": completion_rate(counts["completed"], counts["total"]),
        "last_updated": utc_now_iso(),
    }


def task_metrics_row(task: dict[str, Any]) -> dict[str, Any]:
    """Mirror row for one operational task."""
    status = task.get("status") or "todo"
    return {
        "task_id": task["id"],
        "project_id": task["projectId"],
        "assigned_to": task.get("assignedTo"),
        "status": status,
        "priority": task.get("priority") or "medium",
        "time_spent": _safe_float(task.get("timeSpent")),
        "is_completed": is_completed_status(status),
        "due_date": task.get("dueDate"),
        "completed_at": task.get("completedAt"),
        "created_at": task.get("createdAt"),
        "updated_at": task.get("updatedAt"),
    }


def metrics_row_matches(row: dict[str, Any], task: dict[str, Any]) -> bool:
    """True when a stored mirror row reflects the task's synced fields."""
    expected = task_metrics_row(task)
    for key in ("project_id", "assigned_to", "status", "priority", "due_date", "completed_at"):
        if (row.get(key) or None) != (expected[key] or None):
            return False
    if bool(row.get("is_completed")) != expected["is_completed"]:
        return False
    return abs(_safe_float(row.get("time_spent")) - expected["time_spent"]) < 1e-9


# ── Row → API shape ────────────────────────────────────────────────

def empty_project_analytics(project_id: str) -> dict[str, Any]:
    return ProjectAnalytics(projectId=project_id).model_dump()


def project_analytics_from_row(row: dict[str, Any] | None, project_id: str) -> dict[str, Any]:
    if not row:
        return empty_project_analytics(project_id)
    return ProjectAnalytics(
        projectId=row["project_id"],
        totalTasks=_safe_int(row.get("total_tasks")),
        completedTasks=_safe_int(row.get("completed_tasks")),
        inProgressTasks=_safe_int(row.get("in_progress_tasks")),
        pendingTasks=_safe_int(row.get("pending_tasks")),
        overdueTasks=_safe_int(row.get("overdue_tasks")),
        totalMembers=_safe_int(row.get("total_members")),
        totalComments=_safe_int(row.get("total_comments")),
        completionRate=_safe_float(row.get("completion_rate")),
        createdAt=row.get("created_at"),
        lastUpdated=row.get("last_updated"),
    ).model_dump()


def task_metrics_from_row(row: dict[str, Any]) -> dict[str, Any]:
    return TaskMetrics(
        taskId=row["task_id"],
        projectId=row["project_id"],
        assignedTo=row.get("assigned_to"),
        status=row.get("status") or "todo",
        priority=row.get("priority") or "medium",
        timeSpent=_safe_float(row.get("time_spent")),
        isCompleted=bool(row.get("is_completed")),
        dueDate=row.get("due_date"),
        completedAt=row.get("completed_at"),
        createdAt=row.get("created_at") or "",
        updatedAt=row.get("updated_at") or "",
    ).model_dump()


def empty_user_stats(user_id: str) -> dict[str, Any]:
    return UserStats(userId=user_id).model_dump()


def user_stats_from_row(row: dict[str, Any] | None, user_id: str) -> dict[str, Any]:
    if not row:
        return empty_user_stats(user_id)
    return UserStats(
        userId=row["user_id"],
        tasksCreated=_safe_int(row.get("tasks_created")),
        tasksAssigned=_safe_int(row.get("tasks_assigned")),
        tasksCompleted=_safe_int(row.get("tasks_completed")),
        tasksInProgress=_safe_int(row.get("tasks_in_progress")),
        totalTimeSpent=_safe_float(row.get("total_time_spent")),
        avgCompletionTime=_safe_float(row.get("avg_completion_time")),
        productivityScore=_safe_float(row.get("productivity_score")),
        lastActivityAt=row.get("last_activity_at"),
    ).model_dump()


def project_member_from_row(row: dict[str, Any]) -> dict[str, Any]:
    return ProjectMember(
        projectId=row["project_id"],
        userId=row["user_id"],
        role=row.get("role") or "member",
        joinedAt=row.get("joined_at") or "",
    ).model_dump()


def user_profile_from_row(row: dict[str, Any]) -> dict[str, Any]:
    return UserProfile(
        id=row["id"],
        username=row.get("username") or "",
        email=row.get("email") or "",
        fullName=row.get("full_name") or "",
        avatar=row.get("avatar"),
        role=row.get("role") or "user",
    ).model_dump()


def summary_group_from_row(row: dict[str, Any], group_by: str) -> dict[str, Any]:
    """Shape one ``summarize`` row for ``get_task_analytics``."""
    key = "status" if group_by == "status" else "assignedTo"
    out: dict[str, Any] = {key: row.get("group_key"), "count": _safe_int(row.get("count"))}
    if group_by == "status":
        out["avgTimeSpent"] = round(_safe_float(row.get("avg_time_spent")), 2)
    else:
        out["totalTimeSpent"] = round(_safe_float(row.get("total_time_spent")), 2)
    return out
