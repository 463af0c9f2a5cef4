"""API router for tasks, task analytics and task comments."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Header, Query
from pydantic import BaseModel, Field

from taskforge.db import connection
from taskforge.models import (
    Comment,
    PaginatedResponse,
    Task,
    TaskPatch,
    UserStats,
)
from taskforge.services.comments import CommentService
from taskforge.services.tasks import TaskService

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class TaskAssign(BaseModel):
    userId: str = Field(min_length=1)


class CommentBody(BaseModel):
    content: str


class BatchDelete(BaseModel):
    ids: list[str] = Field(default_factory=list)


async def _task_service() -> TaskService:
    document_db = await connection.get_document_connection()
    analytics_db = await connection.get_analytics_connection()
    return TaskService(document_db, analytics_db)


async def _comment_service() -> CommentService:
    document_db = await connection.get_document_connection()
    analytics_db = await connection.get_analytics_connection()
    return CommentService(document_db, analytics_db)


@tasks_router.get("", response_model=PaginatedResponse[Task])
async def list_tasks(
    project_id: str = Query(..., alias="projectId"),
    status: Optional[str] = None,
    priority: Optional[str] = None,
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    sort_by: str = Query("order", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    page: int = 1,
    limit: Optional[int] = None,
):
    service = await _task_service()
    return await service.get_tasks_by_project(
        project_id,
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@tasks_router.post("", response_model=Task, status_code=201)
async def create_task(body: dict[str, Any], x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    """Create a task; the raw body is validated by the service so every field error is reported."""
    if x_user_id and not body.get("createdBy"):
        body = {**body, "createdBy": x_user_id}
    service = await _task_service()
    return await service.create_task(body)


@tasks_router.post("/batch", response_model=list[Task], status_code=201)
async def batch_create_tasks(body: list[dict[str, Any]]):
    service = await _task_service()
    return await service.batch_create_tasks(body)


@tasks_router.patch("/batch", response_model=list[Task])
async def batch_update_tasks(body: list[dict[str, Any]]):
    service = await _task_service()
    return await service.batch_update_tasks(body)


@tasks_router.post("/batch/delete")
async def batch_delete_tasks(body: BatchDelete):
    service = await _task_service()
    return await service.batch_delete_tasks(body.ids)


@tasks_router.get("/analytics")
async def get_task_analytics(
    project_id: str = Query(..., alias="projectId"),
    group_by: Optional[str] = Query(None, alias="groupBy"),
    status: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
):
    service = await _task_service()
    return await service.get_task_analytics(
        project_id,
        group_by=group_by,
        status=status,
        date_from=date_from,
        date_to=date_to,
    )


@tasks_router.get("/users/{user_id}/stats", response_model=UserStats)
async def get_user_task_stats(user_id: str):
    service = await _task_service()
    return await service.get_user_task_stats(user_id)


@tasks_router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str, x_user_id: str = Header(..., alias="X-User-Id")):
    service = await _comment_service()
    await service.delete_comment(comment_id, x_user_id)
    return {"status": "ok", "commentId": comment_id}


@tasks_router.get("/{task_id}", response_model=Task)
async def get_task(task_id: str):
    service = await _task_service()
    return await service.get_task_by_id(task_id)


@tasks_router.patch("/{task_id}", response_model=Task)
async def update_task(task_id: str, body: TaskPatch):
    service = await _task_service()
    return await service.update_task(task_id, body)


@tasks_router.delete("/{task_id}")
async def delete_task(task_id: str):
    service = await _task_service()
    await service.delete_task(task_id)
    return {"status": "ok", "taskId": task_id}


@tasks_router.post("/{task_id}/assign", response_model=Task)
async def assign_task(task_id: str, body: TaskAssign):
    service = await _task_service()
    return await service.assign_task_to_user(task_id, body.userId)


@tasks_router.delete("/{task_id}/assign", response_model=Task)
async def unassign_task(task_id: str):
    service = await _task_service()
    return await service.unassign_task(task_id)


@tasks_router.get("/{task_id}/comments", response_model=list[Comment])
async def list_task_comments(task_id: str):
    service = await _comment_service()
    return await service.get_task_comments(task_id)


@tasks_router.post("/{task_id}/comments", response_model=Comment, status_code=201)
async def add_task_comment(task_id: str, body: CommentBody, x_user_id: str = Header(..., alias="X-User-Id")):
    service = await _comment_service()
    return await service.add_comment(body.content, x_user_id, task_id=task_id)
