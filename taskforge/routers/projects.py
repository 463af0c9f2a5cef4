"""API router for projects, membership and project analytics."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Header, Query
from pydantic import BaseModel, Field

from taskforge.db import connection
from taskforge.models import (
    MemberRole,
    PaginatedResponse,
    Project,
    ProjectAnalytics,
    ProjectCreate,
    ProjectDashboard,
    ProjectPatch,
)
from taskforge.services.projects import ProjectService
from taskforge.services.reconcile import ReconciliationService

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


class MemberAdd(BaseModel):
    userId: str = Field(min_length=1)
    role: MemberRole = "member"


async def _project_service() -> ProjectService:
    document_db = await connection.get_document_connection()
    analytics_db = await connection.get_analytics_connection()
    return ProjectService(document_db, analytics_db)


@projects_router.get("", response_model=PaginatedResponse[Project])
async def list_projects(
    x_user_id: str = Header(..., alias="X-User-Id"),
    page: int = 1,
    limit: Optional[int] = None,
    status: Optional[str] = None,
    sort_by: str = Query("updatedAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
):
    """Projects the caller owns or belongs to."""
    service = await _project_service()
    return await service.get_user_projects(
        x_user_id,
        page=page,
        limit=limit,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@projects_router.post("", response_model=Project, status_code=201)
async def create_project(body: ProjectCreate, x_user_id: str = Header(..., alias="X-User-Id")):
    service = await _project_service()
    return await service.create_project(body, x_user_id)


@projects_router.post("/reconcile")
async def reconcile_projects():
    """Run a drift sweep over every project."""
    document_db = await connection.get_document_connection()
    analytics_db = await connection.get_analytics_connection()
    return await ReconciliationService(document_db, analytics_db).reconcile_all()


@projects_router.get("/{project_id}")
async def get_project(
    project_id: str,
    include_users: bool = Query(False, alias="includeUsers"),
    include_analytics: bool = Query(False, alias="includeAnalytics"),
) -> dict[str, Any]:
    service = await _project_service()
    return await service.get_project_by_id(
        project_id,
        include_users=include_users,
        include_analytics=include_analytics,
    )


@projects_router.patch("/{project_id}", response_model=Project)
async def update_project(project_id: str, body: ProjectPatch):
    service = await _project_service()
    return await service.update_project(project_id, body)


@projects_router.delete("/{project_id}")
async def delete_project(project_id: str):
    service = await _project_service()
    await service.delete_project(project_id)
    return {"status": "ok", "projectId": project_id}


@projects_router.post("/{project_id}/members", response_model=Project)
async def add_member(project_id: str, body: MemberAdd):
    service = await _project_service()
    return await service.add_member_to_project(project_id, body.userId, body.role)


@projects_router.delete("/{project_id}/members/{user_id}", response_model=Project)
async def remove_member(project_id: str, user_id: str):
    service = await _project_service()
    return await service.remove_member_from_project(project_id, user_id)


@projects_router.get("/{project_id}/analytics", response_model=ProjectAnalytics)
async def get_project_analytics(project_id: str):
    """Cached analytics snapshot; zeros when the project has never been synced."""
    service = await _project_service()
    return await service.get_project_analytics(project_id)


@projects_router.post("/{project_id}/analytics/refresh", response_model=ProjectAnalytics)
async def refresh_project_analytics(project_id: str):
    service = await _project_service()
    return await service.update_project_analytics(project_id)


@projects_router.get("/{project_id}/dashboard", response_model=ProjectDashboard)
async def get_project_dashboard(project_id: str):
    service = await _project_service()
    return await service.get_project_dashboard_data(project_id)


@projects_router.post("/{project_id}/reconcile")
async def reconcile_project(project_id: str):
    document_db = await connection.get_document_connection()
    analytics_db = await connection.get_analytics_connection()
    return await ReconciliationService(document_db, analytics_db).reconcile_project(project_id)
