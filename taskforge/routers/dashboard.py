"""API router for the user dashboard and notifications."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Header, Query

from taskforge.db import connection
from taskforge.models import Notification
from taskforge.services.dashboard import DashboardAggregator
from taskforge.services.notifications import NotificationService

dashboard_router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])
notifications_router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@dashboard_router.get("")
async def get_dashboard(
    x_user_id: str = Header(..., alias="X-User-Id"),
    project_id: Optional[str] = Query(None, alias="projectId"),
):
    """Projects, task stats and notifications for the caller, plus one project's dashboard."""
    document_db = await connection.get_document_connection()
    analytics_db = await connection.get_analytics_connection()
    return await DashboardAggregator(document_db, analytics_db).get_user_dashboard(x_user_id, project_id)


@notifications_router.get("", response_model=list[Notification])
async def list_notifications(
    x_user_id: str = Header(..., alias="X-User-Id"),
    unseen_only: bool = Query(False, alias="unseenOnly"),
    limit: int = 50,
):
    document_db = await connection.get_document_connection()
    return await NotificationService(document_db).get_user_notifications(
        x_user_id, unseen_only=unseen_only, limit=limit
    )


@notifications_router.post("/{notification_id}/seen", response_model=Notification)
async def mark_notification_seen(notification_id: str):
    document_db = await connection.get_document_connection()
    return await NotificationService(document_db).mark_notification_as_seen(notification_id)
