"""Comment service."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from taskforge.date_utils import utc_now_iso
from taskforge.db.factory import get_comment_repository, get_project_repository, get_task_repository
from taskforge.errors import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
    translate_store_errors,
    validate_payload,
)
from taskforge.models import CommentCreate
from taskforge.services.projects import ProjectService
from taskforge.services.sync import run_side_effects

logger = logging.getLogger("taskforge.services.comments")


class CommentService:
    def __init__(self, document_db: Any, analytics_db: Any):
        self.comment_repo = get_comment_repository(document_db)
        self.task_repo = get_task_repository(document_db)
        self.project_repo = get_project_repository(document_db)
        self.projects = ProjectService(document_db, analytics_db)

    async def _refresh_comment_count(self, comment: dict[str, Any]) -> None:
        project_id = comment.get("projectId")
        if not project_id:
            return
        await run_side_effects(
            "comment",
            comment["id"],
            {"project_analytics": self.projects.update_project_analytics(project_id)},
            project_id=project_id,
        )

    @translate_store_errors
    async def add_comment(
        self,
        content: str,
        author_id: str,
        task_id: str | None = None,
        project_id: str | None = None,
    ) -> dict[str, Any]:
        payload = validate_payload(
            CommentCreate,
            {"content": content, "author": author_id, "taskId": task_id, "projectId": project_id},
        )
        if not payload.taskId and not payload.projectId:
            raise ValidationError(
                "Validation failed.",
                [{"field": "taskId", "message": "A comment needs a taskId or a projectId."}],
            )

        resolved_project = payload.projectId
        if payload.taskId:
            task = await self.task_repo.get_by_id(payload.taskId)
            if task is None:
                raise NotFoundError("Task", payload.taskId)
            resolved_project = task["projectId"]
        elif await self.project_repo.get_by_id(payload.projectId) is None:
            raise NotFoundError("Project", payload.projectId)

        doc = {
            "id": uuid.uuid4().hex,
            "content": payload.content,
            "author": payload.author,
            "taskId": payload.taskId,
            "projectId": resolved_project,
            "createdAt": utc_now_iso(),
        }
        await self.comment_repo.insert(doc)
        logger.debug("Comment %s added by %s", doc["id"], author_id)
        await self._refresh_comment_count(doc)
        return doc

    @translate_store_errors
    async def get_task_comments(self, task_id: str) -> list[dict[str, Any]]:
        if await self.task_repo.get_by_id(task_id) is None:
            raise NotFoundError("Task", task_id)
        return await self.comment_repo.list_by_task(task_id)

    @translate_store_errors
    async def delete_comment(self, comment_id: str, user_id: str) -> bool:
        comment = await self.comment_repo.get_by_id(comment_id)
        if comment is None:
            raise NotFoundError("Comment", comment_id)
        if not user_id or comment.get("author") != user_id:
            raise ForbiddenError("You can only delete your own comments.")
        if not await self.comment_repo.delete(comment_id):
            raise NotFoundError("Comment", comment_id)
        await self._refresh_comment_count(comment)
        return True
