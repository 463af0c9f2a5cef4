"""In-app notification service (operational store only)."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from taskforge.date_utils import utc_now_iso
from taskforge.db.factory import get_notification_repository
from taskforge.errors import NotFoundError, ValidationError, translate_store_errors

logger = logging.getLogger("taskforge.services.notifications")


def new_notification_document(user_id: str, content: str, link: str | None = None) -> dict[str, Any]:
    return {
        "id": uuid.uuid4().hex,
        "content": content,
        "user": user_id,
        "seen": False,
        "link": link,
        "createdAt": utc_now_iso(),
    }


class NotificationService:
    def __init__(self, document_db: Any):
        self.notification_repo = get_notification_repository(document_db)

    @translate_store_errors
    async def create_notification(self, user_id: str, content: str, link: str | None = None) -> dict[str, Any]:
        errors = []
        if not (user_id or "").strip():
            errors.append({"field": "user", "message": "Field required"})
        if not (content or "").strip():
            errors.append({"field": "content", "message": "Field required"})
        if errors:
            raise ValidationError("Validation failed.", errors)
        doc = new_notification_document(user_id, content.strip(), link)
        await self.notification_repo.insert(doc)
        logger.debug("Notification %s created for user %s", doc["id"], user_id)
        return doc

    @translate_store_errors
    async def get_user_notifications(self, user_id: str, *, unseen_only: bool = False, limit: int = 50) -> list[dict[str, Any]]:
        return await self.notification_repo.list_for_user(user_id, unseen_only=unseen_only, limit=limit)

    @translate_store_errors
    async def count_unseen(self, user_id: str) -> int:
        return await self.notification_repo.count_unseen(user_id)

    @translate_store_errors
    async def mark_notification_as_seen(self, notification_id: str) -> dict[str, Any]:
        doc = await self.notification_repo.mark_seen(notification_id)
        if doc is None:
            raise NotFoundError("Notification", notification_id)
        return doc
