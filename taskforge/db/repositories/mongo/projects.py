"""MongoDB implementation of ProjectRepository."""
from __future__ import annotations

from typing import Any

from pymongo import ReturnDocument

from taskforge.date_utils import utc_now_iso
from taskforge.db.repositories.mongo.base import collect, from_mongo, sort_spec, to_mongo
from taskforge.models import normalize_project_document

_SORT_FIELDS = {"updatedAt", "createdAt", "name", "dueDate", "status"}


def _member_filter(user_id: str, status: str | None) -> dict[str, Any]:
    query: dict[str, Any] = {"$or": [{"owner": user_id}, {"members": user_id}]}
    if status:
        query["status"] = status
    return query


class MongoProjectRepository:
    """Project documents in the ``projects`` collection."""

    def __init__(self, db: Any):
        self.collection = db.projects

    async def insert(self, doc: dict) -> dict:
        normalize_project_document(doc)
        await self.collection.insert_one(to_mongo(doc))
        return doc

    async def get_by_id(self, project_id: str) -> dict | None:
        return from_mongo(await self.collection.find_one({"_id": project_id}))

    async def list_ids(self) -> list[str]:
        cursor = self.collection.find({}, {"_id": 1}).sort("createdAt", 1)
        return [str(doc["_id"]) for doc in await cursor.to_list(length=None)]

    async def list_for_user(
        self,
        user_id: str,
        *,
        status: str | None = None,
        sort_by: str = "updatedAt",
        sort_order: str = "desc",
        offset: int = 0,
        limit: int = 10,
    ) -> list[dict]:
        field = sort_by if sort_by in _SORT_FIELDS else "updatedAt"
        cursor = (
            self.collection.find(_member_filter(user_id, status))
            .sort(sort_spec(field, sort_order, default_desc=True))
            .skip(offset)
            .limit(limit)
        )
        return await collect(cursor)

    async def count_for_user(self, user_id: str, *, status: str | None = None) -> int:
        return await self.collection.count_documents(_member_filter(user_id, status))

    async def update(self, project_id: str, patch: dict) -> dict | None:
        changes = {key: value for key, value in patch.items() if key not in {"id", "members", "stats"}}
        changes.setdefault("updatedAt", utc_now_iso())
        doc = await self.collection.find_one_and_update(
            {"_id": project_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return from_mongo(doc)

    async def set_task_stats(self, project_id: str, task_count: int, completed_tasks: int) -> None:
        await self.collection.update_one(
            {"_id": project_id},
            {"$set": {"stats.taskCount": task_count, "stats.completedTasks": completed_tasks}},
        )

    async def _update_members(self, project_id: str, members_expr: dict) -> dict | None:
        # Pipeline update keeps stats.memberCount in the same atomic write as members.
        doc = await self.collection.find_one_and_update(
            {"_id": project_id},
            [
                {"$set": {"members": members_expr, "updatedAt": utc_now_iso()}},
                {"$set": {"stats.memberCount": {"$size": "$members"}}},
            ],
            return_document=ReturnDocument.AFTER,
        )
        return from_mongo(doc)

    async def add_member(self, project_id: str, user_id: str) -> dict | None:
        return await self._update_members(
            project_id,
            {"$setUnion": [{"$ifNull": ["$members", []]}, [user_id]]},
        )

    async def remove_member(self, project_id: str, user_id: str) -> dict | None:
        return await self._update_members(
            project_id,
            {"$setDifference": [{"$ifNull": ["$members", []]}, [user_id]]},
        )

    async def delete(self, project_id: str) -> bool:
        result = await self.collection.delete_one({"_id": project_id})
        return result.deleted_count > 0
