"""MongoDB implementation of TaskRepository."""
from __future__ import annotations

from typing import Any

from pymongo import ReturnDocument, UpdateOne

from taskforge.date_utils import utc_now_iso
from taskforge.db.repositories.mongo.base import collect, from_mongo, sort_spec, to_mongo

_SORT_FIELDS = {"order", "createdAt", "updatedAt", "dueDate", "priority", "status"}


class MongoTaskRepository:
    """Task documents in the ``tasks`` collection."""

    def __init__(self, db: Any):
        self.collection = db.tasks

    async def insert(self, doc: dict) -> dict:
        await self.collection.insert_one(to_mongo(doc))
        return doc

    async def insert_many(self, docs: list[dict]) -> list[dict]:
        if docs:
            await self.collection.insert_many([to_mongo(doc) for doc in docs], ordered=True)
        return docs

    async def get_by_id(self, task_id: str) -> dict | None:
        return from_mongo(await self.collection.find_one({"_id": task_id}))

    async def get_many(self, task_ids: list[str]) -> list[dict]:
        if not task_ids:
            return []
        return await collect(self.collection.find({"_id": {"$in": task_ids}}))

    async def list_by_project(
        self,
        project_id: str,
        *,
        status: str | None = None,
        priority: str | None = None,
        assigned_to: str | None = None,
        sort_by: str = "order",
        sort_order: str = "asc",
        offset: int = 0,
        limit: int | None = None,
    ) -> list[dict]:
        query: dict[str, Any] = {"projectId": project_id}
        if status:
            query["status"] = status
        if priority:
            query["priority"] = priority
        if assigned_to:
            query["assignedTo"] = assigned_to
        field = sort_by if sort_by in _SORT_FIELDS else "order"
        cursor = self.collection.find(query).sort(sort_spec(field, sort_order, default_desc=False))
        if limit is not None:
            cursor = cursor.skip(offset).limit(limit)
        return await collect(cursor)

    async def count(
        self,
        *,
        project_id: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assigned_to: str | None = None,
        created_by: str | None = None,
    ) -> int:
        query: dict[str, Any] = {}
        for field, value in (
            ("projectId", project_id),
            ("status", status),
            ("priority", priority),
            ("assignedTo", assigned_to),
            ("createdBy", created_by),
        ):
            if value is not None:
                query[field] = value
        return await self.collection.count_documents(query)

    async def list_status_snapshot(self, project_id: str) -> list[dict]:
        cursor = self.collection.find({"projectId": project_id}, {"status": 1, "dueDate": 1})
        return [
            {"id": str(doc["_id"]), "status": doc.get("status", "todo"), "dueDate": doc.get("dueDate")}
            for doc in await cursor.to_list(length=None)
        ]

    async def update(self, task_id: str, patch: dict) -> dict | None:
        changes = {key: value for key, value in patch.items() if key != "id"}
        changes.setdefault("updatedAt", utc_now_iso())
        doc = await self.collection.find_one_and_update(
            {"_id": task_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return from_mongo(doc)

    async def update_many(self, patches: dict[str, dict]) -> list[dict]:
        if not patches:
            return []
        now = utc_now_iso()
        operations = []
        for task_id, patch in patches.items():
            changes = {key: value for key, value in patch.items() if key != "id"}
            changes.setdefault("updatedAt", now)
            operations.append(UpdateOne({"_id": task_id}, {"$set": changes}))
        await self.collection.bulk_write(operations, ordered=False)
        return await self.get_many(list(patches))

    async def delete(self, task_id: str) -> dict | None:
        return from_mongo(await self.collection.find_one_and_delete({"_id": task_id}))

    async def delete_many(self, task_ids: list[str]) -> list[dict]:
        docs = await self.get_many(task_ids)
        if docs:
            await self.collection.delete_many({"_id": {"$in": [doc["id"] for doc in docs]}})
        return docs

    async def delete_by_project(self, project_id: str) -> int:
        result = await self.collection.delete_many({"projectId": project_id})
        return result.deleted_count
