"""MongoDB implementation of CommentRepository."""
from __future__ import annotations

from typing import Any

from taskforge.db.repositories.mongo.base import collect, from_mongo, to_mongo


class MongoCommentRepository:
    def __init__(self, db: Any):
        self.collection = db.comments

    async def insert(self, doc: dict) -> dict:
        await self.collection.insert_one(to_mongo(doc))
        return doc

    async def get_by_id(self, comment_id: str) -> dict | None:
        return from_mongo(await self.collection.find_one({"_id": comment_id}))

    async def list_by_task(self, task_id: str) -> list[dict]:
        return await collect(self.collection.find({"taskId": task_id}).sort("createdAt", 1))

    async def count_by_project(self, project_id: str) -> int:
        return await self.collection.count_documents({"projectId": project_id})

    async def delete(self, comment_id: str) -> bool:
        result = await self.collection.delete_one({"_id": comment_id})
        return result.deleted_count > 0

    async def delete_by_project(self, project_id: str, task_ids: list[str]) -> int:
        query: dict[str, Any] = {"projectId": project_id}
        if task_ids:
            query = {"$or": [query, {"taskId": {"$in": task_ids}}]}
        result = await self.collection.delete_many(query)
        return result.deleted_count
