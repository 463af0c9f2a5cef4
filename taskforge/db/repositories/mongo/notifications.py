"""MongoDB implementation of NotificationRepository."""
from __future__ import annotations

from typing import Any

from pymongo import ReturnDocument

from taskforge.db.repositories.mongo.base import collect, from_mongo, to_mongo


class MongoNotificationRepository:
    def __init__(self, db: Any):
        self.collection = db.notifications

    async def insert(self, doc: dict) -> dict:
        await self.collection.insert_one(to_mongo(doc))
        return doc

    async def get_by_id(self, notification_id: str) -> dict | None:
        return from_mongo(await self.collection.find_one({"_id": notification_id}))

    async def list_for_user(self, user_id: str, *, unseen_only: bool = False, limit: int = 50) -> list[dict]:
        query: dict[str, Any] = {"user": user_id}
        if unseen_only:
            query["seen"] = False
        return await collect(self.collection.find(query).sort("createdAt", -1).limit(limit))

    async def count_unseen(self, user_id: str) -> int:
        return await self.collection.count_documents({"user": user_id, "seen": False})

    async def mark_seen(self, notification_id: str) -> dict | None:
        doc = await self.collection.find_one_and_update(
            {"_id": notification_id},
            {"$set": {"seen": True}},
            return_document=ReturnDocument.AFTER,
        )
        return from_mongo(doc)
