"""Index creation for the MongoDB document store."""
from __future__ import annotations

import logging
from typing import Any

from pymongo import ASCENDING, DESCENDING

logger = logging.getLogger("taskforge.db")


async def run_migrations(db: Any) -> None:
    await db.projects.create_index([("owner", ASCENDING), ("updatedAt", DESCENDING)])
    await db.projects.create_index("members")
    await db.tasks.create_index([("projectId", ASCENDING), ("status", ASCENDING)])
    await db.tasks.create_index([("assignedTo", ASCENDING), ("status", ASCENDING)])
    await db.tasks.create_index("createdBy")
    await db.comments.create_index([("taskId", ASCENDING), ("createdAt", ASCENDING)])
    await db.comments.create_index("projectId")
    await db.notifications.create_index([("user", ASCENDING), ("seen", ASCENDING), ("createdAt", DESCENDING)])
    logger.info("MongoDB indexes ensured")
