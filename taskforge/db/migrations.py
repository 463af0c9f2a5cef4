"""Database migration dispatcher.

Routes migration calls to the appropriate backend implementation for each
store (SQLite or MongoDB for documents, SQLite or Postgres for analytics).
"""
from __future__ import annotations

import logging
from typing import Any

import aiosqlite
import asyncpg

from taskforge.db import mongo_migrations, postgres_migrations, sqlite_migrations

logger = logging.getLogger("taskforge.db")


async def run_document_migrations(db: Any) -> None:
    """Run migrations on the operational store handle."""
    if isinstance(db, aiosqlite.Connection):
        logger.info("Running SQLite document-store migrations...")
        await sqlite_migrations.run_document_migrations(db)
        return

    logger.info("Ensuring MongoDB indexes...")
    await mongo_migrations.run_migrations(db)


async def run_analytics_migrations(db: Any) -> None:
    """Run migrations on the analytics store connection/pool."""
    if isinstance(db, aiosqlite.Connection):
        logger.info("Running SQLite analytics-store migrations...")
        await sqlite_migrations.run_analytics_migrations(db)
        return

    if isinstance(db, asyncpg.Pool):
        logger.info("Running Postgres migrations...")
        await postgres_migrations.run_migrations(db)
        return

    logger.warning(f"Unknown analytics connection type: {type(db)}")


async def run_migrations(document_db: Any, analytics_db: Any) -> None:
    await run_document_migrations(document_db)
    await run_analytics_migrations(analytics_db)
