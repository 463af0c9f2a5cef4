"""Database connection factories.

Two independently-owned singletons: the operational (document) store and the
analytics (relational) store. Backend selection via
TASKFORGE_DOCUMENT_BACKEND and TASKFORGE_ANALYTICS_BACKEND.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Union

import aiosqlite
import asyncpg
from pymongo import AsyncMongoClient

from taskforge import config

logger = logging.getLogger("taskforge.db")

# aiosqlite.Connection, or asyncpg.Pool / pymongo AsyncDatabase
DbConnection = Union[aiosqlite.Connection, Any]

_document_connection: DbConnection | None = None
_analytics_connection: DbConnection | None = None
_mongo_client: AsyncMongoClient | None = None


async def _open_sqlite(path: Path) -> aiosqlite.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(path))
    conn.row_factory = aiosqlite.Row
    # Enable WAL mode for better concurrent read performance
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.execute("PRAGMA busy_timeout=5000")
    logger.info("SQLite connection established: %s", path)
    return conn


async def get_document_connection() -> DbConnection:
    """Return the operational store handle, creating it if needed."""
    global _document_connection, _mongo_client
    if _document_connection is not None:
        return _document_connection

    if config.DOCUMENT_BACKEND == "mongo":
        logger.info("Connecting to MongoDB: %s/%s", config.MONGO_URL, config.MONGO_DB)
        _mongo_client = AsyncMongoClient(config.MONGO_URL, tz_aware=True)
        _document_connection = _mongo_client[config.MONGO_DB]
    else:
        _document_connection = await _open_sqlite(config.DOCUMENT_DB_PATH)
    return _document_connection


async def get_analytics_connection() -> DbConnection:
    """Return the analytics store connection/pool, creating it if needed."""
    global _analytics_connection
    if _analytics_connection is not None:
        return _analytics_connection

    if config.ANALYTICS_BACKEND == "postgres":
        logger.info("Connecting to PostgreSQL: %s", config.DATABASE_URL)
        _analytics_connection = await asyncpg.create_pool(config.DATABASE_URL)
    else:
        _analytics_connection = await _open_sqlite(config.ANALYTICS_DB_PATH)
    return _analytics_connection


async def close_connections() -> None:
    """Close both store connections."""
    global _document_connection, _analytics_connection, _mongo_client
    if _mongo_client is not None:
        await _mongo_client.close()
        _mongo_client = None
    elif _document_connection is not None:
        await _document_connection.close()
    _document_connection = None

    if _analytics_connection is not None:
        # aiosqlite.Connection and asyncpg.Pool both expose close()
        await _analytics_connection.close()
        _analytics_connection = None
    logger.info("Database connections closed")


def is_connected() -> dict[str, bool]:
    return {
        "document": _document_connection is not None,
        "analytics": _analytics_connection is not None,
    }
