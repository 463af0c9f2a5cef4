"""Write serialization for the shared SQLite connections.

Both stores hand one long-lived aiosqlite connection to every request, so a
``commit()`` from one coroutine would also commit statements another coroutine
has executed but not yet finished. Repositories hold the connection's lock
across each read-modify-write or multi-statement unit, including its commit or
rollback.
"""
from __future__ import annotations

import asyncio
import weakref

import aiosqlite

_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = weakref.WeakKeyDictionary()


def write_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    """Return the lock guarding writes on ``db``, creating it on first use."""
    lock = _locks.get(db)
    if lock is None:
        lock = asyncio.Lock()
        _locks[db] = lock
    return lock
