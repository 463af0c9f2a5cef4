"""Shared helpers for the MongoDB document repositories."""
from __future__ import annotations

from typing import Any

from pymongo import ASCENDING, DESCENDING


def to_mongo(doc: dict) -> dict:
    stored = {key: value for key, value in doc.items() if key != "id"}
    stored["_id"] = doc["id"]
    return stored


def from_mongo(doc: dict | None) -> dict | None:
    if doc is None:
        return None
    out = {key: value for key, value in doc.items() if key != "_id"}
    out["id"] = str(doc["_id"])
    return out


def sort_spec(field: str, order: str, *, default_desc: bool) -> list[tuple[str, int]]:
    token = (order or "").lower()
    if token not in {"asc", "desc"}:
        token = "desc" if default_desc else "asc"
    direction = DESCENDING if token == "desc" else ASCENDING
    return [(field, direction), ("_id", ASCENDING)]


async def collect(cursor: Any) -> list[dict]:
    return [from_mongo(doc) for doc in await cursor.to_list(length=None)]
