import types
import unittest

from pymongo import ASCENDING, DESCENDING, ReturnDocument, UpdateOne

from taskforge.db.repositories.mongo.comments import MongoCommentRepository
from taskforge.db.repositories.mongo.notifications import MongoNotificationRepository
from taskforge.db.repositories.mongo.projects import MongoProjectRepository
from taskforge.db.repositories.mongo.tasks import MongoTaskRepository


class _FakeCursor:
    def __init__(self, docs: list[dict]) -> None:
        self.docs = docs
        self.sorted_by = None
        self.skipped = None
        self.limited = None

    def sort(self, spec, direction=None):
        self.sorted_by = spec if direction is None else [(spec, direction)]
        return self

    def skip(self, count):
        self.skipped = count
        return self

    def limit(self, count):
        self.limited = count
        return self

    async def to_list(self, length=None):
        return list(self.docs)


class _FakeCollection:
    """Records each call and answers from canned documents."""

    def __init__(self, docs: list[dict] | None = None, *, deleted_count: int = 0, count: int = 0) -> None:
        self.docs = list(docs or [])
        self.deleted_count = deleted_count
        self.count = count
        self.calls: list[tuple] = []
        self.cursor: _FakeCursor | None = None

    def find(self, query, projection=None):
        self.calls.append(("find", query, projection))
        self.cursor = _FakeCursor(self.docs)
        return self.cursor

    async def find_one(self, query):
        self.calls.append(("find_one", query))
        return self.docs[0] if self.docs else None

    async def find_one_and_update(self, query, update, return_document=None):
        self.calls.append(("find_one_and_update", query, update, return_document))
        return self.docs[0] if self.docs else None

    async def find_one_and_delete(self, query):
        self.calls.append(("find_one_and_delete", query))
        return self.docs[0] if self.docs else None

    async def insert_one(self, doc):
        self.calls.append(("insert_one", doc))

    async def insert_many(self, docs, ordered=True):
        self.calls.append(("insert_many", docs, ordered))

    async def update_one(self, query, update):
        self.calls.append(("update_one", query, update))

    async def bulk_write(self, operations, ordered=True):
        self.calls.append(("bulk_write", operations, ordered))

    async def count_documents(self, query):
        self.calls.append(("count_documents", query))
        return self.count

    async def delete_one(self, query):
        self.calls.append(("delete_one", query))
        return types.SimpleNamespace(deleted_count=self.deleted_count)

    async def delete_many(self, query):
        self.calls.append(("delete_many", query))
        return types.SimpleNamespace(deleted_count=self.deleted_count)


def _db(**collections) -> types.SimpleNamespace:
    return types.SimpleNamespace(**collections)


class MongoProjectRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_add_member_is_one_pipeline_update_with_member_count(self) -> None:
        stored = {"_id": "p1", "owner": "u1", "members": ["u1", "u2"], "stats": {"memberCount": 2}}
        collection = _FakeCollection([stored])
        repo = MongoProjectRepository(_db(projects=collection))

        project = await repo.add_member("p1", "u2")

        name, query, pipeline, return_document = collection.calls[-1]
        self.assertEqual((name, query), ("find_one_and_update", {"_id": "p1"}))
        self.assertEqual(
            pipeline[0]["$set"]["members"],
            {"$setUnion": [{"$ifNull": ["$members", []]}, ["u2"]]},
        )
        self.assertIn("updatedAt", pipeline[0]["$set"])
        self.assertEqual(pipeline[1], {"$set": {"stats.memberCount": {"$size": "$members"}}})
        self.assertEqual(return_document, ReturnDocument.AFTER)
        self.assertEqual(project["id"], "p1")
        self.assertNotIn("_id", project)

    async def test_remove_member_uses_set_difference(self) -> None:
        collection = _FakeCollection()
        repo = MongoProjectRepository(_db(projects=collection))

        self.assertIsNone(await repo.remove_member("missing", "u2"))

        pipeline = collection.calls[-1][2]
        self.assertEqual(
            pipeline[0]["$set"]["members"],
            {"$setDifference": [{"$ifNull": ["$members", []]}, ["u2"]]},
        )

    async def test_update_never_overwrites_members_or_stats(self) -> None:
        collection = _FakeCollection([{"_id": "p1", "name": "Renamed"}])
        repo = MongoProjectRepository(_db(projects=collection))

        await repo.update("p1", {"id": "p1", "name": "Renamed", "members": [], "stats": {}, "updatedAt": "now"})

        update = collection.calls[-1][2]
        self.assertEqual(update, {"$set": {"name": "Renamed", "updatedAt": "now"}})

    async def test_list_for_user_filters_sorts_and_pages(self) -> None:
        collection = _FakeCollection([{"_id": "p1"}, {"_id": "p2"}])
        repo = MongoProjectRepository(_db(projects=collection))

        projects = await repo.list_for_user("u1", status="active", sort_by="bogus", offset=10, limit=5)

        query = collection.calls[-1][1]
        self.assertEqual(query, {"$or": [{"owner": "u1"}, {"members": "u1"}], "status": "active"})
        self.assertEqual(collection.cursor.sorted_by, [("updatedAt", DESCENDING), ("_id", ASCENDING)])
        self.assertEqual((collection.cursor.skipped, collection.cursor.limited), (10, 5))
        self.assertEqual([p["id"] for p in projects], ["p1", "p2"])

    async def test_set_task_stats_touches_only_task_counters(self) -> None:
        collection = _FakeCollection()
        repo = MongoProjectRepository(_db(projects=collection))

        await repo.set_task_stats("p1", 6, 3)

        self.assertEqual(
            collection.calls[-1],
            ("update_one", {"_id": "p1"}, {"$set": {"stats.taskCount": 6, "stats.completedTasks": 3}}),
        )


class MongoTaskRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_update_many_sends_one_unordered_bulk_write(self) -> None:
        collection = _FakeCollection([{"_id": "t1", "status": "done"}, {"_id": "t2", "status": "done"}])
        repo = MongoTaskRepository(_db(tasks=collection))

        docs = await repo.update_many({
            "t1": {"status": "done", "updatedAt": "now"},
            "t2": {"id": "ignored", "status": "done", "updatedAt": "now"},
        })

        name, operations, ordered = collection.calls[0]
        self.assertEqual(name, "bulk_write")
        self.assertFalse(ordered)
        self.assertEqual(
            operations,
            [
                UpdateOne({"_id": "t1"}, {"$set": {"status": "done", "updatedAt": "now"}}),
                UpdateOne({"_id": "t2"}, {"$set": {"status": "done", "updatedAt": "now"}}),
            ],
        )
        self.assertEqual(collection.calls[1][1], {"_id": {"$in": ["t1", "t2"]}})
        self.assertEqual([d["id"] for d in docs], ["t1", "t2"])

    async def test_update_many_without_patches_skips_the_store(self) -> None:
        collection = _FakeCollection()
        repo = MongoTaskRepository(_db(tasks=collection))

        self.assertEqual(await repo.update_many({}), [])
        self.assertEqual(collection.calls, [])

    async def test_delete_returns_removed_document(self) -> None:
        collection = _FakeCollection([{"_id": "t1", "projectId": "p1"}])
        repo = MongoTaskRepository(_db(tasks=collection))

        deleted = await repo.delete("t1")

        self.assertEqual(collection.calls[-1], ("find_one_and_delete", {"_id": "t1"}))
        self.assertEqual(deleted, {"id": "t1", "projectId": "p1"})
        self.assertIsNone(await MongoTaskRepository(_db(tasks=_FakeCollection())).delete("t1"))

    async def test_count_skips_unset_filters(self) -> None:
        collection = _FakeCollection(count=4)
        repo = MongoTaskRepository(_db(tasks=collection))

        self.assertEqual(await repo.count(assigned_to="u1", created_by="u2"), 4)
        self.assertEqual(collection.calls[-1], ("count_documents", {"assignedTo": "u1", "createdBy": "u2"}))

    async def test_list_by_project_pages_only_with_limit(self) -> None:
        collection = _FakeCollection([{"_id": "t1"}])
        repo = MongoTaskRepository(_db(tasks=collection))

        await repo.list_by_project("p1", status="todo", sort_by="dueDate", sort_order="desc")
        self.assertEqual(collection.calls[-1][1], {"projectId": "p1", "status": "todo"})
        self.assertEqual(collection.cursor.sorted_by[0], ("dueDate", DESCENDING))
        self.assertIsNone(collection.cursor.limited)

        await repo.list_by_project("p1", offset=20, limit=10)
        self.assertEqual((collection.cursor.skipped, collection.cursor.limited), (20, 10))

    async def test_status_snapshot_projects_status_and_due_date(self) -> None:
        collection = _FakeCollection([{"_id": "t1", "dueDate": "2026-01-01"}])
        repo = MongoTaskRepository(_db(tasks=collection))

        snapshot = await repo.list_status_snapshot("p1")

        self.assertEqual(collection.calls[-1][2], {"status": 1, "dueDate": 1})
        self.assertEqual(snapshot, [{"id": "t1", "status": "todo", "dueDate": "2026-01-01"}])

    async def test_delete_by_project_reports_deleted_count(self) -> None:
        collection = _FakeCollection(deleted_count=3)
        repo = MongoTaskRepository(_db(tasks=collection))

        self.assertEqual(await repo.delete_by_project("p1"), 3)
        self.assertEqual(collection.calls[-1], ("delete_many", {"projectId": "p1"}))


class MongoCommentAndNotificationTests(unittest.IsolatedAsyncioTestCase):
    async def test_comment_purge_matches_project_or_task_ids(self) -> None:
        collection = _FakeCollection(deleted_count=2)
        repo = MongoCommentRepository(_db(comments=collection))

        self.assertEqual(await repo.delete_by_project("p1", ["t1", "t2"]), 2)
        self.assertEqual(
            collection.calls[-1][1],
            {"$or": [{"projectId": "p1"}, {"taskId": {"$in": ["t1", "t2"]}}]},
        )

        await repo.delete_by_project("p1", [])
        self.assertEqual(collection.calls[-1][1], {"projectId": "p1"})

    async def test_comment_delete_reflects_deleted_count(self) -> None:
        self.assertFalse(await MongoCommentRepository(_db(comments=_FakeCollection())).delete("c1"))
        self.assertTrue(
            await MongoCommentRepository(_db(comments=_FakeCollection(deleted_count=1))).delete("c1")
        )

    async def test_unseen_notifications_are_newest_first(self) -> None:
        collection = _FakeCollection([{"_id": "n1", "user": "u1", "seen": False}])
        repo = MongoNotificationRepository(_db(notifications=collection))

        items = await repo.list_for_user("u1", unseen_only=True, limit=5)

        self.assertEqual(collection.calls[-1][1], {"user": "u1", "seen": False})
        self.assertEqual(collection.cursor.sorted_by, [("createdAt", -1)])
        self.assertEqual(collection.cursor.limited, 5)
        self.assertEqual(items[0]["id"], "n1")

    async def test_mark_seen_sets_flag_atomically(self) -> None:
        collection = _FakeCollection([{"_id": "n1", "seen": True}])
        repo = MongoNotificationRepository(_db(notifications=collection))

        marked = await repo.mark_seen("n1")

        self.assertEqual(
            collection.calls[-1],
            ("find_one_and_update", {"_id": "n1"}, {"$set": {"seen": True}}, ReturnDocument.AFTER),
        )
        self.assertTrue(marked["seen"])


if __name__ == "__main__":
    unittest.main()
