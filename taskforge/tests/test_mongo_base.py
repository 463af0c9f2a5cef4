import unittest

from pymongo import ASCENDING, DESCENDING

from taskforge.db.repositories.mongo.base import collect, from_mongo, sort_spec, to_mongo


class _FakeCursor:
    def __init__(self, docs: list[dict]) -> None:
        self.docs = docs
        self.length = "unset"

    async def to_list(self, length=None):
        self.length = length
        return list(self.docs)


class MongoDocumentMappingTests(unittest.TestCase):
    def test_id_maps_to_underscore_id_and_back(self) -> None:
        stored = to_mongo({"id": "t1", "title": "Write docs"})
        self.assertEqual(stored, {"_id": "t1", "title": "Write docs"})
        self.assertEqual(from_mongo(stored), {"id": "t1", "title": "Write docs"})
        self.assertIsNone(from_mongo(None))

    def test_sort_spec_falls_back_to_default_direction(self) -> None:
        self.assertEqual(sort_spec("order", "asc", default_desc=True), [("order", ASCENDING), ("_id", ASCENDING)])
        self.assertEqual(sort_spec("updatedAt", "", default_desc=True), [("updatedAt", DESCENDING), ("_id", ASCENDING)])
        self.assertEqual(sort_spec("order", "sideways", default_desc=False)[0], ("order", ASCENDING))


class MongoCollectTests(unittest.IsolatedAsyncioTestCase):
    async def test_collect_drains_cursor(self) -> None:
        cursor = _FakeCursor([{"_id": "a", "n": 1}, {"_id": "b", "n": 2}])

        docs = await collect(cursor)

        self.assertEqual(docs, [{"id": "a", "n": 1}, {"id": "b", "n": 2}])
        self.assertIsNone(cursor.length)


if __name__ == "__main__":
    unittest.main()
