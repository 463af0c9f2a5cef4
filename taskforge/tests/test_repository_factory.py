import types
import unittest

import aiosqlite

from taskforge.db import factory

DOCUMENT_GETTERS = (
    factory.get_project_repository,
    factory.get_task_repository,
    factory.get_comment_repository,
    factory.get_notification_repository,
)

ANALYTICS_GETTERS = (
    factory.get_user_repository,
    factory.get_project_analytics_repository,
    factory.get_task_metrics_repository,
    factory.get_user_stats_repository,
    factory.get_project_member_repository,
)


class RepositoryFactoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_sqlite_connection_selects_sqlite_repositories(self) -> None:
        for getter in (*DOCUMENT_GETTERS, *ANALYTICS_GETTERS):
            repo = getter(self.db)
            self.assertTrue(type(repo).__name__.startswith("Sqlite"), getter.__name__)
            self.assertIs(repo.db, self.db)

    def test_mongo_database_selects_mongo_repositories(self) -> None:
        mongo_db = types.SimpleNamespace(projects=object(), tasks=object(), comments=object(), notifications=object())
        for getter in DOCUMENT_GETTERS:
            repo = getter(mongo_db)
            self.assertTrue(type(repo).__name__.startswith("Mongo"), getter.__name__)

        self.assertIs(factory.get_task_repository(mongo_db).collection, mongo_db.tasks)

    def test_pool_selects_postgres_repositories(self) -> None:
        pool = object()
        for getter in ANALYTICS_GETTERS:
            repo = getter(pool)
            self.assertTrue(type(repo).__name__.startswith("Postgres"), getter.__name__)
            self.assertIs(repo.db, pool)


if __name__ == "__main__":
    unittest.main()
