import unittest

from taskforge.db.repositories.postgres.analytics import (
    PostgresProjectAnalyticsRepository,
    PostgresProjectMemberRepository,
    PostgresTaskMetricsRepository,
    PostgresUserStatsRepository,
)
from taskforge.db.repositories.postgres.users import PostgresUserRepository


class _FakeTransaction:
    def __init__(self, events: list) -> None:
        self.events = events

    async def __aenter__(self):
        self.events.append("begin")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.events.append("rollback" if exc_type else "commit")
        return False


class _FakeConnection:
    def __init__(self, events: list, fail_on: str | None = None) -> None:
        self.events = events
        self.fail_on = fail_on

    def transaction(self):
        return _FakeTransaction(self.events)

    async def execute(self, query, *args):
        if self.fail_on and self.fail_on in query:
            raise RuntimeError("statement failed")
        self.events.append((" ".join(query.split()), args))
        return "INSERT 0 1"


class _FakeAcquire:
    def __init__(self, conn: _FakeConnection) -> None:
        self.conn = conn

    async def __aenter__(self):
        self.conn.events.append("acquire")
        return self.conn

    async def __aexit__(self, exc_type, exc, tb):
        self.conn.events.append("release")
        return False


class _FakePool:
    """Stands in for an asyncpg pool; records queries and replays canned results."""

    def __init__(self, *, status: str = "DELETE 0", rows: list[dict] | None = None, fail_on: str | None = None) -> None:
        self.status = status
        self.rows = rows or []
        self.calls: list[tuple] = []
        self.events: list = []
        self.fail_on = fail_on

    async def execute(self, query, *args):
        self.calls.append(("execute", query, args))
        return self.status

    async def fetch(self, query, *args):
        self.calls.append(("fetch", query, args))
        return list(self.rows)

    async def fetchrow(self, query, *args):
        self.calls.append(("fetchrow", query, args))
        return self.rows[0] if self.rows else None

    def acquire(self):
        return _FakeAcquire(_FakeConnection(self.events, self.fail_on))


class PostgresTaskMetricsRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_delete_parses_command_status(self) -> None:
        self.assertFalse(await PostgresTaskMetricsRepository(_FakePool(status="DELETE 0")).delete("t1"))
        self.assertTrue(await PostgresTaskMetricsRepository(_FakePool(status="DELETE 1")).delete("t1"))

        pool = _FakePool(status="DELETE 3")
        self.assertEqual(await PostgresTaskMetricsRepository(pool).delete_many(["t1", "t2", "t3"]), 3)
        self.assertEqual(pool.calls[-1][2], (["t1", "t2", "t3"],))

    async def test_delete_many_without_ids_skips_the_store(self) -> None:
        pool = _FakePool()
        self.assertEqual(await PostgresTaskMetricsRepository(pool).delete_many([]), 0)
        self.assertEqual(pool.calls, [])

    async def test_summarize_numbers_placeholders_in_filter_order(self) -> None:
        pool = _FakePool(rows=[{"group_key": "u1", "count": 2}])
        repo = PostgresTaskMetricsRepository(pool)

        rows = await repo.summarize(project_id="p1", status="done", date_from="2026-01-01", group_by="user")

        _, query, args = pool.calls[-1]
        self.assertIn("project_id = $1", query)
        self.assertIn("status = $2", query)
        self.assertIn("created_at::timestamptz >= $3::timestamptz", query)
        self.assertNotIn("assigned_to = $", query)
        self.assertIn("GROUP BY assigned_to ORDER BY count DESC", query)
        self.assertEqual(args, ("p1", "done", "2026-01-01"))
        self.assertEqual(rows, [{"group_key": "u1", "count": 2}])

    async def test_ungrouped_summary_over_no_rows_is_empty(self) -> None:
        pool = _FakePool(rows=[{"group_key": None, "count": 0, "total_time_spent": 0}])
        repo = PostgresTaskMetricsRepository(pool)

        self.assertEqual(await repo.summarize(assigned_to="u1"), [])
        _, query, args = pool.calls[-1]
        self.assertIn("NULL::text AS group_key", query)
        self.assertNotIn("GROUP BY", query)
        self.assertEqual(args, ("u1",))

    async def test_list_for_project_appends_limit_placeholder(self) -> None:
        pool = _FakePool()
        repo = PostgresTaskMetricsRepository(pool)

        await repo.list_for_project("p1", status="todo", order_by="bogus", limit=5)

        _, query, args = pool.calls[-1]
        self.assertIn("ORDER BY created_at DESC, task_id ASC LIMIT $3", query)
        self.assertEqual(args, ("p1", "todo", 5))

    async def test_upsert_stores_completion_as_integer_flag(self) -> None:
        pool = _FakePool()
        await PostgresTaskMetricsRepository(pool).upsert(
            {"task_id": "t1", "project_id": "p1", "is_completed": True, "time_spent": "1.5"}
        )

        args = pool.calls[-1][2]
        self.assertEqual(args[:2], ("t1", "p1"))
        self.assertEqual(args[5], 1.5)
        self.assertEqual(args[6], 1)


class PostgresProjectAnalyticsRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_initialize_project_runs_in_one_transaction(self) -> None:
        pool = _FakePool()

        await PostgresProjectAnalyticsRepository(pool).initialize_project("p1", "u1")

        self.assertEqual(pool.events[:2], ["acquire", "begin"])
        self.assertEqual(pool.events[-2:], ["commit", "release"])
        statements = [event for event in pool.events if isinstance(event, tuple)]
        self.assertTrue(statements[0][0].startswith("INSERT INTO project_analytics"))
        self.assertTrue(statements[1][0].startswith("INSERT INTO project_members"))
        self.assertEqual(statements[1][1][:2], ("p1", "u1"))

    async def test_failed_owner_row_rolls_back_the_snapshot(self) -> None:
        pool = _FakePool(fail_on="project_members")

        with self.assertRaises(RuntimeError):
            await PostgresProjectAnalyticsRepository(pool).initialize_project("p1", "u1")

        self.assertIn("rollback", pool.events)
        self.assertNotIn("commit", pool.events)

    async def test_purge_passes_task_ids_as_array(self) -> None:
        pool = _FakePool()

        await PostgresProjectAnalyticsRepository(pool).purge_project("p1", ["t1", "t2"])

        statements = [event for event in pool.events if isinstance(event, tuple)]
        self.assertEqual(len(statements), 3)
        self.assertEqual(statements[1][1], ("p1", ["t1", "t2"]))
        self.assertEqual(pool.events[-2:], ["commit", "release"])

    async def test_missing_snapshot_reads_as_none(self) -> None:
        self.assertIsNone(await PostgresProjectAnalyticsRepository(_FakePool()).get("p1"))


class PostgresUserAndMemberRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_member_delete_parses_command_status(self) -> None:
        repo = PostgresProjectMemberRepository(_FakePool(status="DELETE 1"))
        self.assertTrue(await repo.delete("p1", "u2"))
        self.assertFalse(await PostgresProjectMemberRepository(_FakePool()).delete("p1", "u2"))

    async def test_get_many_short_circuits_empty_input(self) -> None:
        pool = _FakePool()
        self.assertEqual(await PostgresUserStatsRepository(pool).get_many([]), [])
        self.assertEqual(await PostgresUserRepository(pool).get_many([]), [])
        self.assertEqual(pool.calls, [])

    async def test_user_lookup_maps_row(self) -> None:
        pool = _FakePool(rows=[{"id": "u1", "username": "ada"}])

        user = await PostgresUserRepository(pool).get_by_id("u1")

        self.assertEqual(user, {"id": "u1", "username": "ada"})
        self.assertEqual(pool.calls[-1][2], ("u1",))


if __name__ == "__main__":
    unittest.main()
