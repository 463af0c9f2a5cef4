import asyncio
import sqlite3
import unittest
from unittest.mock import AsyncMock, patch

import aiosqlite

from taskforge.db.migrations import run_migrations
from taskforge.errors import NotFoundError, ValidationError
from taskforge.services.projects import ProjectService
from taskforge.services.tasks import TaskService


class TaskServiceTestBase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.document_db = await aiosqlite.connect(":memory:")
        self.document_db.row_factory = aiosqlite.Row
        self.analytics_db = await aiosqlite.connect(":memory:")
        self.analytics_db.row_factory = aiosqlite.Row
        await run_migrations(self.document_db, self.analytics_db)
        self.projects = ProjectService(self.document_db, self.analytics_db)
        self.tasks = TaskService(self.document_db, self.analytics_db)
        self.project = await self.projects.create_project({"name": "Apollo"}, "u1")

    async def asyncTearDown(self) -> None:
        await self.document_db.close()
        await self.analytics_db.close()

    async def _task(self, **fields):
        data = {"title": "Task", "projectId": self.project["id"], **fields}
        return await self.tasks.create_task(data)


class TaskCreateTests(TaskServiceTestBase):
    async def test_create_task_mirrors_metrics_and_refreshes_project_counts(self) -> None:
        task = await self._task(title="Write docs", status="done", assignedTo="u2", timeSpent=2.5)

        self.assertEqual(task["status"], "done")
        self.assertIsNotNone(task["completedAt"])
        metrics = await self.tasks.metrics_repo.get(task["id"])
        self.assertEqual(metrics["project_id"], self.project["id"])
        self.assertEqual(metrics["assigned_to"], "u2")
        self.assertEqual(metrics["is_completed"], 1)
        self.assertAlmostEqual(metrics["time_spent"], 2.5)

        project = await self.projects.project_repo.get_by_id(self.project["id"])
        self.assertEqual(project["stats"]["taskCount"], 1)
        self.assertEqual(project["stats"]["completedTasks"], 1)

    async def test_create_task_survives_analytics_store_failure(self) -> None:
        failing = AsyncMock(side_effect=sqlite3.OperationalError("analytics store unavailable"))
        with patch.object(self.tasks.metrics_repo, "upsert", new=failing), \
                patch.object(self.tasks.project_analytics_repo, "touch", new=failing):
            with self.assertLogs("taskforge.sync", level="WARNING") as logs:
                task = await self._task(title="Resilient", assignedTo="u2")

        self.assertEqual(task["title"], "Resilient")
        self.assertIsNotNone(await self.tasks.task_repo.get_by_id(task["id"]))
        self.assertIsNone(await self.tasks.metrics_repo.get(task["id"]))
        self.assertTrue(any("task_metrics" in line for line in logs.output))

    async def test_create_task_reports_every_missing_field(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            await self.tasks.create_task({"description": "no title, no project"})

        fields = {item["field"] for item in ctx.exception.errors}
        self.assertIn("title", fields)
        self.assertIn("projectId", fields)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_create_task_for_unknown_project_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            await self.tasks.create_task({"title": "Orphan", "projectId": "missing"})
        self.assertIn("'missing'", ctx.exception.message)


class TaskUpdateTests(TaskServiceTestBase):
    async def test_title_change_does_not_recompute_user_stats(self) -> None:
        task = await self._task(assignedTo="u2")

        with patch.object(self.tasks, "update_user_stats", new=AsyncMock()) as recompute:
            updated = await self.tasks.update_task(task["id"], {"title": "Renamed"})
            self.assertEqual(updated["title"], "Renamed")
            recompute.assert_not_called()

            await self.tasks.update_task(task["id"], {"status": "done"})
            recompute.assert_awaited_once_with("u2")

    async def test_reassignment_recomputes_old_and_new_assignee(self) -> None:
        task = await self._task(assignedTo="u2")

        with patch.object(self.tasks, "update_user_stats", new=AsyncMock()) as recompute:
            await self.tasks.update_task(task["id"], {"assignedTo": "u3"})

        called = sorted(call.args[0] for call in recompute.await_args_list)
        self.assertEqual(called, ["u2", "u3"])

    async def test_completed_at_follows_done_status(self) -> None:
        task = await self._task()
        self.assertIsNone(task["completedAt"])

        done = await self.tasks.update_task(task["id"], {"status": "done"})
        self.assertIsNotNone(done["completedAt"])
        metrics = await self.tasks.metrics_repo.get(task["id"])
        self.assertEqual(metrics["is_completed"], 1)

        reopened = await self.tasks.update_task(task["id"], {"status": "in-progress"})
        self.assertIsNone(reopened["completedAt"])
        project = await self.projects.project_repo.get_by_id(self.project["id"])
        self.assertEqual(project["stats"]["completedTasks"], 0)

    async def test_concurrent_updates_keep_both_changes(self) -> None:
        task = await self._task(title="T")

        await asyncio.gather(
            self.tasks.update_task(task["id"], {"title": "new"}),
            self.tasks.update_task(task["id"], {"status": "done"}),
        )

        stored = await self.tasks.get_task_by_id(task["id"])
        self.assertEqual((stored["title"], stored["status"]), ("new", "done"))
        self.assertIsNotNone(stored["completedAt"])

    async def test_update_missing_task_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.tasks.update_task("nope", {"title": "x"})

    async def test_assign_creates_notification_for_assignee(self) -> None:
        task = await self._task(title="Ship it")

        assigned = await self.tasks.assign_task_to_user(task["id"], "u5")
        self.assertEqual(assigned["assignedTo"], "u5")
        notifications = await self.tasks.notification_repo.list_for_user("u5")
        self.assertEqual(len(notifications), 1)
        self.assertIn("Ship it", notifications[0]["content"])

        unassigned = await self.tasks.unassign_task(task["id"])
        self.assertIsNone(unassigned["assignedTo"])


class TaskDeleteTests(TaskServiceTestBase):
    async def test_delete_twice_second_call_is_not_found(self) -> None:
        task = await self._task(assignedTo="u2")
        self.assertIsNotNone(await self.tasks.metrics_repo.get(task["id"]))

        self.assertTrue(await self.tasks.delete_task(task["id"]))
        self.assertIsNone(await self.tasks.task_repo.get_by_id(task["id"]))
        self.assertIsNone(await self.tasks.metrics_repo.get(task["id"]))

        with self.assertRaises(NotFoundError):
            await self.tasks.delete_task(task["id"])

    async def test_delete_refreshes_project_task_count(self) -> None:
        first = await self._task()
        await self._task()
        await self.tasks.delete_task(first["id"])

        project = await self.projects.project_repo.get_by_id(self.project["id"])
        self.assertEqual(project["stats"]["taskCount"], 1)


class TaskStatsTests(TaskServiceTestBase):
    async def test_missing_user_stats_return_zero_defaults(self) -> None:
        stats = await self.tasks.get_user_task_stats("ghost")

        self.assertEqual(stats["userId"], "ghost")
        for key in (
            "tasksCreated",
            "tasksAssigned",
            "tasksCompleted",
            "tasksInProgress",
            "totalTimeSpent",
            "avgCompletionTime",
            "productivityScore",
        ):
            self.assertEqual(stats[key], 0, key)
        self.assertIsNone(stats["lastActivityAt"])

    async def test_update_user_stats_combines_counts_and_time(self) -> None:
        await self._task(assignedTo="u2", createdBy="u1", status="done", timeSpent=3)
        await self._task(assignedTo="u2", createdBy="u1", status="in-progress", timeSpent=5)

        stats = await self.tasks.update_user_stats("u2")

        self.assertEqual(stats["tasksAssigned"], 2)
        self.assertEqual(stats["tasksCompleted"], 1)
        self.assertEqual(stats["tasksInProgress"], 1)
        self.assertEqual(stats["totalTimeSpent"], 8.0)
        self.assertEqual(stats["productivityScore"], 50.0)
        self.assertIsNotNone(stats["lastActivityAt"])

        creator = await self.tasks.update_user_stats("u1")
        self.assertEqual(creator["tasksCreated"], 2)
        self.assertEqual(creator["tasksAssigned"], 0)
        self.assertEqual(creator["productivityScore"], 0.0)

        stored = await self.tasks.get_user_task_stats("u2")
        self.assertEqual(stored["tasksCompleted"], 1)

    async def test_task_analytics_grouping(self) -> None:
        await self._task(assignedTo="u2", status="todo", timeSpent=2)
        await self._task(assignedTo="u2", status="done", timeSpent=4)
        await self._task(assignedTo="u3", status="done", timeSpent=6)

        by_status = await self.tasks.get_task_analytics(self.project["id"], group_by="status")
        self.assertEqual(
            {row["status"]: (row["count"], row["avgTimeSpent"]) for row in by_status},
            {"done": (2, 5.0), "todo": (1, 2.0)},
        )

        by_user = await self.tasks.get_task_analytics(self.project["id"], group_by="user")
        self.assertEqual(
            {row["assignedTo"]: (row["count"], row["totalTimeSpent"]) for row in by_user},
            {"u2": (2, 6.0), "u3": (1, 6.0)},
        )

        raw = await self.tasks.get_task_analytics(self.project["id"], status="done")
        self.assertEqual(len(raw), 2)
        self.assertTrue(all(row["isCompleted"] for row in raw))

    async def test_task_analytics_rejects_unknown_grouping(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            await self.tasks.get_task_analytics(self.project["id"], group_by="priority", date_from="not a date")
        fields = {item["field"] for item in ctx.exception.errors}
        self.assertEqual(fields, {"groupBy", "dateFrom"})

    async def test_list_tasks_by_project_filters_and_paginates(self) -> None:
        for index in range(5):
            await self._task(title=f"T{index}", order=index, priority="high" if index % 2 else "low")

        page = await self.tasks.get_tasks_by_project(self.project["id"], page=2, limit=2)
        self.assertEqual(page["total"], 5)
        self.assertEqual(page["pages"], 3)
        self.assertEqual([t["title"] for t in page["items"]], ["T2", "T3"])

        high = await self.tasks.get_tasks_by_project(self.project["id"], priority="high")
        self.assertEqual(high["total"], 2)


class TaskBatchTests(TaskServiceTestBase):
    async def test_batch_create_reports_failing_item_index(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            await self.tasks.batch_create_tasks([
                {"title": "ok", "projectId": self.project["id"]},
                {"projectId": self.project["id"]},
            ])
        self.assertEqual([e["field"] for e in ctx.exception.errors], ["tasks.1.title"])
        self.assertEqual(await self.tasks.task_repo.count(project_id=self.project["id"]), 0)

    async def test_batch_create_survives_one_failing_sync(self) -> None:
        original = self.tasks.metrics_repo.upsert

        async def flaky_upsert(row):
            if row["status"] == "blocked":
                raise sqlite3.OperationalError("disk I/O error")
            await original(row)

        with patch.object(self.tasks.metrics_repo, "upsert", new=flaky_upsert):
            created = await self.tasks.batch_create_tasks([
                {"title": "A", "projectId": self.project["id"], "assignedTo": "u2"},
                {"title": "B", "projectId": self.project["id"], "status": "blocked"},
                {"title": "C", "projectId": self.project["id"], "status": "done", "assignedTo": "u2"},
            ])

        self.assertEqual(len(created), 3)
        mirrored = [await self.tasks.metrics_repo.get(t["id"]) for t in created]
        self.assertEqual([row is not None for row in mirrored], [True, False, True])

        project = await self.projects.project_repo.get_by_id(self.project["id"])
        self.assertEqual(project["stats"]["taskCount"], 3)
        self.assertEqual(project["stats"]["completedTasks"], 1)
        stats = await self.tasks.get_user_task_stats("u2")
        self.assertEqual(stats["tasksAssigned"], 2)

    async def test_batch_update_and_delete(self) -> None:
        created = await self.tasks.batch_create_tasks([
            {"title": "A", "projectId": self.project["id"]},
            {"title": "B", "projectId": self.project["id"]},
        ])
        ids = [t["id"] for t in created]

        updated = await self.tasks.batch_update_tasks([{"id": i, "status": "done"} for i in ids])
        self.assertTrue(all(t["completedAt"] for t in updated))
        project = await self.projects.project_repo.get_by_id(self.project["id"])
        self.assertEqual(project["stats"]["completedTasks"], 2)

        with self.assertRaises(NotFoundError):
            await self.tasks.batch_update_tasks([{"id": "missing", "title": "x"}])

        result = await self.tasks.batch_delete_tasks([*ids, "missing"])
        self.assertEqual(result["deleted"], 2)
        self.assertEqual(sorted(result["ids"]), sorted(ids))
        self.assertEqual(await self.tasks.metrics_repo.list_for_project(self.project["id"]), [])


if __name__ == "__main__":
    unittest.main()
