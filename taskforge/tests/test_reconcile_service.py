import unittest

import aiosqlite

from taskforge.db.migrations import run_migrations
from taskforge.services.analytics import task_metrics_row
from taskforge.services.projects import ProjectService
from taskforge.services.reconcile import ReconciliationService
from taskforge.services.tasks import TaskService


class ReconciliationServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.document_db = await aiosqlite.connect(":memory:")
        self.document_db.row_factory = aiosqlite.Row
        self.analytics_db = await aiosqlite.connect(":memory:")
        self.analytics_db.row_factory = aiosqlite.Row
        await run_migrations(self.document_db, self.analytics_db)
        self.projects = ProjectService(self.document_db, self.analytics_db)
        self.tasks = TaskService(self.document_db, self.analytics_db)
        self.service = ReconciliationService(self.document_db, self.analytics_db)
        self.project = await self.projects.create_project({"name": "Apollo"}, "u1")

    async def asyncTearDown(self) -> None:
        await self.document_db.close()
        await self.analytics_db.close()

    async def test_missing_metrics_row_is_recreated(self) -> None:
        task = await self.tasks.create_task({"title": "T", "projectId": self.project["id"], "assignedTo": "u2"})
        await self.tasks.metrics_repo.delete(task["id"])

        report = await self.service.reconcile_project(self.project["id"])

        self.assertEqual(report["missingMetrics"], 1)
        self.assertEqual(report["userStatsRefreshed"], 1)
        self.assertGreater(report["drift"], 0)
        row = await self.tasks.metrics_repo.get(task["id"])
        self.assertEqual(row["assigned_to"], "u2")

        second = await self.service.reconcile_project(self.project["id"])
        self.assertEqual(second["drift"], 0)

    async def test_stale_and_orphaned_rows_are_repaired(self) -> None:
        task = await self.tasks.create_task({"title": "T", "projectId": self.project["id"]})
        stale = task_metrics_row({**task, "status": "done"})
        await self.tasks.metrics_repo.upsert(stale)
        orphan = task_metrics_row({**task, "id": "gone-task", "assignedTo": "u7"})
        await self.tasks.metrics_repo.upsert(orphan)

        report = await self.service.reconcile_project(self.project["id"])

        self.assertEqual(report["staleMetrics"], 1)
        self.assertEqual(report["orphanedMetrics"], 1)
        self.assertEqual((await self.tasks.metrics_repo.get(task["id"]))["status"], "todo")
        self.assertIsNone(await self.tasks.metrics_repo.get("gone-task"))
        stats = await self.tasks.get_user_task_stats("u7")
        self.assertEqual(stats["tasksAssigned"], 0)
        self.assertIsNotNone(stats["lastActivityAt"])

    async def test_cached_counters_and_members_are_repaired(self) -> None:
        await self.tasks.create_task({"title": "T", "projectId": self.project["id"], "status": "done"})
        await self.projects.project_repo.set_task_stats(self.project["id"], 9, 9)
        await self.projects.member_repo.upsert(self.project["id"], "stranger", "member")
        await self.projects.member_repo.delete(self.project["id"], "u1")

        report = await self.service.reconcile_project(self.project["id"])

        self.assertTrue(report["projectStatsRepaired"])
        self.assertTrue(report["analyticsRepaired"])
        self.assertEqual(report["membersAdded"], 1)
        self.assertEqual(report["membersRemoved"], 1)

        project = await self.projects.project_repo.get_by_id(self.project["id"])
        self.assertEqual(project["stats"]["taskCount"], 1)
        self.assertEqual(project["stats"]["completedTasks"], 1)
        analytics = await self.projects.get_project_analytics(self.project["id"])
        self.assertEqual(analytics["completedTasks"], 1)
        self.assertEqual(analytics["completionRate"], 100.0)
        members = await self.projects.member_repo.list_for_project(self.project["id"])
        self.assertEqual([(m["user_id"], m["role"]) for m in members], [("u1", "owner")])

    async def test_reconcile_all_sweeps_every_project(self) -> None:
        other = await self.projects.create_project({"name": "Gemini"}, "u2")
        task = await self.tasks.create_task({"title": "T", "projectId": other["id"]})
        await self.tasks.metrics_repo.delete(task["id"])

        summary = await self.service.reconcile_all()

        self.assertEqual(summary["projects"], 2)
        self.assertEqual(summary["failed"], [])
        self.assertEqual(
            sorted(report["projectId"] for report in summary["reports"]),
            sorted([self.project["id"], other["id"]]),
        )
        self.assertGreater(summary["drift"], 0)

        again = await self.service.reconcile_all()
        self.assertEqual(again["drift"], 0)


if __name__ == "__main__":
    unittest.main()
