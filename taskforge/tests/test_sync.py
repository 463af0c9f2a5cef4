import asyncio
import unittest
from unittest.mock import patch

from taskforge.services import sync


async def _ok(value: str = "ok") -> str:
    await asyncio.sleep(0)
    return value


async def _boom() -> None:
    await asyncio.sleep(0)
    raise RuntimeError("analytics store unreachable")


class RunSideEffectsTests(unittest.IsolatedAsyncioTestCase):
    async def test_failing_branch_does_not_cancel_siblings(self) -> None:
        finished: list[str] = []

        async def slow() -> None:
            await asyncio.sleep(0.01)
            finished.append("slow")

        with self.assertLogs("taskforge.sync", level="WARNING") as logs:
            outcome = await sync.run_side_effects(
                "task.create",
                "t1",
                {"task_metrics": _boom(), "project_analytics": slow(), "user_stats:u1": _ok()},
                project_id="p1",
            )

        self.assertEqual(outcome, {"task_metrics": False, "project_analytics": True, "user_stats:u1": True})
        self.assertEqual(finished, ["slow"])
        self.assertEqual(len(logs.output), 1)
        self.assertIn("task_metrics", logs.output[0])
        self.assertIn("t1", logs.output[0])

    async def test_records_outcome_per_branch(self) -> None:
        with patch.object(sync, "record_sync") as record:
            with self.assertLogs("taskforge.sync", level="WARNING"):
                await sync.run_side_effects("task.update", "t1", {"a": _ok(), "b": _boom()}, project_id="p1")

        results = {call.args[0]: call.args[1] for call in record.call_args_list}
        self.assertEqual(results, {"a": "ok", "b": "error"})
        for call in record.call_args_list:
            self.assertEqual(call.kwargs["project_id"], "p1")
            self.assertGreaterEqual(call.args[2], 0)

    async def test_no_branches_is_a_no_op(self) -> None:
        self.assertEqual(await sync.run_side_effects("noop", "x", {}), {})

    async def test_cancellation_propagates(self) -> None:
        async def cancelled() -> None:
            raise asyncio.CancelledError()

        with self.assertRaises(asyncio.CancelledError):
            await sync.run_side_effects("task.create", "t1", {"x": cancelled()})


if __name__ == "__main__":
    unittest.main()
