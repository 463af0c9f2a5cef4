"""Best-effort fan-out of analytics writes after an operational write."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable

from taskforge.observability import record_sync, start_span

logger = logging.getLogger("taskforge.sync")


async def _run_branch(branch: str, awaitable: Awaitable[Any], project_id: str | None) -> Any:
    t0 = time.monotonic()
    try:
        result = await awaitable
    except Exception:
        record_sync(branch, "error", (time.monotonic() - t0) * 1000, project_id=project_id)
        raise
    record_sync(branch, "ok", (time.monotonic() - t0) * 1000, project_id=project_id)
    return result


async def run_side_effects(
    label: str,
    entity_id: str,
    branches: dict[str, Awaitable[Any]],
    *,
    project_id: str | None = None,
) -> dict[str, bool]:
    """Await every branch concurrently and report ``{branch: ok}``.

    A failing branch is logged and recorded; it never cancels its siblings and
    never raises to the caller. The operational write that triggered the fan-out
    has already committed by the time this runs.
    """
    if not branches:
        return {}
    names = list(branches)
    with start_span(f"sync.{label}", {"entity.id": entity_id, "project.id": project_id}):
        results = await asyncio.gather(
            *(_run_branch(name, branches[name], project_id) for name in names),
            return_exceptions=True,
        )
    outcome: dict[str, bool] = {}
    for name, result in zip(names, results):
        if isinstance(result, Exception):
            logger.warning("Sync branch %s failed for %s %s: %s", name, label, entity_id, result)
            outcome[name] = False
        elif isinstance(result, BaseException):
            raise result
        else:
            outcome[name] = True
    return outcome
