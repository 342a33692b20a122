from __future__ import annotations

import asyncio
from collections.abc import Awaitable

import structlog

logger = structlog.get_logger(__name__)

# Strong references so detached tasks are not garbage-collected mid-flight.
_background_tasks: set[asyncio.Task[object]] = set()


def _log_outcome(task: asyncio.Task[object], *, name: str) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.warning("side_effect_cancelled", side_effect=name)
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "side_effect_failed",
            side_effect=name,
            error_type=type(exc).__name__,
            exc_info=exc,
        )


def spawn_detached(name: str, awaitable: Awaitable[object]) -> asyncio.Task[object]:
    """Run ``awaitable`` without joining it; its failure is only logged."""

    async def _run() -> object:
        return await awaitable

    task: asyncio.Task[object] = asyncio.create_task(_run(), name=name)
    _background_tasks.add(task)
    task.add_done_callback(lambda done: _log_outcome(done, name=name))
    return task


async def drain_side_effects(timeout: float = 5.0) -> None:
    pending = list(_background_tasks)
    if not pending:
        return
    _, still_pending = await asyncio.wait(pending, timeout=timeout)
    if still_pending:
        logger.warning("side_effects_not_drained", pending=len(still_pending))
