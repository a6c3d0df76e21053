"""
Detached background tasks.

Tasks are held in a module-level set until they finish so the event loop does
not garbage-collect them mid-flight, and so shutdown can wait for them.
"""

import asyncio
from typing import Coroutine, Any, Set

from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

_active_tasks: Set[asyncio.Task] = set()


def spawn(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """Start a coroutine without awaiting it. Exceptions are logged, never raised."""
    task = asyncio.create_task(coro, name=name)
    _active_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


def _on_done(task: asyncio.Task) -> None:
    _active_tasks.discard(task)
    if task.cancelled():
        logger.warning(f"Background task {task.get_name()} was cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            f"Background task {task.get_name()} failed: {exc!r}",
            extra={"task": task.get_name()},
        )


def active_count() -> int:
    return len(_active_tasks)


async def drain(timeout: float = 10.0) -> None:
    """Wait for in-flight tasks, cancelling whatever is left after `timeout`."""
    if not _active_tasks:
        return

    logger.info(f"Waiting for {len(_active_tasks)} background tasks to complete...")
    pending = list(_active_tasks)
    done, still_pending = await asyncio.wait(pending, timeout=timeout)
    for task in still_pending:
        task.cancel()
    if still_pending:
        await asyncio.gather(*still_pending, return_exceptions=True)
        logger.warning(f"Cancelled {len(still_pending)} background tasks on shutdown")
