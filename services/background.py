"""
Detached background tasks whose results are logged but never awaited by the caller
"""
import asyncio
import logging
from typing import Any, Coroutine, Set

logger = logging.getLogger(__name__)

# Strong references so the event loop does not garbage collect running tasks
_background_tasks: Set[asyncio.Task] = set()


def _log_outcome(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    name = task.get_name()
    if task.cancelled():
        logger.warning(f"[Background] {name} was cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.error(f"[Background] {name} failed: {str(error)}", exc_info=error)
    else:
        logger.info(f"[Background] {name} finished: {task.result()}")


def spawn_detached(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_log_outcome)
    return task


async def drain_background_tasks() -> None:
    """Wait for outstanding detached tasks, e.g. on shutdown"""
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
