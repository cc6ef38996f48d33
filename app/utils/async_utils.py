"""
Background task helpers.

A bare asyncio.create_task() drops exceptions on the floor unless somebody
awaits the task. Density refreshes run detached from the request that
started them, so they go through here to get their failures logged.
"""

import asyncio
import logging
from typing import Callable, Coroutine, Any, Optional

logger = logging.getLogger(__name__)


def create_task_with_error_handling(
    coro: Coroutine[Any, Any, Any],
    task_name: str = "background_task",
    on_error: Optional[Callable[[Exception], None]] = None,
) -> asyncio.Task:
    """
    Create an asyncio task whose exceptions are logged.

    Args:
        coro: The coroutine to run as a task
        task_name: Name for logging purposes
        on_error: Called with the exception when the task fails
            (a density refresh uses it to mark its session FAILED)

    Returns:
        The created asyncio.Task

    Example:
        ```python
        create_task_with_error_handling(
            session.select_metric(metric),
            task_name=f"density_refresh:{session.id}",
            on_error=lambda e: logger.warning(f"refresh failed: {e}"),
        )
        ```
    """
    task = asyncio.create_task(coro, name=task_name)

    def callback(t: asyncio.Task) -> None:
        try:
            t.result()
        except asyncio.CancelledError:
            logger.debug(f"Task '{task_name}' was cancelled")
        except Exception as e:
            logger.error(f"Exception in task '{task_name}': {e}", exc_info=True)
            if on_error:
                try:
                    on_error(e)
                except Exception as callback_error:
                    logger.error(f"Error in on_error callback for '{task_name}': {callback_error}")

    task.add_done_callback(callback)
    return task
