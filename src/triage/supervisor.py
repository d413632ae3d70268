"""Supervised background execution of triage attempts.

The webhook response is sent before triage finishes, so each attempt runs
as a detached asyncio task. The supervisor keeps a strong reference to
every task until it completes and attaches a done-callback that logs the
outcome under the attempt's correlation id. No task result or exception
is ever left unobserved.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Set

import structlog

from src.triage.logs import bind_correlation_id

logger = structlog.get_logger(__name__)


class TriageSupervisor:
    """Owns the background tasks started by the webhook gateway.

    Attributes:
        pending: Number of tasks that have not finished yet.
    """

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Task[Any]"] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        work_factory: Callable[[], Awaitable[Any]],
        correlation_id: str,
        issue_number: Optional[int] = None,
    ) -> "asyncio.Task[Any]":
        """Start a unit of work in the background.

        Must be called from a running event loop.

        Args:
            work_factory: Zero-argument callable returning the awaitable to run.
            correlation_id: Id bound to every log line of the unit of work.
            issue_number: Issue the work belongs to, for log context.

        Returns:
            The created task.
        """

        async def _run() -> Any:
            with bind_correlation_id(correlation_id):
                return await work_factory()

        task = asyncio.get_running_loop().create_task(
            _run(), name=f"triage-{correlation_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(
            lambda done: self._on_done(done, correlation_id, issue_number)
        )
        logger.debug(
            "background_task_started",
            correlation_id=correlation_id,
            issue_number=issue_number,
            pending=self.pending,
        )
        return task

    def _on_done(
        self,
        task: "asyncio.Task[Any]",
        correlation_id: str,
        issue_number: Optional[int],
    ) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.warning(
                "background_task_cancelled",
                correlation_id=correlation_id,
                issue_number=issue_number,
            )
            return

        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                correlation_id=correlation_id,
                issue_number=issue_number,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )
            return

        result = task.result()
        success = getattr(result, "success", None)
        logger.info(
            "background_task_finished",
            correlation_id=correlation_id,
            issue_number=issue_number,
            success=success,
            error=getattr(result, "error", None),
        )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding tasks, cancelling any still running after timeout.

        Args:
            timeout: Seconds to wait. None waits indefinitely.
        """
        if not self._tasks:
            return

        tasks = list(self._tasks)
        logger.info("draining_background_tasks", pending=len(tasks))
        _, not_done = await asyncio.wait(tasks, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            await asyncio.wait(not_done)
