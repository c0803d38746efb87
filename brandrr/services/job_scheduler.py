"""In-process scheduling of job runs as background asyncio tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from functools import lru_cache

from brandrr.schemas.job import JobPayload
from brandrr.services.job_runner import JobOutcome, JobRunner

logger = logging.getLogger(__name__)


class JobScheduler:
    """Start each accepted job as its own task and keep it referenced until done."""

    def __init__(self, runner_factory: Callable[[], JobRunner] | None = None) -> None:
        self._runner_factory = runner_factory or JobRunner
        self._tasks: set[asyncio.Task[JobOutcome]] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def submit(self, payload: JobPayload) -> asyncio.Task[JobOutcome]:
        """Schedule ``payload`` and return immediately."""
        task = asyncio.create_task(
            self._runner_factory().run(payload),
            name=f"brandrr-job-{payload.job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.info(
            "Job scheduled",
            extra={"job_id": payload.job_id, "active_jobs": len(self._tasks)},
        )
        return task

    async def drain(self, timeout_seconds: float | None = None) -> None:
        """Wait for running jobs, e.g. at shutdown."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info("Waiting for running jobs", extra={"active_jobs": len(pending)})
        _, still_running = await asyncio.wait(pending, timeout=timeout_seconds)
        if still_running:
            logger.warning("Jobs still running after drain timeout", extra={"active_jobs": len(still_running)})

    def _on_done(self, task: asyncio.Task[JobOutcome]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Job task crashed",
                extra={"task": task.get_name(), "error": str(exc)},
            )


@lru_cache
def get_job_scheduler() -> JobScheduler:
    """Get the process-wide scheduler."""
    return JobScheduler()
