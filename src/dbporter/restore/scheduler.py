"""Concurrent import scheduler: bounded fan-out, fan-in barrier.

The scheduler performs no retry logic.  Every job is handed to exactly one
worker invocation; at most ``width`` invocations (and therefore native client
processes) run at the same time.  If a worker raises, the remaining workers
are cancelled and awaited before the exception leaves the pass.
"""

import asyncio
import logging

import psutil

from dbporter.restore.models import ImportJob, JobStatus, PassResult
from dbporter.restore.worker import ImportWorker

logger = logging.getLogger(__name__)


def get_thread_count(override: int = 0) -> int:
    """Concurrency width: ``override`` if positive, else logical CPUs - 2, at least 1."""
    if override > 0:
        return override
    total = psutil.cpu_count(logical=True) or 4
    return max(total - 2, 1)


async def run_concurrent_pass(
    jobs: list[ImportJob],
    worker: ImportWorker,
    width: int,
) -> PassResult:
    """Import all ``jobs`` with at most ``width`` running concurrently.

    Returns only once every job has reached a terminal status.
    """
    width = max(width, 1)
    semaphore = asyncio.Semaphore(width)

    async def _run(job: ImportJob) -> ImportJob:
        async with semaphore:
            return await worker.run(job)

    logger.info("Using %d parallel workers for %d files", width, len(jobs))
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(_run(job)) for job in jobs]
    except ExceptionGroup as errors:
        # every sibling has been cancelled and awaited at this point
        raise errors.exceptions[0] from None
    finished = [task.result() for task in tasks]

    result = PassResult(total=len(jobs), width=width)
    for job in finished:
        if job.status == JobStatus.SUCCEEDED:
            result.succeeded.append(job.name)
        else:
            result.failed.append(job.name)

    if result.full_success:
        logger.info("All %d SQL files imported successfully", result.total)
    else:
        logger.warning(
            "%d out of %d imports failed during parallel phase",
            len(result.failed),
            result.total,
        )
    return result
