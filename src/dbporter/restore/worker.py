"""Import job worker: one file, internal retries, terminal status.

Retries stay inside the worker so a job is never held by two workers at
once.  Each attempt writes the client's diagnostics to a private file
``<error_log_dir>/<file>.error``; the file is removed once the import
succeeds and kept for the operator otherwise.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

from dbporter.adapters.base import SqlImporter
from dbporter.restore.classifier import backoff_delay, classify_error
from dbporter.restore.logs import AppendLog, format_failure_record
from dbporter.restore.models import ErrorKind, ImportJob, JobStatus

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

_RETRY_REASON = {
    ErrorKind.TRANSIENT_LOCK: "lock timeout",
    ErrorKind.TRANSIENT_DEADLOCK: "deadlock",
}


class ImportWorker:
    """Runs ImportJobs against an ``SqlImporter``.

    Args:
        importer: Executes one SQL file per call.
        error_log_dir: Directory for per-file diagnostic output.
        success_log: Receives one line per imported file.
        error_report: Receives one block per permanently failed file.
        max_attempts: Attempts per job, including the first.
        backoff_unit: Seconds per backoff unit (lock: ``n * 2`` units,
            deadlock: ``n`` units after attempt ``n``).
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        importer: SqlImporter,
        error_log_dir: Path,
        success_log: AppendLog,
        error_report: AppendLog,
        max_attempts: int = MAX_ATTEMPTS,
        backoff_unit: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.importer = importer
        self.error_log_dir = error_log_dir
        self.success_log = success_log
        self.error_report = error_report
        self.max_attempts = max_attempts
        self.backoff_unit = backoff_unit
        self._sleep = sleep

    def error_log_for(self, job: ImportJob) -> Path:
        return self.error_log_dir / f"{job.name}.error"

    async def run(self, job: ImportJob) -> ImportJob:
        """Import ``job`` until it succeeds or fails permanently."""
        start = time.monotonic()
        error_log = self.error_log_for(job)

        while job.attempts < self.max_attempts:
            job.attempts += 1
            if await self._attempt(job, error_log):
                break

            kind = classify_error(job.last_error)
            delay = backoff_delay(kind, job.attempts)
            if delay is None or job.attempts >= self.max_attempts:
                job.status = JobStatus.FAILED_PERMANENT
                break

            job.status = JobStatus.FAILED_TRANSIENT
            logger.warning(
                "RETRY %d/%d: %s (%s)",
                job.attempts,
                self.max_attempts,
                job.name,
                _RETRY_REASON[kind],
            )
            await self._sleep(delay * self.backoff_unit)

        job.elapsed = time.monotonic() - start

        if job.status == JobStatus.FAILED_PERMANENT:
            self.error_report.append(
                format_failure_record(job.name, job.attempts, job.last_error)
            )
            logger.debug("FAILED: %s after %d attempts", job.name, job.attempts)

        return job

    async def _attempt(self, job: ImportJob, error_log: Path) -> bool:
        try:
            result = await self.importer.import_file(job.source, error_log)
        except OSError as e:
            job.last_error = str(e)
            return False

        if result.ok:
            job.status = JobStatus.SUCCEEDED
            job.last_error = ""
            self.success_log.append(f"{job.name}\n")
            error_log.unlink(missing_ok=True)
            if job.attempts > 1:
                logger.info(
                    "SUCCESS: %s (after %d retries)", job.name, job.attempts - 1
                )
            return True

        job.last_error = _read_diagnostic(error_log)
        return False


def _read_diagnostic(error_log: Path) -> str:
    try:
        return error_log.read_text(errors="replace")
    except FileNotFoundError:
        return ""
