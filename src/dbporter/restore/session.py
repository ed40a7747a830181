"""Import session: optimize -> concurrent pass -> sequential pass -> revert.

The session owns the ordering contracts between the passes:

1. The buffer pool plan is made (and, if authorized, applied) first.
2. The concurrent pass drains completely before the sequential pass starts.
3. The buffer pool is reverted after both passes, on every exit path,
   before any other cleanup the caller does.

Usage:
    from dbporter.restore.session import ImportSession

    session = ImportSession(client, workspace, sql_files, width=6,
                            db=adapter, optimizer=optimizer)
    report = await session.run()
    sys.exit(report.exit_code)
"""

import logging
import time
from collections.abc import Callable
from contextlib import nullcontext
from pathlib import Path

from dbporter.adapters.base import DatabaseClient, SqlImporter
from dbporter.config.models import Workspace
from dbporter.restore.buffer_pool import BufferPoolGuard, BufferPoolOptimizer
from dbporter.restore.logs import AppendLog
from dbporter.restore.models import (
    BufferPoolPlan,
    ImportJob,
    RetryOutcome,
    SessionReport,
    SessionStatus,
)
from dbporter.restore.retry_pass import run_sequential_retry
from dbporter.restore.scheduler import run_concurrent_pass
from dbporter.restore.worker import MAX_ATTEMPTS, ImportWorker

logger = logging.getLogger(__name__)


def authorize_always(plan: BufferPoolPlan) -> bool:
    return True


class ImportSession:
    """One import of a set of SQL files into one database.

    Args:
        importer: Executes the SQL files.
        workspace: Holds the shared logs, diagnostics and backup pointer.
        sql_files: Files to import, one ImportJob each.  Logs and reports
            identify files by name, so names must be unique.
        width: Number of concurrent workers.
        db: Metadata connection used to read the current buffer pool size.
            Optimization is skipped without it.
        optimizer: Buffer pool optimizer.  Optimization is skipped without it.
        authorize: Asked before a beneficial buffer pool change is applied.
        max_attempts: Attempts per job in the concurrent pass.
        backoff_unit: Seconds per worker backoff unit.
    """

    def __init__(
        self,
        importer: SqlImporter,
        workspace: Workspace,
        sql_files: list[Path],
        width: int,
        db: DatabaseClient | None = None,
        optimizer: BufferPoolOptimizer | None = None,
        authorize: Callable[[BufferPoolPlan], bool] = authorize_always,
        max_attempts: int = MAX_ATTEMPTS,
        backoff_unit: float = 1.0,
    ) -> None:
        self.importer = importer
        self.workspace = workspace
        self.sql_files = list(sql_files)
        names = [path.name for path in self.sql_files]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"SQL file names must be unique: {', '.join(duplicates)}")
        self.width = width
        self.db = db
        self.optimizer = optimizer
        self.authorize = authorize
        self.success_log = AppendLog(workspace.success_log)
        self.error_report = AppendLog(workspace.error_report)
        self.worker = ImportWorker(
            importer,
            error_log_dir=workspace.error_log_dir,
            success_log=self.success_log,
            error_report=self.error_report,
            max_attempts=max_attempts,
            backoff_unit=backoff_unit,
        )

    async def run(self) -> SessionReport:
        """Run both passes and return the verdict.

        The success log and error report are truncated first so they only
        describe this session.
        """
        start = time.monotonic()
        self.workspace.error_log_dir.mkdir(parents=True, exist_ok=True)
        self.success_log.truncate()
        self.error_report.truncate()

        plan = await self._plan_buffer_pool()
        if plan is None:
            guard = nullcontext(None)
        else:
            guard = BufferPoolGuard(self.optimizer, plan, self.authorize)

        retry = None
        with guard:
            jobs = [ImportJob.from_path(path) for path in self.sql_files]
            concurrent = await run_concurrent_pass(jobs, self.worker, self.width)

            if not concurrent.full_success:
                logger.info("Starting sequential retry for failed imports")
                retry = await run_sequential_retry(
                    self.importer,
                    self.error_report,
                    self.success_log,
                    self.sql_files,
                    self.workspace.error_log_dir,
                )

        if concurrent.full_success or (
            retry is not None and retry.outcome == RetryOutcome.FULL_RECOVERY
        ):
            status = SessionStatus.SUCCESS
        else:
            status = SessionStatus.FAILURE

        report = SessionReport(
            status=status,
            concurrent=concurrent,
            retry=retry,
            buffer_pool=plan,
            elapsed=time.monotonic() - start,
        )
        if status == SessionStatus.SUCCESS:
            logger.info(report.summary())
        else:
            logger.error(report.summary())
        return report

    async def _plan_buffer_pool(self) -> BufferPoolPlan | None:
        if self.optimizer is None or self.db is None:
            return None

        try:
            current = await self.db.get_buffer_pool_size()
        except Exception as e:
            self.optimizer.skip(f"could not read current size ({e})")
            return None

        plan = self.optimizer.plan(current)
        logger.info(
            "Buffer pool: current %sGB, suggested %dGB (total %dGB, available %dGB)",
            plan.current_gb,
            plan.suggested_gb,
            plan.total_gb,
            plan.available_gb,
        )
        return plan
