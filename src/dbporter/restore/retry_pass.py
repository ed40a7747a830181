"""Sequential retry pass for files that failed the concurrent pass.

Failed files are re-derived from the error report (``FAILED: <name>``
records) and imported one at a time, once each.  With no concurrent
importers left, inter-table lock contention is gone; each import also runs
with a 10 minute lock-wait timeout and foreign key / unique checks off.
"""

import logging
from pathlib import Path

from dbporter.adapters.base import SqlImporter
from dbporter.restore.logs import AppendLog, parse_failed_names
from dbporter.restore.models import RetryOutcome, RetryPassResult

logger = logging.getLogger(__name__)

RELAXED_SESSION = (
    "SET SESSION foreign_key_checks = 0, unique_checks = 0, "
    "innodb_lock_wait_timeout = 600"
)


def collect_failed_files(
    error_report: AppendLog, sources: list[Path]
) -> tuple[list[Path], list[str]]:
    """Map error report records back to the session's SQL files.

    Returns:
        The files that still exist, and the recorded names that match no
        existing file.  Unmatched names can never be recovered.
    """
    by_name = {path.name: path for path in sources}
    files: list[Path] = []
    missing: list[str] = []
    for name in parse_failed_names(error_report.read_text()):
        sql_file = by_name.get(name)
        if sql_file is not None and sql_file.is_file():
            files.append(sql_file)
        else:
            logger.warning("Failed file no longer present, cannot retry: %s", name)
            missing.append(name)
    return files, missing


async def run_sequential_retry(
    importer: SqlImporter,
    error_report: AppendLog,
    success_log: AppendLog,
    sources: list[Path],
    error_log_dir: Path,
) -> RetryPassResult:
    """Retry every failed file once, sequentially.

    Returns:
        RetryPassResult whose outcome is NOTHING_TO_RETRY (empty report or
        no failure records), FULL_RECOVERY, PARTIAL_RECOVERY, or FAILED
        (not a single file went through).  Recorded names that match no
        existing file count as failed.
    """
    if error_report.is_empty():
        logger.info("No failed imports to retry")
        return RetryPassResult(outcome=RetryOutcome.NOTHING_TO_RETRY)

    files, missing = collect_failed_files(error_report, sources)
    if not files and not missing:
        logger.warning("No failure records found to retry")
        return RetryPassResult(outcome=RetryOutcome.NOTHING_TO_RETRY)

    total = len(files) + len(missing)
    logger.info("Retrying %d failed tables sequentially", len(files))
    result = RetryPassResult(failed=list(missing))

    for sql_file in files:
        size_mb = sql_file.stat().st_size // (1024 * 1024)
        logger.info("Retrying: %s (%dMB)", sql_file.stem, size_mb)

        error_log = error_log_dir / f"{sql_file.name}.error"
        try:
            outcome = await importer.import_file(
                sql_file, error_log, init_command=RELAXED_SESSION
            )
            ok = outcome.ok
        except OSError as e:
            logger.error("Still failed: %s (%s)", sql_file.stem, e)
            ok = False
        else:
            if ok:
                logger.info("%s completed (%.0fs)", sql_file.stem, outcome.duration)
            else:
                logger.error("Still failed: %s", sql_file.stem)

        if ok:
            success_log.append(f"{sql_file.name}\n")
            error_log.unlink(missing_ok=True)
            result.succeeded.append(sql_file.name)
        else:
            result.failed.append(sql_file.name)

    if not result.failed:
        result.outcome = RetryOutcome.FULL_RECOVERY
        logger.info(
            "All failed imports successfully retried (%d/%d)",
            len(result.succeeded),
            total,
        )
    elif result.succeeded:
        result.outcome = RetryOutcome.PARTIAL_RECOVERY
        logger.warning(
            "Partial success: %d succeeded, %d still failed",
            len(result.succeeded),
            len(result.failed),
        )
    else:
        result.outcome = RetryOutcome.FAILED
        logger.error("All retry attempts failed (%d/%d)", len(result.failed), total)

    return result
