"""Archive-to-database import entry point.

Wraps an ImportSession with the archive handling around it: a buffer pool
change left behind by a killed run is reverted first, the archive is
unpacked into the workspace's ``restore/`` directory, and temporary files
are optionally removed once the session (and its revert) is done.

Usage:
    from dbporter.restore import import_database

    report = await import_database(
        Path("db_dump_shop_20250101_120000.tar.gz"),
        importer=client,
        workspace=workspace,
        width=get_thread_count(),
        db=adapter,
        optimizer=BufferPoolOptimizer(workspace.backup_pointer),
    )
"""

import logging
from collections.abc import Callable
from pathlib import Path

from dbporter.adapters.base import DatabaseClient, SqlImporter
from dbporter.backup.archive import ArchiveError, extract_archive
from dbporter.config.models import Workspace, empty_directory
from dbporter.restore.buffer_pool import BufferPoolOptimizer
from dbporter.restore.models import BufferPoolPlan, SessionReport
from dbporter.restore.session import ImportSession, authorize_always

logger = logging.getLogger(__name__)


class ImportAbortedError(Exception):
    """Raised when an import cannot start (e.g. no SQL files in the archive)."""

    pass


async def import_database(
    archive_path: Path,
    importer: SqlImporter,
    workspace: Workspace,
    width: int,
    db: DatabaseClient | None = None,
    optimizer: BufferPoolOptimizer | None = None,
    authorize: Callable[[BufferPoolPlan], bool] = authorize_always,
    auto_cleanup: bool = False,
    backoff_unit: float = 1.0,
) -> SessionReport:
    """Extract ``archive_path`` and import every ``*.sql`` file in it.

    Raises:
        ArchiveError: If the archive is missing or cannot be extracted.
        ImportAbortedError: If the archive contains no SQL files.
    """
    if not archive_path.is_file():
        raise ArchiveError(f"Archive not found: {archive_path}")

    if optimizer is not None:
        optimizer.recover_stale()

    workspace.ensure()
    if any(workspace.extract_dir.iterdir()):
        logger.warning("Extract directory contains files. Removing old files")
        empty_directory(workspace.extract_dir)

    logger.info("Extracting archive: %s", archive_path)
    sql_files = extract_archive(archive_path, workspace.extract_dir)
    if not sql_files:
        raise ImportAbortedError(f"No SQL files found in archive: {archive_path}")
    logger.info("Extracted %d SQL files", len(sql_files))

    session = ImportSession(
        importer,
        workspace,
        sql_files,
        width,
        db=db,
        optimizer=optimizer,
        authorize=authorize,
        backoff_unit=backoff_unit,
    )
    report = await session.run()

    if auto_cleanup:
        empty_directory(workspace.extract_dir)
        workspace.clean_logs()
        logger.info("Temporary files cleaned up")

    return report

