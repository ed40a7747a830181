"""Per-table export into a compressed archive.

Each table is dumped on its own with the dump tool's consistent-snapshot
options, so one broken table does not fail the whole export.  The dumps are
then packed into ``db_dump_<database>_<YYYYmmdd_HHMMSS>.tar.gz``.

Usage:
    from dbporter.backup.export import export_database

    result = await export_database(adapter, client, workspace, "shop")
    print(result.archive_path, result.exported, result.table_count)
"""

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from dbporter.adapters.base import DatabaseClient, SqlImporter
from dbporter.backup.archive import create_archive
from dbporter.config.models import Workspace, empty_directory

logger = logging.getLogger(__name__)


class ExportResult(BaseModel):
    """Outcome of export_database()."""

    archive_path: Path
    archive_size: int
    exported: int
    table_count: int
    failed_tables: list[str] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.exported == self.table_count


def archive_name(database: str, now: datetime) -> str:
    return f"db_dump_{database}_{now.strftime('%Y%m%d_%H%M%S')}.tar.gz"


async def export_database(
    adapter: DatabaseClient,
    client: SqlImporter,
    workspace: Workspace,
    database: str,
    auto_cleanup: bool = False,
    output_dir: Path | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> ExportResult:
    """Dump every table of ``database`` and archive the dumps.

    Args:
        adapter: Metadata connection used to list the tables.
        client: Dumps one table per call.
        workspace: Provides the ``dumps/`` staging directory.
        database: Database name, used in the archive name.
        auto_cleanup: Empty the staging directory and logs afterwards.
        output_dir: Where the archive is written (default: current directory).
        clock: Timestamp source for the archive name.

    Returns:
        ExportResult describing the archive.

    Raises:
        ValueError: If the database has no tables.
        ArchiveError: If the archive cannot be written.
    """
    workspace.ensure()
    if any(workspace.dump_dir.iterdir()):
        logger.warning("Dump directory contains files. Removing old files")
        empty_directory(workspace.dump_dir)

    logger.info("Retrieving table list from database: %s", database)
    tables = await adapter.list_tables()
    if not tables:
        raise ValueError(f"No tables found in database: {database}")
    logger.info("Found %d tables to export", len(tables))

    failed: list[str] = []
    for table in tables:
        logger.info("Dumping table: %s", table)
        output = workspace.dump_dir / f"{table}.sql"
        result = await client.dump_table(table, output)
        if not result.ok:
            logger.warning("Failed to dump table: %s", table)
            output.unlink(missing_ok=True)
            failed.append(table)

    exported = len(tables) - len(failed)
    logger.info("Exported %d/%d tables", exported, len(tables))

    target_dir = output_dir if output_dir is not None else Path.cwd()
    archive = create_archive(
        workspace.dump_dir, target_dir / archive_name(database, clock())
    )
    size = archive.stat().st_size
    logger.info("Archive created: %s (%d bytes)", archive, size)

    if auto_cleanup:
        empty_directory(workspace.dump_dir)
        workspace.clean_logs()
        logger.info("Temporary files cleaned up")

    return ExportResult(
        archive_path=archive,
        archive_size=size,
        exported=exported,
        table_count=len(tables),
        failed_tables=failed,
    )
