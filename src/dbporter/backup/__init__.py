"""Export side: per-table dumps packed into a gzip tar archive.

Usage:
    from dbporter.backup import export_database, extract_archive, ArchiveError
"""

from dbporter.backup.archive import ArchiveError, create_archive, extract_archive
from dbporter.backup.export import ExportResult, export_database

__all__ = [
    "ArchiveError",
    "ExportResult",
    "create_archive",
    "export_database",
    "extract_archive",
]
