"""Gzip tar archives of per-table SQL dumps.

An archive holds one ``<table>.sql`` file per table at its top level.  The
import side accepts any ``*.tar.gz`` and picks up the ``*.sql`` files
wherever they land inside the extraction directory.
"""

import logging
import tarfile
from pathlib import Path

logger = logging.getLogger(__name__)


class ArchiveError(Exception):
    """Raised when an archive cannot be created or safely extracted."""

    pass


def create_archive(source_dir: Path, archive_path: Path) -> Path:
    """Pack every file directly inside ``source_dir`` into a ``.tar.gz``.

    Members are stored under their bare file names.

    Raises:
        ArchiveError: If ``source_dir`` holds no files or writing fails.
    """
    files = sorted(path for path in source_dir.iterdir() if path.is_file())
    if not files:
        raise ArchiveError(f"Nothing to archive in {source_dir}")

    archive_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive_path, "w:gz") as tar:
            for path in files:
                tar.add(path, arcname=path.name)
    except (OSError, tarfile.TarError) as e:
        archive_path.unlink(missing_ok=True)
        raise ArchiveError(f"Failed to create archive {archive_path}: {e}") from e

    logger.debug("Archived %d files into %s", len(files), archive_path)
    return archive_path


def extract_archive(archive_path: Path, destination: Path) -> list[Path]:
    """Extract ``archive_path`` into ``destination``.

    Members with absolute paths, ``..`` components or link targets outside
    ``destination`` are refused before anything is written.

    Returns:
        Sorted paths of the extracted ``*.sql`` files.

    Raises:
        ArchiveError: If the archive is missing, corrupt or unsafe, or two
            SQL files share a file name (each table is tracked by name).
    """
    if not archive_path.is_file():
        raise ArchiveError(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)
    root = destination.resolve()

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            members = tar.getmembers()
            for member in members:
                _check_member(member, root)
            tar.extractall(destination, members=members, filter="data")
    except (OSError, tarfile.TarError) as e:
        raise ArchiveError(f"Failed to extract {archive_path}: {e}") from e

    sql_files = sorted(destination.rglob("*.sql"))
    seen: dict[str, Path] = {}
    for path in sql_files:
        if path.name in seen:
            raise ArchiveError(
                f"Duplicate SQL file name in archive: {seen[path.name].relative_to(destination)}"
                f" and {path.relative_to(destination)}"
            )
        seen[path.name] = path
    return sql_files


def _check_member(member: tarfile.TarInfo, root: Path) -> None:
    target = (root / member.name).resolve()
    if not target.is_relative_to(root):
        raise ArchiveError(f"Unsafe path in archive: {member.name}")
    if member.issym() or member.islnk():
        # hard link targets are archive-relative, symlink targets member-relative
        base = target.parent if member.issym() else root
        link = (base / member.linkname).resolve()
        if not link.is_relative_to(root):
            raise ArchiveError(f"Unsafe link in archive: {member.name}")
